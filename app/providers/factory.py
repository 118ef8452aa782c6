# app/providers/factory.py
from __future__ import annotations

from typing import Any, Dict

from settings import settings

_PROVIDER_CACHE: Dict[str, Any] = {}


def get_provider(mode: str | None = None):
    """
    Payout/refund gateway for the configured mode.
    One instance per mode per process (the sandbox keeps its transfers in memory).
    """
    key = (mode or settings.PAYOUT_PROVIDER_MODE or "sandbox").strip().lower()

    if key in _PROVIDER_CACHE:
        return _PROVIDER_CACHE[key]

    if key == "paystack":
        from app.providers.paystack.paystack import PaystackProvider
        provider = PaystackProvider()

    elif key == "sandbox":
        from app.providers.sandbox import SandboxProvider
        provider = SandboxProvider(otp=settings.SANDBOX_TRANSFER_OTP)

    else:
        raise ValueError(f"Unknown payout provider mode: {mode!r}")

    _PROVIDER_CACHE[key] = provider
    return provider


def reset_provider_cache() -> None:
    _PROVIDER_CACHE.clear()
