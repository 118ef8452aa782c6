# app/providers/paystack/config.py
from __future__ import annotations

from dataclasses import dataclass

from settings import settings


@dataclass(frozen=True)
class PaystackConfig:
    base_url: str
    secret_key: str
    currency: str
    timeout_s: float


def paystack_config() -> PaystackConfig:
    return PaystackConfig(
        base_url=(settings.PAYSTACK_BASE_URL or "https://api.paystack.co").strip().rstrip("/"),
        secret_key=(settings.PAYSTACK_SECRET_KEY or "").strip(),
        currency=(settings.PAYSTACK_CURRENCY or "KES").strip().upper(),
        timeout_s=float(settings.PAYSTACK_HTTP_TIMEOUT_S),
    )
