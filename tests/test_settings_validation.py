from __future__ import annotations

import pytest
from pydantic import ValidationError

from app.config import bps_of, load_workflow_config
from app.providers.factory import get_provider, reset_provider_cache
from app.providers.sandbox import SandboxProvider
from settings import Settings


def _settings(**overrides) -> Settings:
    return Settings(DATABASE_URL="sqlite:///unused.db", **overrides)


def test_defaults():
    s = _settings()
    assert s.PLATFORM_FEE_BPS == 1000
    assert s.DISPUTE_RESOLUTION_FEE_BPS == 500
    assert s.DISPUTE_WINDOW_DAYS == 7
    assert s.PAYOUT_PROVIDER_MODE == "sandbox"


def test_fee_bps_bounds_validated():
    with pytest.raises(ValidationError):
        _settings(PLATFORM_FEE_BPS=10001)
    with pytest.raises(ValidationError):
        _settings(DISPUTE_RESOLUTION_FEE_BPS=-1)
    with pytest.raises(ValidationError):
        _settings(PAYOUT_INFLIGHT_LEASE_S=0)


def test_unknown_provider_mode_rejected():
    with pytest.raises(ValidationError):
        _settings(PAYOUT_PROVIDER_MODE="stripe")


def test_workflow_config_from_settings():
    cfg = load_workflow_config(
        _settings(PLATFORM_FEE_BPS=1500, DISPUTE_WINDOW_DAYS=3, PAYSTACK_CURRENCY=" kes ",
                  REFERRAL_MIN_CONVERSION_CENTS=1, KYC_UPLOAD_DIR="/tmp/kyc-x", PAYOUT_INFLIGHT_LEASE_S=60)
    )
    assert cfg.platform_fee_bps == 1500
    assert cfg.dispute_window.days == 3
    assert cfg.currency == "KES"
    assert cfg.referral.minimum_conversion_cents == 1
    assert cfg.kyc.upload_dir == "/tmp/kyc-x"
    assert cfg.payout_inflight_lease.total_seconds() == 60


@pytest.mark.parametrize("amount,bps,expected", [
    (20000, 1000, 2000),
    (20000, 500, 1000),
    (15, 1000, 2),   # 1.5 rounds up
    (14, 1000, 1),
    (0, 500, 0),
])
def test_bps_of_rounds_half_up(amount, bps, expected):
    assert bps_of(amount, bps) == expected


def test_provider_factory_caches_per_mode():
    reset_provider_cache()
    try:
        first = get_provider("sandbox")
        assert isinstance(first, SandboxProvider)
        assert get_provider("sandbox") is first
        with pytest.raises(ValueError):
            get_provider("carrier-pigeon")
    finally:
        reset_provider_cache()
