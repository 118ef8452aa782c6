# app/config.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from settings import Settings, settings as default_settings


@dataclass(frozen=True)
class ReferralConfig:
    referrer_reward_cents: int = 100_000
    referred_reward_cents: int = 50_000
    minimum_conversion_cents: int = 500_000
    expiry_days: int = 30

    @property
    def expiry(self) -> timedelta:
        return timedelta(days=self.expiry_days)


@dataclass(frozen=True)
class KycUploadConfig:
    upload_dir: str = "uploads/kyc"
    max_file_bytes: int = 10 * 1024 * 1024
    min_file_bytes: int = 10 * 1024
    allowed_mime_types: tuple[str, ...] = ("image/jpeg", "image/jpg", "image/png", "application/pdf")


@dataclass(frozen=True)
class WorkflowConfig:
    """Business rules handed explicitly to every workflow function."""

    platform_fee_bps: int = 1000
    dispute_resolution_fee_bps: int = 500
    dispute_window_days: int = 7
    payout_inflight_lease_s: int = 300
    currency: str = "KES"
    referral: ReferralConfig = ReferralConfig()
    kyc: KycUploadConfig = KycUploadConfig()

    @property
    def dispute_window(self) -> timedelta:
        return timedelta(days=self.dispute_window_days)

    @property
    def payout_inflight_lease(self) -> timedelta:
        return timedelta(seconds=self.payout_inflight_lease_s)


def bps_of(amount_cents: int, bps: int) -> int:
    # round half up, integer cents
    return (int(amount_cents) * int(bps) + 5000) // 10000


def load_workflow_config(s: Settings | None = None) -> WorkflowConfig:
    s = s or default_settings
    return WorkflowConfig(
        platform_fee_bps=s.PLATFORM_FEE_BPS,
        dispute_resolution_fee_bps=s.DISPUTE_RESOLUTION_FEE_BPS,
        dispute_window_days=s.DISPUTE_WINDOW_DAYS,
        payout_inflight_lease_s=s.PAYOUT_INFLIGHT_LEASE_S,
        currency=(s.PAYSTACK_CURRENCY or "KES").strip().upper(),
        referral=ReferralConfig(
            referrer_reward_cents=s.REFERRER_REWARD_CENTS,
            referred_reward_cents=s.REFERRED_REWARD_CENTS,
            minimum_conversion_cents=s.REFERRAL_MIN_CONVERSION_CENTS,
            expiry_days=s.REFERRAL_EXPIRY_DAYS,
        ),
        kyc=KycUploadConfig(
            upload_dir=s.KYC_UPLOAD_DIR,
            max_file_bytes=s.KYC_MAX_FILE_BYTES,
            min_file_bytes=s.KYC_MIN_FILE_BYTES,
        ),
    )
