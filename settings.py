# settings.py
from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Literal


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # -----------------------
    # DB
    # -----------------------
    DATABASE_URL: str = Field(...)
    DB_STATEMENT_TIMEOUT_MS: int = 5000

    # -----------------------
    # JWT
    # -----------------------
    JWT_SECRET: str = Field(default="dev-secret-change-me", min_length=16)
    JWT_ALG: str = Field(default="HS256")
    JWT_ACCESS_MINUTES: int = Field(default=60)

    # -----------------------
    # Payout gateway (Mode Switch)
    # -----------------------
    PAYOUT_PROVIDER_MODE: Literal["sandbox", "paystack"] = "sandbox"

    PAYSTACK_BASE_URL: str = "https://api.paystack.co"
    PAYSTACK_SECRET_KEY: str = ""
    PAYSTACK_HTTP_TIMEOUT_S: float = 20.0
    PAYSTACK_CURRENCY: str = "KES"

    # OTP accepted by the sandbox gateway when finalizing transfers
    SANDBOX_TRANSFER_OTP: str = "123456"

    # a PROCESSING payout with no transfer_code and no recorded error is
    # treated as in flight until this many seconds have passed
    PAYOUT_INFLIGHT_LEASE_S: int = Field(default=300, ge=1)

    # -----------------------
    # Fees (basis points)
    # -----------------------
    PLATFORM_FEE_BPS: int = Field(default=1000, ge=0, le=10000)
    DISPUTE_RESOLUTION_FEE_BPS: int = Field(default=500, ge=0, le=10000)
    DISPUTE_WINDOW_DAYS: int = Field(default=7, ge=0)

    # -----------------------
    # Referrals (amounts in cents)
    # -----------------------
    REFERRER_REWARD_CENTS: int = 100_000
    REFERRED_REWARD_CENTS: int = 50_000
    REFERRAL_MIN_CONVERSION_CENTS: int = 500_000
    REFERRAL_EXPIRY_DAYS: int = 30

    # -----------------------
    # KYC uploads
    # -----------------------
    KYC_UPLOAD_DIR: str = "uploads/kyc"
    KYC_MAX_FILE_BYTES: int = 10 * 1024 * 1024
    KYC_MIN_FILE_BYTES: int = 10 * 1024


settings = Settings()
