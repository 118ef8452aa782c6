# app/providers/base.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Protocol, Literal

# OTP     => transfer queued, waiting for finalize(transfer_code, otp)
# PENDING => accepted by the gateway, not settled yet
TransferStatus = Literal["OTP", "PENDING", "SUCCESS", "FAILED"]

# inbound charge as the gateway sees it
PaymentStatus = Literal["PENDING", "SUCCESS", "FAILED"]


@dataclass(frozen=True)
class TransferRequest:
    reference: str
    amount_cents: int
    currency: str
    mpesa_number: str
    recipient_name: str
    reason: str = "GigSec talent payout"


@dataclass(frozen=True)
class ProviderResult:
    status: TransferStatus
    transfer_code: Optional[str] = None
    response: Optional[dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def requires_otp(self) -> bool:
        return self.status == "OTP"


@dataclass(frozen=True)
class PaymentVerification:
    reference: str
    status: PaymentStatus
    amount_cents: Optional[int] = None
    currency: Optional[str] = None
    response: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class RefundResult:
    refund_id: Optional[str]
    status: str
    response: Optional[dict[str, Any]] = None


class TransferProvider(Protocol):
    """
    Payment gateway: inbound charge verification plus outbound money movement.
    Every method raises app.errors.ExternalProviderError when the gateway
    can't be reached or rejects the call.
    """

    def verify_payment(self, reference: str) -> PaymentVerification: ...
    def initiate_transfer(self, req: TransferRequest) -> ProviderResult: ...
    def finalize_transfer(self, transfer_code: str, otp: str) -> ProviderResult: ...
    def fetch_transfer_status(self, *, reference: str, transfer_code: Optional[str] = None) -> ProviderResult: ...
    def refund_payment(self, *, payment_reference: str, amount_cents: int, currency: str, reason: str) -> RefundResult: ...
