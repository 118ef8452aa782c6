# app/providers/sandbox.py
from __future__ import annotations

import threading
import uuid
from typing import Any, Optional

from app.errors import ExternalProviderError
from app.providers.base import PaymentVerification, ProviderResult, RefundResult, TransferRequest


class SandboxProvider:
    """
    Deterministic in-memory gateway for dev and tests.

    - only charges registered with `register_payment` verify; unknown references fail
    - initiate with a known reference returns the existing transfer (no second transfer)
    - finalize only accepts `otp`
    - `fail_initiate` / `fail_refund` simulate a gateway outage
    """

    def __init__(
        self,
        *,
        otp: str = "123456",
        require_otp: bool = True,
        fail_initiate: bool = False,
        fail_refund: bool = False,
    ):
        self.otp = otp
        self.require_otp = require_otp
        self.fail_initiate = fail_initiate
        self.fail_refund = fail_refund

        self._lock = threading.Lock()
        self.payments: dict[str, dict[str, Any]] = {}
        self.transfers: dict[str, dict[str, Any]] = {}
        self.refunds: list[dict[str, Any]] = []
        self.verify_calls = 0
        self.initiate_calls = 0
        self.finalize_calls = 0

    def verify_payment(self, reference: str) -> PaymentVerification:
        with self._lock:
            self.verify_calls += 1
            payment = self.payments.get(reference)
            if payment is None:
                return PaymentVerification(
                    reference=reference,
                    status="FAILED",
                    response={"message": "Transaction reference not found", "sandbox": True},
                )
            return PaymentVerification(
                reference=reference,
                status=payment["status"],
                amount_cents=payment["amount"],
                currency=payment["currency"],
                response={**payment, "sandbox": True},
            )

    def initiate_transfer(self, req: TransferRequest) -> ProviderResult:
        with self._lock:
            self.initiate_calls += 1
            if self.fail_initiate:
                raise ExternalProviderError("Gateway timeout", provider_response={"http_status": 504, "sandbox": True})

            existing = self.transfers.get(req.reference)
            if existing is None:
                existing = {
                    "reference": req.reference,
                    "transfer_code": f"TRF_{uuid.uuid4().hex[:12]}",
                    "amount": int(req.amount_cents),
                    "currency": req.currency,
                    "recipient": req.mpesa_number,
                    "status": "OTP" if self.require_otp else "PENDING",
                }
                self.transfers[req.reference] = existing

            return ProviderResult(
                status=existing["status"],
                transfer_code=existing["transfer_code"],
                response={**existing, "sandbox": True},
            )

    def finalize_transfer(self, transfer_code: str, otp: str) -> ProviderResult:
        with self._lock:
            self.finalize_calls += 1
            transfer = self._by_code(transfer_code)
            if transfer is None:
                raise ExternalProviderError("Transfer not found", provider_response={"http_status": 404, "sandbox": True})

            if transfer["status"] == "SUCCESS":
                return ProviderResult(status="SUCCESS", transfer_code=transfer_code, response={**transfer, "sandbox": True})

            if otp != self.otp:
                raise ExternalProviderError("Invalid OTP", provider_response={"http_status": 400, "sandbox": True})

            transfer["status"] = "SUCCESS"
            return ProviderResult(status="SUCCESS", transfer_code=transfer_code, response={**transfer, "sandbox": True})

    def fetch_transfer_status(self, *, reference: str, transfer_code: Optional[str] = None) -> ProviderResult:
        with self._lock:
            transfer = self.transfers.get(reference) or (self._by_code(transfer_code) if transfer_code else None)
            if transfer is None:
                raise ExternalProviderError("Transfer not found", provider_response={"http_status": 404, "sandbox": True})
            status = transfer["status"]
            if status == "OTP":
                status = "PENDING"
            return ProviderResult(status=status, transfer_code=transfer["transfer_code"], response={**transfer, "sandbox": True})

    def refund_payment(self, *, payment_reference: str, amount_cents: int, currency: str, reason: str) -> RefundResult:
        with self._lock:
            if self.fail_refund:
                raise ExternalProviderError("Refund rejected", provider_response={"http_status": 502, "sandbox": True})
            refund = {
                "id": f"RFD_{uuid.uuid4().hex[:12]}",
                "transaction": payment_reference,
                "amount": int(amount_cents),
                "currency": currency,
                "reason": reason,
            }
            self.refunds.append(refund)
            return RefundResult(refund_id=refund["id"], status="pending", response={**refund, "sandbox": True})

    # test helper: a charge the organizer made at the gateway
    def register_payment(self, reference: str, amount_cents: int, *, currency: str = "KES", status: str = "SUCCESS") -> None:
        with self._lock:
            self.payments[reference] = {
                "reference": reference,
                "amount": int(amount_cents),
                "currency": currency,
                "status": status,
            }

    # test helper: move a transfer to a gateway-side status
    def set_transfer_status(self, reference: str, status: str) -> None:
        with self._lock:
            self.transfers[reference]["status"] = status

    def _by_code(self, transfer_code: Optional[str]) -> Optional[dict[str, Any]]:
        for t in self.transfers.values():
            if t["transfer_code"] == transfer_code:
                return t
        return None
