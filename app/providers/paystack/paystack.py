# app/providers/paystack/paystack.py
from __future__ import annotations

import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx

from app.errors import ExternalProviderError
from app.providers.base import (
    PaymentStatus,
    PaymentVerification,
    ProviderResult,
    RefundResult,
    TransferRequest,
    TransferStatus,
)
from app.providers.paystack.config import PaystackConfig, paystack_config
from app.providers.paystack.http import HttpClient, HttpResponse, is_retryable_http

logger = logging.getLogger("gigsec.providers.paystack")

_FAILED = {"failed", "reversed", "rejected", "abandoned", "blocked"}
_RECIPIENTS_PER_PAGE = 100


def map_transfer_status(raw: Optional[str]) -> TransferStatus:
    st = (raw or "").strip().lower()
    if st == "success":
        return "SUCCESS"
    if st in _FAILED:
        return "FAILED"
    if st == "otp":
        return "OTP"
    return "PENDING"


def map_payment_status(raw: Optional[str]) -> PaymentStatus:
    st = (raw or "").strip().lower()
    if st == "success":
        return "SUCCESS"
    if st in _FAILED:
        return "FAILED"
    # ongoing, pending, processing, queued
    return "PENDING"


class PaystackProvider:
    def __init__(self, http: Optional[HttpClient] = None, cfg: Optional[PaystackConfig] = None):
        self.cfg = cfg or paystack_config()
        self.http = http or HttpClient(timeout_s=self.cfg.timeout_s)

    # ------------------------------------------------------------------
    # inbound charges
    # ------------------------------------------------------------------

    def verify_payment(self, reference: str) -> PaymentVerification:
        try:
            data = self._call("GET", f"/transaction/verify/{quote(reference, safe='')}")
        except ExternalProviderError as e:
            # Paystack answers an unknown reference with 400/404
            http_status = (e.provider_response or {}).get("http_status")
            if http_status in (400, 404):
                return PaymentVerification(reference=reference, status="FAILED", response=e.provider_response)
            raise

        amount = data.get("amount")
        return PaymentVerification(
            reference=data.get("reference") or reference,
            status=map_payment_status(data.get("status")),
            amount_cents=int(amount) if amount is not None else None,
            currency=data.get("currency"),
            response=data,
        )

    # ------------------------------------------------------------------
    # transfers
    # ------------------------------------------------------------------

    def initiate_transfer(self, req: TransferRequest) -> ProviderResult:
        if int(req.amount_cents) <= 0:
            raise ExternalProviderError("Missing/invalid amount_cents")

        recipient_code = self._get_or_create_recipient(req.mpesa_number, req.recipient_name, req.currency)

        data = self._call(
            "POST",
            "/transfer",
            {
                "source": "balance",
                "amount": int(req.amount_cents),
                "recipient": recipient_code,
                "reason": req.reason,
                "currency": req.currency,
                "reference": req.reference,
            },
        )
        return ProviderResult(
            status=map_transfer_status(data.get("status")),
            transfer_code=data.get("transfer_code"),
            response=data,
        )

    def finalize_transfer(self, transfer_code: str, otp: str) -> ProviderResult:
        data = self._call("POST", "/transfer/finalize_transfer", {"transfer_code": transfer_code, "otp": otp})
        return ProviderResult(
            status=map_transfer_status(data.get("status")),
            transfer_code=data.get("transfer_code") or transfer_code,
            response=data,
        )

    def fetch_transfer_status(self, *, reference: str, transfer_code: Optional[str] = None) -> ProviderResult:
        data = self._call("GET", f"/transfer/verify/{reference}")
        return ProviderResult(
            status=map_transfer_status(data.get("status")),
            transfer_code=data.get("transfer_code") or transfer_code,
            response=data,
        )

    # ------------------------------------------------------------------
    # refunds
    # ------------------------------------------------------------------

    def refund_payment(self, *, payment_reference: str, amount_cents: int, currency: str, reason: str) -> RefundResult:
        data = self._call(
            "POST",
            "/refund",
            {
                "transaction": payment_reference,
                "amount": int(amount_cents),
                "currency": currency,
                "customer_note": reason,
                "merchant_note": reason,
            },
        )
        refund_id = data.get("id")
        return RefundResult(
            refund_id=str(refund_id) if refund_id is not None else None,
            status=str(data.get("status") or "pending"),
            response=data,
        )

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _get_or_create_recipient(self, mpesa_number: str, name: str, currency: str) -> str:
        page = 1
        while True:
            batch = self._call("GET", "/transferrecipient", params={"perPage": _RECIPIENTS_PER_PAGE, "page": page})
            batch = batch if isinstance(batch, list) else []
            for r in batch:
                details = r.get("details") or {}
                if details.get("account_number") == mpesa_number and r.get("recipient_code"):
                    return r["recipient_code"]
            if len(batch) < _RECIPIENTS_PER_PAGE:
                break
            page += 1

        created = self._call(
            "POST",
            "/transferrecipient",
            {
                "type": "mobile_money",
                "name": name,
                "account_number": mpesa_number,
                "bank_code": "MPESA",
                "currency": currency,
            },
        )
        code = created.get("recipient_code")
        if not code:
            raise ExternalProviderError("Paystack did not return a recipient_code", provider_response=created)
        return code

    def _headers(self) -> dict[str, str]:
        if not self.cfg.secret_key:
            raise ExternalProviderError("PAYSTACK_SECRET_KEY is not configured")
        return {
            "Authorization": f"Bearer {self.cfg.secret_key}",
            "Content-Type": "application/json",
        }

    def _call(self, method: str, path: str, body: dict[str, Any] | None = None, *, params: dict[str, Any] | None = None) -> Any:
        url = f"{self.cfg.base_url}{path}"
        headers = self._headers()
        try:
            if method == "GET":
                resp = self.http.get(url, headers=headers, params=params, debug=True)
            else:
                resp = self.http.post(url, headers=headers, json_body=body, debug=True)
        except httpx.TimeoutException as e:
            raise ExternalProviderError("Gateway timeout") from e
        except httpx.HTTPError as e:
            raise ExternalProviderError(f"Provider error: {e}") from e

        return self._unwrap(path, resp)

    @staticmethod
    def _unwrap(path: str, resp: HttpResponse) -> Any:
        body = resp.json if isinstance(resp.json, dict) else None
        if 200 <= resp.status_code < 300 and body is not None and body.get("status") is True:
            return body.get("data") or {}

        message = (body or {}).get("message") or f"HTTP {resp.status_code}"
        logger.warning(
            "paystack call failed path=%s http=%s retryable=%s message=%s",
            path,
            resp.status_code,
            is_retryable_http(resp.status_code),
            message,
        )
        raise ExternalProviderError(
            f"Paystack: {message}",
            provider_response={"http_status": resp.status_code, "body": body, "text": resp.text[:500]},
        )
