from __future__ import annotations

import re
from typing import Any


_EMAIL_RE = re.compile(r"\b([A-Za-z0-9._%+-])([A-Za-z0-9._%+-]*)(@[A-Za-z0-9.-]+\.[A-Za-z]{2,})\b")
# +2547XXXXXXXX, 2547XXXXXXXX and local 07XXXXXXXX / 01XXXXXXXX forms
_PHONE_RE = re.compile(r"(?<!\d)(?:\+?\d{11,15}|0[17]\d{8})(?!\d)")

_SENSITIVE_KEY_MARKERS = (
    "token",
    "authorization",
    "secret",
    "password",
    "otp",
)


def _mask_email(match: re.Match) -> str:
    first = match.group(1)
    domain = match.group(3)
    return f"{first}***{domain}"


def mask_phone(value: str) -> str:
    if len(value) <= 6:
        return value
    return f"{value[:4]}****{value[-2:]}"


def redact_text(value: str) -> str:
    masked = _EMAIL_RE.sub(_mask_email, value)
    masked = _PHONE_RE.sub(lambda m: mask_phone(m.group(0)), masked)

    for marker in ("access_token", "bearer", "sk_live_", "sk_test_"):
        if marker in masked.lower():
            return "[REDACTED]"

    return masked


def _is_sensitive_key(key: str) -> bool:
    key_l = (key or "").lower()
    return any(marker in key_l for marker in _SENSITIVE_KEY_MARKERS)


def redact_value(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, dict):
        return redact_dict(value)
    if isinstance(value, list):
        return [redact_value(v) for v in value]
    return value


def redact_dict(payload: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for k, v in payload.items():
        if _is_sensitive_key(k):
            out[k] = "[REDACTED]"
        else:
            out[k] = redact_value(v)
    return out
