# app/providers/paystack/http.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from services.redaction import redact_dict, redact_text

logger = logging.getLogger("gigsec.http")


@dataclass
class HttpResponse:
    status_code: int
    json: Optional[dict[str, Any]]
    text: str


class HttpClient:
    def __init__(self, timeout_s: float = 20.0, follow_redirects: bool = True):
        self._client = httpx.Client(timeout=timeout_s, follow_redirects=follow_redirects)

    def post(
        self,
        url: str,
        *,
        headers: dict[str, str],
        json_body: dict[str, Any] | None = None,
        debug: bool = False,
    ) -> HttpResponse:
        r = self._client.post(url, headers=headers, json=json_body)
        if debug:
            self._debug_dump("POST", url, json_body, r)
        return self._wrap(r)

    def get(
        self,
        url: str,
        *,
        headers: dict[str, str],
        params: dict[str, Any] | None = None,
        debug: bool = False,
    ) -> HttpResponse:
        r = self._client.get(url, headers=headers, params=params)
        if debug:
            self._debug_dump("GET", url, None, r)
        return self._wrap(r)

    def close(self) -> None:
        self._client.close()

    @staticmethod
    def _wrap(r: httpx.Response) -> HttpResponse:
        try:
            payload = r.json()
        except ValueError:
            payload = None
        return HttpResponse(status_code=r.status_code, json=payload, text=r.text)

    @staticmethod
    def _debug_dump(method: str, url: str, json_body: Any, r: httpx.Response) -> None:
        # headers are never logged (they carry the secret key)
        logger.debug(
            "%s %s body=%s -> status=%s text=%s",
            method,
            url,
            redact_dict(json_body) if isinstance(json_body, dict) else None,
            r.status_code,
            redact_text(r.text[:300]),
        )


def is_retryable_http(code: int) -> bool:
    return code in (408, 425, 429, 500, 502, 503, 504)
