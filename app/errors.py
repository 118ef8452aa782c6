# app/errors.py
from __future__ import annotations

from typing import Any, Optional


class WorkflowError(Exception):
    """
    Base class for every business-rule failure.
    `code` is the machine-readable string returned as `detail` by the API.
    """

    http_status = 400
    code = "WORKFLOW_ERROR"

    def __init__(self, message: str, *, code: Optional[str] = None, extra: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.extra = extra or {}

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"detail": self.code, "message": self.message}
        body.update(self.extra)
        return body


class ValidationError(WorkflowError):
    http_status = 422
    code = "VALIDATION_ERROR"


class Forbidden(WorkflowError):
    http_status = 403
    code = "FORBIDDEN"


class NotFound(WorkflowError):
    http_status = 404
    code = "NOT_FOUND"


class Conflict(WorkflowError):
    http_status = 409
    code = "CONFLICT"


class InvalidTransition(WorkflowError):
    http_status = 409
    code = "INVALID_TRANSITION"

    def __init__(self, entity: str, current: str, requested: str, *, message: Optional[str] = None):
        self.entity = entity
        self.current = str(current)
        self.requested = str(requested)
        super().__init__(
            message or f"Illegal {entity} transition: {self.current} -> {self.requested}",
            extra={"current_status": self.current, "requested": self.requested},
        )


class PayoutPrerequisiteError(WorkflowError):
    http_status = 422
    code = "PAYOUT_PREREQUISITE_FAILED"

    def __init__(self, prerequisite: str, message: str):
        self.prerequisite = prerequisite
        super().__init__(message, extra={"prerequisite": prerequisite})


class ExternalProviderError(WorkflowError):
    """Gateway failure. Always retryable by re-invoking the same endpoint."""

    http_status = 502
    code = "PROVIDER_ERROR"

    def __init__(self, message: str, *, provider_response: Optional[dict[str, Any]] = None):
        self.provider_response = provider_response
        super().__init__(message, extra={"retryable": True})
