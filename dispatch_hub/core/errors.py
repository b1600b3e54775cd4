from __future__ import annotations

from typing import Any


class DispatchHubError(Exception):
    """
    Base class for errors raised by the dispatch pipeline.
    `code` is stable and safe to show to operators.
    """
    code = "DISPATCH_ERROR"

    def __init__(self, message: str, *, detail: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.detail}


class ConfigurationError(DispatchHubError):
    """Carrier is not usable as configured. Raised before any network call."""
    code = "CONFIGURATION_ERROR"

    def __init__(self, message: str, *, company_id: str | None = None, issues: list[dict] | None = None):
        super().__init__(message, detail={"company_id": company_id, "issues": issues or []})
        self.company_id = company_id
        self.issues = issues or []


class TransportError(DispatchHubError):
    """
    Network failure, timeout or non-success carrier response.
    Never escapes a carrier adapter: it is converted into a failed CarrierResult.
    """
    code = "TRANSPORT_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        raw_response: dict[str, Any] | None = None,
        http_status: int | None = None,
    ):
        super().__init__(message, detail={"http_status": http_status})
        if code:
            self.code = code
        self.raw_response = raw_response or {}
        self.http_status = http_status


class UnexpectedCarrierShapeError(TransportError):
    code = "UNEXPECTED_CARRIER_SHAPE"

    def __init__(self, message: str, *, raw_response: dict[str, Any] | None = None, http_status: int | None = None):
        super().__init__(message, code=self.code, raw_response=raw_response, http_status=http_status)


class CompanyNotFoundError(DispatchHubError):
    code = "COMPANY_NOT_FOUND"


class OrderNotFoundError(DispatchHubError):
    code = "ORDER_NOT_FOUND"


class OrderLookupError(DispatchHubError):
    code = "ORDER_LOOKUP_FAILED"


class DispatchInProgressError(DispatchHubError):
    code = "DISPATCH_IN_PROGRESS"


class ResendNotAllowedError(DispatchHubError):
    code = "RESEND_NOT_ALLOWED"


class InvalidStatusTransitionError(DispatchHubError):
    code = "INVALID_STATUS_TRANSITION"

    def __init__(self, current: str, target: str):
        super().__init__(
            f"Cannot move delivery from '{current}' to '{target}'",
            detail={"current": current, "target": target},
        )
        self.current = current
        self.target = target
