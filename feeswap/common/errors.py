from __future__ import annotations

from typing import Any


class SwapServiceError(RuntimeError):
    status = 500
    code = "internal"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(SwapServiceError):
    status = 422
    code = "validation_error"


class BadRequestError(SwapServiceError):
    status = 400
    code = "bad_request"


class NotFoundError(SwapServiceError):
    status = 404
    code = "not_found"


class AlreadyExistsError(SwapServiceError):
    status = 409
    code = "already_exists"


class ResourceExpiredError(SwapServiceError):
    status = 410
    code = "resource_expired"


class UnauthorizedError(SwapServiceError):
    status = 401
    code = "unauthorized"


class UpstreamError(SwapServiceError):
    """Aggregator or ledger RPC failure. Surfaced as-is so callers can decide to retry."""

    status = 502
    code = "upstream_error"

    def __init__(
        self,
        message: str,
        *,
        service: str,
        status: int | None = None,
        retriable: bool = False,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.service = service
        self.upstream_status = status
        self.retriable = retriable

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["service"] = self.service
        payload["retriable"] = self.retriable
        return payload


class SimulationFailedError(SwapServiceError):
    status = 422
    code = "simulation_failed"


class InternalError(SwapServiceError):
    status = 500
    code = "internal"
