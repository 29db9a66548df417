from .async_utils import guarded_call, with_timeout
from .errors import (
    AlreadyExistsError,
    BadRequestError,
    InternalError,
    NotFoundError,
    ResourceExpiredError,
    SimulationFailedError,
    SwapServiceError,
    UnauthorizedError,
    UpstreamError,
    ValidationError,
)
from .logging import log_event

__all__ = [
    "AlreadyExistsError",
    "BadRequestError",
    "InternalError",
    "NotFoundError",
    "ResourceExpiredError",
    "SimulationFailedError",
    "SwapServiceError",
    "UnauthorizedError",
    "UpstreamError",
    "ValidationError",
    "guarded_call",
    "log_event",
    "with_timeout",
]
