from __future__ import annotations

from typing import Any

from rankmatrix.errors import (
    ConfigurationError,
    NotSupportedError,
    PreconditionFailure,
    RankMatrixError,
)


class APIError(Exception):
    def __init__(
        self,
        code: str,
        message: str,
        status_code: int,
        details: dict[str, Any] | None = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


def from_domain_error(exc: RankMatrixError) -> APIError:
    if isinstance(exc, PreconditionFailure):
        return APIError("PRECONDITION_FAILED", exc.message, 409, exc.details)
    if isinstance(exc, NotSupportedError):
        return APIError("NOT_SUPPORTED", exc.message, 405, exc.details)
    if isinstance(exc, ConfigurationError):
        return APIError("CONFIGURATION_ERROR", exc.message, 500, exc.details)
    return APIError("INTERNAL_ERROR", exc.message, 500, exc.details)
