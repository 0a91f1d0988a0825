"""Exception hierarchy for ranking structures.

Absent entries are never errors: reads return ``None`` or an empty list.
Redis failures propagate unchanged.
"""

from __future__ import annotations

from typing import Any


class RankMatrixError(Exception):
    """Base exception for all ranking errors.

    Attributes:
        message: Human-readable error description
        details: Additional context for logging and API error bodies
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ConfigurationError(RankMatrixError):
    """Raised when a structure is built with missing or invalid options."""


class RankOverflowError(ConfigurationError):
    """Raised when a rank does not fit the digit width derived from max_users."""

    def __init__(self, rank: int, width: int) -> None:
        super().__init__(
            message=f"Rank {rank} does not fit in {width} digits; raise max_users",
            details={"rank": rank, "width": width},
        )


class PreconditionFailure(RankMatrixError):
    """Raised when a composite rank is requested for an entity missing from a sub-leaderboard."""

    def __init__(self, entity_id: str, missing: list[str]) -> None:
        super().__init__(
            message=f"Entity {entity_id!r} has no rank in: {', '.join(missing)}",
            details={"entity_id": entity_id, "missing": missing},
        )


class NotSupportedError(RankMatrixError):
    """Raised when a direct score mutation targets a derived leaderboard."""

    def __init__(self, operation: str, path: str) -> None:
        super().__init__(
            message=f"{operation} is not supported on derived leaderboard {path!r}",
            details={"operation": operation, "path": path},
        )
