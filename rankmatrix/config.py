"""Environment-driven settings for the HTTP service."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from pydantic import ValidationError

from rankmatrix.errors import ConfigurationError
from rankmatrix.models.options import MatrixOptions

DEFAULT_REDIS_URL = "redis://localhost:6379/0"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_MATRIX_CONFIG = """
{
    "path": "lbmatrix",
    "dimensions": [{"name": "global", "time_frame": "all-time"}],
    "features": [
        {"name": "wins", "low_to_high": false},
        {"name": "losses", "low_to_high": true}
    ],
    "max_users": 1000000
}
"""


def load_matrix_options(raw: str | None = None) -> MatrixOptions:
    try:
        return MatrixOptions.model_validate_json(raw or DEFAULT_MATRIX_CONFIG)
    except ValidationError as exc:
        raise ConfigurationError(
            "MATRIX_CONFIG is not a valid matrix definition",
            details={"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc


@dataclass(slots=True)
class Settings:
    redis_url: str = DEFAULT_REDIS_URL
    log_level: str = DEFAULT_LOG_LEVEL
    matrix: MatrixOptions = field(default_factory=load_matrix_options)

    @classmethod
    def from_env(cls) -> Settings:
        return cls(
            redis_url=os.getenv("REDIS_URL", DEFAULT_REDIS_URL),
            log_level=os.getenv("LOG_LEVEL", DEFAULT_LOG_LEVEL).upper(),
            matrix=load_matrix_options(os.getenv("MATRIX_CONFIG")),
        )
