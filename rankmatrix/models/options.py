"""Pydantic models describing a leaderboard matrix."""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, model_validator

from rankmatrix.services.periodic import TimeFrame

ALL_METRICS = "allMetrics"

NAME_PATTERN = r"^[A-Za-z0-9_-]{1,64}$"
Name = Annotated[str, StringConstraints(pattern=NAME_PATTERN)]


class DimensionDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: Name
    time_frame: TimeFrame = "all-time"


class FeatureDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: Name
    low_to_high: bool = False
    earlier_to_later: bool = True


class MatrixOptions(BaseModel):
    """Options of a leaderboard matrix.

    Cells are stored at ``<path>:<dimension>:<feature>[:<bucket key>]``.
    """

    model_config = ConfigDict(frozen=True)

    path: str = Field(default="lbmatrix", min_length=1)
    dimensions: list[DimensionDefinition] = Field(min_length=1)
    features: list[FeatureDefinition] = Field(min_length=1)
    max_users: int = Field(ge=2)

    @model_validator(mode="after")
    def check_names(self) -> MatrixOptions:
        dimension_names = [dim.name for dim in self.dimensions]
        feature_names = [feat.name for feat in self.features]
        if len(set(dimension_names)) != len(dimension_names):
            raise ValueError("dimension names must be unique")
        if len(set(feature_names)) != len(feature_names):
            raise ValueError("feature names must be unique")
        if ALL_METRICS in feature_names:
            raise ValueError(f"{ALL_METRICS!r} is reserved for the combined ranking")
        return self
