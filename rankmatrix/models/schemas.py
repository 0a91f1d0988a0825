"""Pydantic request/response schemas for the public leaderboard matrix API.

These models define input validation and response contracts used by routes
and exception handlers.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, StringConstraints

from rankmatrix.services.matrix import MatrixEntry

IDENTIFIER_PATTERN = r"^[A-Za-z0-9_-]{1,64}$"
Identifier = Annotated[str, StringConstraints(pattern=IDENTIFIER_PATTERN)]


class ErrorBody(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None


class ErrorResponse(BaseModel):
    error: ErrorBody


class ScoreSubmission(BaseModel):
    features: dict[Identifier, float] = Field(min_length=1)
    dimensions: list[Identifier] | None = None
    mode: Literal["add", "incr", "improve"] = "add"


class MatrixRow(BaseModel):
    id: str
    rank: int
    scores: dict[str, float | None]

    @classmethod
    def from_entry(cls, entry: MatrixEntry) -> MatrixRow:
        return cls(id=entry.id, rank=entry.rank, scores=entry.scores)


class SubmissionResult(BaseModel):
    entity_id: Identifier
    mode: Literal["add", "incr", "improve"]
    rows: dict[str, MatrixRow | None]


class EntryResponse(BaseModel):
    dimension: Identifier
    feature: str | None = None
    entry: MatrixRow


class LeaderboardResponse(BaseModel):
    dimension: Identifier
    feature: str
    low: int = Field(ge=1)
    high: int = Field(ge=1)
    results: list[MatrixRow]


class AroundResponse(BaseModel):
    dimension: Identifier
    feature: str
    entity_id: Identifier
    distance: int = Field(ge=0)
    results: list[MatrixRow]


class HealthResponse(BaseModel):
    status: Literal["ok"]


class ReadyResponse(BaseModel):
    status: Literal["ok"]
