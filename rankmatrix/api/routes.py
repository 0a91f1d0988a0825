"""HTTP route handlers for leaderboard matrix operations and service health checks."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path, Query, Request

from rankmatrix.api.errors import APIError
from rankmatrix.models.schemas import (
    IDENTIFIER_PATTERN,
    AroundResponse,
    EntryResponse,
    HealthResponse,
    LeaderboardResponse,
    MatrixRow,
    ReadyResponse,
    ScoreSubmission,
    SubmissionResult,
)
from rankmatrix.services.matrix import LeaderboardMatrix

router = APIRouter(prefix="/v1")


def get_matrix(request: Request) -> LeaderboardMatrix:
    return request.app.state.matrix


def require_cell(matrix: LeaderboardMatrix, dimension: str, feature: str | None = None) -> None:
    if dimension not in matrix.dimensions:
        raise APIError(
            code="NOT_FOUND",
            message=f"Unknown dimension {dimension!r}",
            status_code=404,
            details={"dimensions": matrix.dimensions},
        )
    if feature is not None and feature not in matrix.features:
        raise APIError(
            code="NOT_FOUND",
            message=f"Unknown feature {feature!r}",
            status_code=404,
            details={"features": matrix.features},
        )


def entry_not_found(entity_id: str) -> APIError:
    return APIError(
        code="ENTRY_NOT_FOUND",
        message="Entity has no scores in this dimension",
        status_code=404,
        details={"entity_id": entity_id},
    )


@router.post("/entries/{entity_id}", response_model=SubmissionResult)
async def submit_scores(
    payload: ScoreSubmission,
    entity_id: str = Path(pattern=IDENTIFIER_PATTERN),
    matrix: LeaderboardMatrix = Depends(get_matrix),
) -> SubmissionResult:
    unknown = [name for name in payload.features if name not in matrix.metrics]
    if unknown:
        raise APIError(
            code="VALIDATION_ERROR",
            message="Request validation failed",
            status_code=400,
            details={"errors": [{"loc": ["body", "features"], "msg": f"unknown features {unknown}"}]},
        )
    dimensions = payload.dimensions or matrix.dimensions
    for dimension in dimensions:
        require_cell(matrix, dimension)

    write = getattr(matrix, payload.mode)
    await write(entity_id, payload.features, dimensions)

    rows: dict[str, MatrixRow | None] = {}
    for dimension in dimensions:
        entry = await matrix.peek(entity_id, dimension)
        rows[dimension] = None if entry is None else MatrixRow.from_entry(entry)
    return SubmissionResult(entity_id=entity_id, mode=payload.mode, rows=rows)


@router.get("/dimensions/{dimension}/entries/{entity_id}", response_model=EntryResponse)
async def get_entry(
    dimension: str = Path(pattern=IDENTIFIER_PATTERN),
    entity_id: str = Path(pattern=IDENTIFIER_PATTERN),
    feature: str | None = Query(default=None),
    matrix: LeaderboardMatrix = Depends(get_matrix),
) -> EntryResponse:
    require_cell(matrix, dimension, feature)
    entry = await matrix.peek(entity_id, dimension, feature)
    if entry is None:
        raise entry_not_found(entity_id)
    return EntryResponse(dimension=dimension, feature=feature, entry=MatrixRow.from_entry(entry))


@router.get("/dimensions/{dimension}/features/{feature}/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(
    dimension: str = Path(pattern=IDENTIFIER_PATTERN),
    feature: str = Path(pattern=IDENTIFIER_PATTERN),
    low: int = Query(default=1, ge=1),
    high: int = Query(default=10, ge=1),
    matrix: LeaderboardMatrix = Depends(get_matrix),
) -> LeaderboardResponse:
    require_cell(matrix, dimension, feature)
    if high < low or high - low >= 100:
        raise APIError(
            code="VALIDATION_ERROR",
            message="Request validation failed",
            status_code=400,
            details={
                "errors": [
                    {"loc": ["query", "high"], "msg": "high must be >= low and span at most 100 ranks"}
                ]
            },
        )
    entries = await matrix.list(dimension, feature, low, high)
    return LeaderboardResponse(
        dimension=dimension,
        feature=feature,
        low=low,
        high=high,
        results=[MatrixRow.from_entry(entry) for entry in entries],
    )


@router.get(
    "/dimensions/{dimension}/features/{feature}/entries/{entity_id}/around",
    response_model=AroundResponse,
)
async def get_around(
    dimension: str = Path(pattern=IDENTIFIER_PATTERN),
    feature: str = Path(pattern=IDENTIFIER_PATTERN),
    entity_id: str = Path(pattern=IDENTIFIER_PATTERN),
    distance: int = Query(default=2, ge=0, le=25),
    fill_borders: bool = Query(default=False),
    matrix: LeaderboardMatrix = Depends(get_matrix),
) -> AroundResponse:
    require_cell(matrix, dimension, feature)
    entries = await matrix.around(dimension, feature, entity_id, distance, fill_borders)
    if not entries:
        raise entry_not_found(entity_id)
    return AroundResponse(
        dimension=dimension,
        feature=feature,
        entity_id=entity_id,
        distance=distance,
        results=[MatrixRow.from_entry(entry) for entry in entries],
    )


# These probes are intended for infrastructure and do not need to appear in API docs.
@router.get("/healthz", response_model=HealthResponse, include_in_schema=False)
async def healthz() -> HealthResponse:
    return HealthResponse(status="ok")


@router.get("/readyz", response_model=ReadyResponse, include_in_schema=False)
async def readyz(request: Request) -> ReadyResponse:
    try:
        # Readiness verifies backing Redis connectivity, not just process liveness.
        is_ready = await request.app.state.redis.ping()
    except Exception as exc:
        raise APIError(
            code="REDIS_UNAVAILABLE",
            message="Redis readiness check failed",
            status_code=503,
        ) from exc

    if not is_ready:
        raise APIError(
            code="REDIS_UNAVAILABLE",
            message="Redis readiness check failed",
            status_code=503,
        )
    return ReadyResponse(status="ok")
