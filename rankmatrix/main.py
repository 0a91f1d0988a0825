"""FastAPI application wiring for routes, error handlers, and lifespan."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from redis.asyncio import Redis

from rankmatrix.api.errors import APIError, from_domain_error
from rankmatrix.api.routes import router
from rankmatrix.config import Settings
from rankmatrix.errors import RankMatrixError
from rankmatrix.models.schemas import ErrorBody, ErrorResponse
from rankmatrix.services.matrix import LeaderboardMatrix
from rankmatrix.storage.redis import create_redis_client

logger = logging.getLogger(__name__)


def error_response(exc: APIError) -> JSONResponse:
    payload = ErrorResponse(
        error=ErrorBody(code=exc.code, message=exc.message, details=exc.details),
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=payload.model_dump(exclude_none=True),
    )


def create_app(settings: Settings | None = None, redis_client: Redis | None = None) -> FastAPI:
    """Build the app. ``redis_client`` overrides ``settings.redis_url`` and is closed on shutdown."""
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def app_lifespan(app: FastAPI):
        logging.basicConfig(level=settings.log_level)
        client = redis_client or create_redis_client(settings.redis_url)
        app.state.redis = client
        app.state.matrix = LeaderboardMatrix(client, settings.matrix)
        try:
            yield
        finally:
            await client.aclose()

    app = FastAPI(title="Leaderboard Matrix API", version="1.0.0", lifespan=app_lifespan)

    @app.exception_handler(APIError)
    async def api_error_handler(_: Request, exc: APIError) -> JSONResponse:
        return error_response(exc)

    @app.exception_handler(RankMatrixError)
    async def domain_error_handler(_: Request, exc: RankMatrixError) -> JSONResponse:
        logger.warning("%s: %s %s", type(exc).__name__, exc.message, exc.details)
        return error_response(from_domain_error(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
        payload = ErrorResponse(
            error=ErrorBody(
                code="VALIDATION_ERROR",
                message="Request validation failed",
                details={"errors": exc.errors()},
            ),
        )
        return JSONResponse(status_code=400, content=payload.model_dump(exclude_none=True))

    app.include_router(router)
    return app


app = create_app()
