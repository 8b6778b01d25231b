"""FastAPI application entry point.

Run with: uvicorn src.main:app --reload --port 8000
"""

# ruff: noqa: E402  -- uvloop.install() must run before other imports

import uvloop

uvloop.install()

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError

from config.settings import settings
from src.bw_admin.api.router import router as admin_router
from src.bw_betting.api.router import router as bets_router
from src.bw_common.database import engine, is_transient_db_error
from src.bw_common.errors import AppError, InternalError, StoreUnavailableError
from src.bw_common.redis_client import close_redis, get_redis
from src.bw_common.response import error_response
from src.bw_gateway.api.router import router as auth_router
from src.bw_gateway.middleware.rate_limit import RateLimitMiddleware
from src.bw_gateway.middleware.request_log import RequestLogMiddleware
from src.bw_payment.api.router import router as payments_router
from src.bw_wallet.api.router import router as wallet_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: verify DB + Redis connections. Shutdown: dispose."""
    # Startup
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    await get_redis()
    yield
    # Shutdown
    await engine.dispose()
    await close_redis()


app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    lifespan=lifespan,
)


# Last added runs first: the request id exists before the limiter answers 429
app.add_middleware(RateLimitMiddleware)
app.add_middleware(RequestLogMiddleware)


def _render(request: Request, exc: AppError) -> JSONResponse:
    resp = error_response(exc.code, exc.message)
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return JSONResponse(status_code=exc.http_status, content=resp.model_dump())


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return _render(request, exc)


@app.exception_handler(DBAPIError)
async def db_error_handler(request: Request, exc: DBAPIError) -> JSONResponse:
    if is_transient_db_error(exc):
        logger.warning("transient store failure on %s: %s", request.url.path, exc.orig)
        return _render(request, StoreUnavailableError())
    logger.error("database error on %s", request.url.path, exc_info=exc)
    return _render(request, InternalError())


app.include_router(auth_router, prefix="/api/v1")
app.include_router(wallet_router, prefix="/api/v1")
app.include_router(bets_router, prefix="/api/v1")
app.include_router(payments_router, prefix="/api/v1")
app.include_router(admin_router, prefix="/api/v1")


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": "0.1.0"}
