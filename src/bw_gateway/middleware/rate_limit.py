"""Fixed-window rate limiting backed by Redis.

Rules:
  - Auth endpoints:   5 req/min/IP     (anti brute-force)
  - Bet placement:   30 req/min/user
  - Everything else: 120 req/min/user (or IP when unauthenticated)
  - X-Forwarded-For is honoured only for TRUSTED_PROXY_COUNT hops.
  - Gateway webhooks and /health are never limited: M-Pesa retries must get through.

Key pattern: "ratelimit:{subject}:{group}:{window}" with INCR + EXPIRE.
If Redis is unreachable the request is let through and the failure logged;
the limiter protects capacity, it is not a correctness control.
"""

import logging
import time

from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from config.settings import settings
from src.bw_common.errors import InvalidCredentialsError, RateLimitError
from src.bw_common.redis_client import get_redis
from src.bw_common.response import error_response
from src.bw_gateway.auth.jwt_handler import decode_token

logger = logging.getLogger(__name__)

_WINDOW_SECONDS = 60
_EXEMPT_PREFIXES = ("/health", "/api/v1/payments/mpesa/")


def classify(method: str, path: str) -> tuple[str, int] | None:
    """Return (group, limit per window) for a request, or None when exempt."""
    if path.startswith(_EXEMPT_PREFIXES):
        return None
    if path.startswith("/api/v1/auth/"):
        return "auth", 5
    if method == "POST" and path.rstrip("/") == "/api/v1/bets":
        return "bets", 30
    return "api", 120


def _client_ip(request: Request) -> str:
    """Socket peer, or the address the outermost trusted proxy saw.

    Each proxy appends the address it received the request from, so with N
    trusted hops the client is the Nth entry from the right. Anything further
    left was written by the client and is ignored.
    """
    peer = request.client.host if request.client else "unknown"
    hops = settings.TRUSTED_PROXY_COUNT
    if hops <= 0:
        return peer
    forwarded = [
        part.strip() for part in request.headers.get("x-forwarded-for", "").split(",")
        if part.strip()
    ]
    if not forwarded:
        return peer
    return forwarded[-hops] if len(forwarded) >= hops else forwarded[0]


def _subject(request: Request, group: str) -> str:
    if group != "auth":
        auth = request.headers.get("authorization", "")
        if auth.lower().startswith("bearer "):
            try:
                return f"user:{decode_token(auth[7:], expected_type='access')['sub']}"
            except InvalidCredentialsError:
                pass  # the route itself will answer 401
    return f"ip:{_client_ip(request)}"


class RateLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        rule = classify(request.method, request.url.path)
        if not settings.RATE_LIMIT_ENABLED or rule is None:
            return await call_next(request)

        group, limit = rule
        window = int(time.time()) // _WINDOW_SECONDS
        key = f"ratelimit:{_subject(request, group)}:{group}:{window}"
        try:
            redis = await get_redis()
            count = await redis.incr(key)
            if count == 1:
                await redis.expire(key, _WINDOW_SECONDS)
        except RedisError:
            logger.warning("rate limiter unavailable, allowing %s", request.url.path, exc_info=True)
            return await call_next(request)

        if count > limit:
            err = RateLimitError()
            retry_after = _WINDOW_SECONDS - int(time.time()) % _WINDOW_SECONDS
            return JSONResponse(
                status_code=err.http_status,
                content=error_response(err.code, err.message).model_dump(),
                headers={"Retry-After": str(retry_after)},
            )
        return await call_next(request)
