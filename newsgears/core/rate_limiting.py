"""Rate limiting.

Two limiters:
- PrincipalRateLimiter with RateLimitMiddleware: every authenticated
  request consumes one hit from a per-username bucket
  (RATE_LIMIT_PER_PRINCIPAL, default 20/minute). When the bucket is empty
  the request is answered with 409 "Rate limit exceeded" and never reaches
  the endpoint. Anonymous requests have nothing to key on and are not
  limited here.
- limiter (slowapi): per-IP limits on the open endpoints that run before
  anyone is authenticated (login, registration, password reset).

Usage in routers:
    from newsgears.core.rate_limiting import limiter

    @router.post("/authenticate")
    @limiter.limit(settings.rate_limit_login)
    async def authenticate(request: Request, ...):
        ...
"""

import logging

from fastapi import Request, Response
from limits import RateLimitItem, parse
from limits.aio.storage import Storage
from limits.aio.strategies import FixedWindowRateLimiter
from limits.storage import storage_from_string
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse, PlainTextResponse
from starlette.types import ASGIApp

from newsgears.core.config import settings
from newsgears.core.principal import get_principal

logger = logging.getLogger(__name__)

RATE_LIMIT_EXCEEDED_BODY = "Rate limit exceeded"

_PRINCIPAL_NAMESPACE = "principal"
_ASYNC_SCHEME_PREFIX = "async+"


def async_storage_uri(storage_uri: str) -> str:
    """Map a limits storage URI onto its asyncio variant.

    "memory://" becomes "async+memory://"; URIs already carrying the
    prefix are returned unchanged.
    """
    if storage_uri.startswith(_ASYNC_SCHEME_PREFIX):
        return storage_uri
    return _ASYNC_SCHEME_PREFIX + storage_uri


class PrincipalRateLimiter:
    """Per-username request bucket.

    Uses the asyncio storage backends of `limits`, so a shared Redis bucket
    never blocks the event loop.

    Args:
        limit: Limit string, e.g. "20/minute".
        storage_uri: limits storage URI. "memory://" keeps buckets in
            process; "redis://host:6379" shares them across instances.
    """

    def __init__(self, limit: str, storage_uri: str = "memory://") -> None:
        self._item: RateLimitItem = parse(limit)
        self._storage: Storage = storage_from_string(async_storage_uri(storage_uri))
        self._strategy = FixedWindowRateLimiter(self._storage)

    @classmethod
    def from_settings(cls) -> "PrincipalRateLimiter":
        return cls(settings.rate_limit_per_principal, settings.rate_limit_storage_uri)

    async def try_consume(self, username: str) -> bool:
        """Take one hit from `username`'s bucket.

        Returns:
            True if the hit was allowed, False if the bucket is empty.
        """
        return await self._strategy.hit(self._item, _PRINCIPAL_NAMESPACE, username)

    async def remaining(self, username: str) -> int:
        stats = await self._strategy.get_window_stats(
            self._item, _PRINCIPAL_NAMESPACE, username
        )
        return stats.remaining

    async def reset(self) -> None:
        await self._storage.reset()


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Throttle authenticated requests by principal.

    Must run after AuthTokenMiddleware so the principal is installed.
    """

    def __init__(
        self, app: ASGIApp, limiter: PrincipalRateLimiter | None = None
    ) -> None:
        super().__init__(app)
        self.limiter = limiter or PrincipalRateLimiter.from_settings()

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Short-circuit with 409 when the principal's bucket is empty."""
        principal = get_principal(request)
        if (
            principal is not None
            and settings.rate_limit_enabled
            and not await self.limiter.try_consume(principal.username)
        ):
            logger.info(
                "Principal rate limit exceeded",
                extra={"username": principal.username, "path": request.url.path},
            )
            return PlainTextResponse(RATE_LIMIT_EXCEEDED_BODY, status_code=409)
        return await call_next(request)


# Per-IP limiter for open endpoints; shares RATE_LIMIT_STORAGE_URI with the
# per-principal buckets.
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=settings.rate_limit_storage_uri,
    enabled=settings.rate_limit_enabled,
)


def rate_limit_exceeded_handler(
    _request: Request,
    exc: RateLimitExceeded,
) -> Response:
    """Handle slowapi rate limit exceeded errors.

    Security: Returns 429 Too Many Requests with standard error envelope.

    Args:
        request: The incoming request.
        exc: The rate limit exception.

    Returns:
        JSONResponse with 429 status and retry-after header.
    """
    # Parse retry-after from exception detail (e.g., "5 per 15 minute")
    # Fallback to 60 seconds if parsing fails
    try:
        retry_after = str(exc.detail.split()[-1])
        int(retry_after.rstrip("s"))
    except (ValueError, AttributeError, IndexError):
        retry_after = "60"

    return JSONResponse(
        status_code=429,
        content={
            "error": {
                "code": "RATE_LIMITED",
                "message": f"Rate limit exceeded: {exc.detail}",
            }
        },
        headers={"Retry-After": retry_after},
    )
