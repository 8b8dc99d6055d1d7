"""Redis-backed rate limiting utilities."""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable
from functools import lru_cache
from ipaddress import ip_address, ip_network, IPv4Address, IPv4Network, IPv6Address, IPv6Network
from typing import Callable, Iterable, Protocol, runtime_checkable

from fastapi import HTTPException, status
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.types import ASGIApp

from core import resolve_token_subject, settings

logger = logging.getLogger(__name__)


@runtime_checkable
class SupportsRateLimitClient(Protocol):
    async def incr(self, key: str) -> int: ...

    async def expire(self, key: str, ttl: int) -> None: ...


GENERAL_SCOPE = "general"
AUTH_SCOPE = "auth"
CREATE_POST_SCOPE = "create_post"
RATE_LIMIT_SCOPES = (GENERAL_SCOPE, AUTH_SCOPE, CREATE_POST_SCOPE)
AUTH_PATH_PREFIX = "/api/v1/auth"

_SCOPE_MESSAGES = {
    GENERAL_SCOPE: "Too many requests from this client, please try again later.",
    AUTH_SCOPE: "Too many authentication attempts, please try again later.",
    CREATE_POST_SCOPE: "Too many posts created, please try again later.",
}


def _scope_limit(scope: str) -> int:
    if scope == AUTH_SCOPE:
        return settings.auth_rate_limit_requests
    if scope == CREATE_POST_SCOPE:
        return settings.post_rate_limit_requests
    return settings.rate_limit_requests


def _parse_networks() -> tuple[IPv4Network | IPv6Network, ...]:
    networks: list[IPv4Network | IPv6Network] = []
    for cidr in settings.rate_limit_trusted_proxies:
        try:
            networks.append(ip_network(cidr, strict=False))
        except ValueError as exc:  # pragma: no cover - invalid configuration
            raise ValueError(f"Invalid CIDR in RATE_LIMIT_TRUSTED_PROXIES: {cidr}") from exc
    return tuple(networks)


@lru_cache
def _trusted_proxy_networks() -> tuple[IPv4Network | IPv6Network, ...]:
    return _parse_networks()


def _extract_client_ip_from_headers(request: Request) -> str | None:
    for header in settings.rate_limit_ip_headers:
        value = request.headers.get(header)
        if not value:
            continue
        for candidate in value.split(","):
            ip_candidate = candidate.strip()
            if not ip_candidate:
                continue
            try:
                ip_address(ip_candidate)
            except ValueError:
                continue
            return ip_candidate
    return None


def _extract_bearer_token(request: Request) -> str | None:
    authorization = request.headers.get("authorization")
    if not authorization:
        return None

    scheme, _, value = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = value.strip()
    return token or None


def _extract_authenticated_client_identifier(request: Request) -> str | None:
    bearer_token = _extract_bearer_token(request)
    if not bearer_token:
        return None
    try:
        user_id = resolve_token_subject(bearer_token)
    except ValueError:
        return None
    return f"user:{user_id}"


def _remote_ip(request: Request) -> tuple[str | None, IPv4Address | IPv6Address | None]:
    host = request.client.host if request.client else None
    if not host:
        return None, None
    try:
        addr = ip_address(host)
    except ValueError:
        return host, None
    return host, addr


def _is_trusted_proxy(remote_ip: IPv4Address | IPv6Address | None) -> bool:
    if remote_ip is None:
        return False
    return any(remote_ip in network for network in _trusted_proxy_networks())


def default_client_identifier(request: Request) -> str:
    """Resolve a stable client identifier for rate limiting."""
    remote_host, remote_ip = _remote_ip(request)

    authenticated_identifier = _extract_authenticated_client_identifier(request)
    if authenticated_identifier is not None:
        return authenticated_identifier

    # Only trust forwarded source IP headers from explicitly configured
    # proxy/load balancer networks.
    if _is_trusted_proxy(remote_ip):
        forwarded_ip = _extract_client_ip_from_headers(request)
        if forwarded_ip:
            return forwarded_ip

    if remote_host:
        return remote_host

    return "anonymous"


class RateLimiter:
    """Simple fixed-window rate limiter backed by Redis."""

    def __init__(
        self,
        redis_client: SupportsRateLimitClient,
        limit: int,
        window_seconds: int,
        prefix: str = "rate-limit",
    ) -> None:
        self.redis = redis_client
        self.limit = max(limit, 0)
        self.window_seconds = max(window_seconds, 0)
        self.prefix = prefix

    async def allow(self, key: str) -> bool:
        """Return True when the request should be allowed, False if limited."""
        if self.limit == 0 or self.window_seconds == 0:
            return True

        bucket = int(time.time()) // self.window_seconds
        redis_key = f"{self.prefix}:{key}:{bucket}"

        count = await self.redis.incr(redis_key)
        if count == 1:
            await self.redis.expire(redis_key, self.window_seconds)
        return count <= self.limit


@lru_cache
def get_redis_client() -> SupportsRateLimitClient:
    """Return a cached async Redis client."""
    return Redis.from_url(settings.redis_url, decode_responses=False)


_cached_rate_limiters: dict[str, RateLimiter | None] = {}


def get_rate_limiter(scope: str = GENERAL_SCOPE) -> RateLimiter | None:
    """Accessor for the shared limiter of ``scope``."""
    if scope not in _cached_rate_limiters:
        _cached_rate_limiters[scope] = RateLimiter(
            redis_client=get_redis_client(),
            limit=_scope_limit(scope),
            window_seconds=settings.rate_limit_window_seconds,
            prefix=f"rate-limit:{scope}",
        )
    return _cached_rate_limiters[scope]


def set_rate_limiter(limiter: RateLimiter | None, *scopes: str) -> None:
    """Override cached limiters (primarily for tests).

    Without explicit scopes every scope is overridden; passing ``None`` resets
    them so the next access builds Redis-backed limiters again.
    """
    for scope in scopes or RATE_LIMIT_SCOPES:
        if limiter is None:
            _cached_rate_limiters.pop(scope, None)
        else:
            _cached_rate_limiters[scope] = limiter


async def _is_allowed(limiter: RateLimiter, client_key: str, *, fail_closed: bool) -> bool:
    try:
        return await limiter.allow(client_key)
    except Exception as exc:  # pragma: no cover - defensive fallback for Redis outages
        logger.warning("Rate limiter unavailable", exc_info=exc)
        if fail_closed:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Service unavailable",
            ) from exc
        return True


def rate_limit(scope: str) -> Callable[[Request], Awaitable[None]]:
    """Build a route dependency enforcing the limiter for ``scope``."""

    async def _enforce(request: Request) -> None:
        limiter = get_rate_limiter(scope)
        if limiter is None:
            return
        client_key = default_client_identifier(request)
        allowed = await _is_allowed(limiter, client_key, fail_closed=scope == AUTH_SCOPE)
        if not allowed:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=_SCOPE_MESSAGES[scope],
                headers={"Retry-After": str(limiter.window_seconds)},
            )

    return _enforce


class RateLimitMiddleware(BaseHTTPMiddleware):
    """ASGI middleware that enforces the general rate limit."""

    def __init__(
        self,
        app: ASGIApp,
        limiter_factory: Callable[[], RateLimiter | None],
        exempt_paths: Iterable[str] | None = None,
        client_identifier: Callable[[Request], str] | None = None,
    ) -> None:
        super().__init__(app)
        self.limiter_factory = limiter_factory
        self.exempt_paths = set(exempt_paths or ())
        self.client_identifier = client_identifier or default_client_identifier

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint):
        path = request.url.path
        if path in self.exempt_paths:
            return await call_next(request)

        try:
            limiter = self.limiter_factory()
        except Exception as exc:  # pragma: no cover - defensive fallback
            logger.warning("Rate limiter could not be created", exc_info=exc)
            limiter = None

        if limiter is None:
            return await call_next(request)

        client_key = self.client_identifier(request) or "anonymous"
        try:
            allowed = await _is_allowed(limiter, client_key, fail_closed=_is_auth_path(path))
        except HTTPException as exc:
            return JSONResponse({"error": exc.detail}, status_code=exc.status_code)

        if not allowed:
            return JSONResponse(
                {
                    "error": _SCOPE_MESSAGES[GENERAL_SCOPE],
                    "retryAfter": limiter.window_seconds,
                },
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                headers={"Retry-After": str(limiter.window_seconds)},
            )

        return await call_next(request)


def _is_auth_path(path: str) -> bool:
    return path == AUTH_PATH_PREFIX or path.startswith(f"{AUTH_PATH_PREFIX}/")
