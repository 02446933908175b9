import time
from typing import Dict, Iterable, Optional, Tuple

from fastapi import Request, status
from redis.asyncio import Redis
from starlette.middleware.base import BaseHTTPMiddleware

from geodiag.platform.response import api_response

WINDOW_SECONDS = 60


def _too_many_requests(retry_after: int):
    response = api_response(
        message="Too Many Requests - Rate limit exceeded.",
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        error_code="rate_limited",
    )
    response.headers["Retry-After"] = str(max(retry_after, 0))
    return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Fixed one-minute window per client IP and path.

    Counters live in Redis; `in_memory=True` keeps them in the process
    instead, for tests and single-worker local runs.
    """

    def __init__(
        self,
        app,
        limits: Dict[str, int],
        redis_url: str = "redis://localhost:6379/0",
        in_memory: bool = False,
        whitelist: Iterable[str] = (),
    ):
        super().__init__(app)
        self.limits = dict(limits)
        self.redis_url = redis_url
        self.in_memory = in_memory
        self.whitelist = set(whitelist)
        self.redis: Optional[Redis] = None
        self.memory_store: Dict[str, Tuple[int, float]] = {}

    async def dispatch(self, request: Request, call_next):
        client_ip = request.client.host if request.client else "testclient"

        if client_ip in self.whitelist:
            return await call_next(request)

        path = request.url.path
        limit = self.limits.get(path)
        if limit is None:
            return await call_next(request)

        if self.in_memory:
            key = f"{client_ip}:{path}"
            count, expiry = self.memory_store.get(key, (0, time.time() + WINDOW_SECONDS))

            if time.time() > expiry:
                count = 0
                expiry = time.time() + WINDOW_SECONDS

            if count >= limit:
                return _too_many_requests(int(expiry - time.time()))

            self.memory_store[key] = (count + 1, expiry)
            return await call_next(request)

        if self.redis is None:
            self.redis = Redis.from_url(self.redis_url, decode_responses=True)

        key = f"rl:{client_ip}:{path}"
        current_count = await self.redis.incr(key)
        if current_count == 1:
            await self.redis.expire(key, WINDOW_SECONDS)

        if current_count > limit:
            ttl = await self.redis.ttl(key)
            return _too_many_requests(ttl)

        return await call_next(request)
