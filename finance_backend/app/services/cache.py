"""
Report Caching Service.

Redis-backed cache for report responses. Keys are versioned per route so a
whole route can be invalidated with a single INCR.
"""

import json
import hashlib
import logging
from typing import Any, Dict, Iterable, Optional
from redis.exceptions import RedisError
from finance_backend.app.core.config import settings
from finance_backend.app.core.redis_client import get_redis

logger = logging.getLogger(__name__)

# Routes whose cached responses depend on revenue data
FINANCIAL_REPORT_ROUTES = ("/relatorios/financeiro", "/dashboard")

VERSION_KEY_PREFIX = "report-cache-version:"
ENTRY_KEY_PREFIX = "report-cache:"


def _params_digest(params: Dict[str, Any]) -> str:
    encoded = json.dumps(params, sort_keys=True, default=str)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()[:32]


class ReportCache:
    """
    Route-versioned report cache.

    Redis failures degrade to cache misses; they never fail a report or
    the revenue pipeline.
    """

    def __init__(self, client=None):
        self._client = client

    async def _redis(self):
        if self._client is None:
            self._client = await get_redis()
        return self._client

    async def _version(self, route: str) -> int:
        client = await self._redis()
        raw = await client.get(f"{VERSION_KEY_PREFIX}{route}")
        return int(raw) if raw else 0

    async def _key(self, route: str, params: Dict[str, Any]) -> str:
        version = await self._version(route)
        return f"{ENTRY_KEY_PREFIX}{route}:v{version}:{_params_digest(params)}"

    async def get(self, route: str, params: Dict[str, Any]) -> Optional[Any]:
        try:
            client = await self._redis()
            raw = await client.get(await self._key(route, params))
        except (RedisError, OSError):
            logger.warning("Report cache read failed", extra={"route": route}, exc_info=True)
            return None
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, route: str, params: Dict[str, Any], data: Any, ttl_seconds: int = None):
        ttl_seconds = ttl_seconds or settings.report_cache_ttl_seconds
        try:
            client = await self._redis()
            await client.set(await self._key(route, params), json.dumps(data, default=str), ex=ttl_seconds)
        except (RedisError, OSError):
            logger.warning("Report cache write failed", extra={"route": route}, exc_info=True)

    async def invalidate(self, routes: Iterable[str] = FINANCIAL_REPORT_ROUTES) -> bool:
        """Bump the version of each route. Returns False if Redis was unreachable."""
        try:
            client = await self._redis()
            for route in routes:
                await client.incr(f"{VERSION_KEY_PREFIX}{route}")
        except (RedisError, OSError):
            logger.warning("Report cache invalidation failed", extra={"routes": list(routes)}, exc_info=True)
            return False
        return True

    async def clear(self) -> bool:
        return await self.invalidate(FINANCIAL_REPORT_ROUTES)
