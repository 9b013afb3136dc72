"""
Redis cache for tenant read models (dashboard, moneyflow, reports).

Keys are tenant-isolated and the cache degrades to a no-op when Redis is
disabled or unreachable: callers always fall back to the database.
"""

import json
import logging
from datetime import datetime, date
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

import redis
from redis.exceptions import RedisError, ConnectionError, TimeoutError
from flask import Flask, current_app, has_app_context

logger = logging.getLogger(__name__)

# Read models derived from stock, balances and activities.
LEDGER_VIEW_MODULES = ('dashboard', 'moneyflow', 'reports')


class CacheService:
    """
    Redis-based caching service with multi-tenant support.

    Keys pattern: {prefix}:tenant:{tenant_id}:{module}:{key}
    """

    def __init__(self, app: Optional[Flask] = None):
        self.client: Optional[redis.Redis] = None
        self._enabled: bool = False
        self._prefix: str = 'storeflex'
        self._default_ttl: int = 60

        if app:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        """Connect to Redis using the app config; disable the cache on failure."""
        self._enabled = app.config.get('CACHE_ENABLED', True)
        self._prefix = app.config.get('CACHE_KEY_PREFIX', 'storeflex')
        self._default_ttl = app.config.get('CACHE_DEFAULT_TTL', 60)
        redis_url = app.config.get('REDIS_URL', 'redis://redis:6379/0')

        if not self._enabled:
            logger.info("[CACHE] Cache is DISABLED via config")
            return

        try:
            self.client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=3,
                socket_timeout=3,
                retry_on_timeout=True,
                health_check_interval=30
            )
            self.client.ping()
            logger.info(f"[CACHE] Redis connected: {redis_url}")
        except (ConnectionError, TimeoutError, RedisError) as e:
            logger.warning(f"[CACHE] Redis connection failed: {e}. Cache DISABLED.")
            self._enabled = False
            self.client = None

    @property
    def enabled(self) -> bool:
        return self._enabled and self.client is not None

    def key_for(self, tenant_id: int, module: str, key: str) -> str:
        """Build tenant-isolated cache key."""
        return f"{self._prefix}:tenant:{tenant_id}:{module}:{key}"

    @staticmethod
    def dumps(value: Any) -> str:
        """JSON encode, keeping Decimals exact and dates as ISO strings."""
        def default_handler(obj: Any) -> Any:
            if isinstance(obj, (datetime, date)):
                return obj.isoformat()
            if isinstance(obj, Decimal):
                return {"__decimal__": str(obj)}
            raise TypeError(f"Object of type {type(obj)} is not JSON serializable")
        return json.dumps(value, default=default_handler)

    @staticmethod
    def loads(value: str) -> Any:
        def object_hook(dct: Dict[str, Any]) -> Any:
            if "__decimal__" in dct:
                return Decimal(dct["__decimal__"])
            return dct
        return json.loads(value, object_hook=object_hook)

    def get(self, tenant_id: int, module: str, key: str) -> Optional[Any]:
        if not self.enabled:
            return None
        try:
            value = self.client.get(self.key_for(tenant_id, module, key))
            return None if value is None else self.loads(value)
        except (RedisError, json.JSONDecodeError) as e:
            logger.warning(f"[CACHE] Get error: {e}")
            return None

    def set(self, tenant_id: int, module: str, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        if not self.enabled:
            return False
        try:
            self.client.setex(self.key_for(tenant_id, module, key), ttl or self._default_ttl, self.dumps(value))
            return True
        except (RedisError, TypeError) as e:
            logger.warning(f"[CACHE] Set error: {e}")
            return False

    def memoize(self, tenant_id: int, module: str, key: str, loader_fn: Callable[[], Any],
                ttl: Optional[int] = None) -> Any:
        """Cache-aside: return the cached value or load, store and return it."""
        cached = self.get(tenant_id, module, key)
        if cached is not None:
            return cached
        value = loader_fn()
        self.set(tenant_id, module, key, value, ttl)
        return value

    def invalidate_module(self, tenant_id: int, module: str) -> int:
        """Delete every key of one module for a tenant."""
        if not self.enabled:
            return 0
        pattern = self.key_for(tenant_id, module, '*')
        try:
            deleted = 0
            for cache_key in self.client.scan_iter(match=pattern, count=100):
                self.client.delete(cache_key)
                deleted += 1
            if deleted:
                logger.info(f"[CACHE] INVALIDATE: {pattern} ({deleted} keys)")
            return deleted
        except RedisError as e:
            logger.warning(f"[CACHE] Invalidate error: {e}")
            return 0


_cache_service: Optional[CacheService] = None


def init_cache(app: Flask) -> None:
    """Initialize cache service singleton."""
    global _cache_service
    _cache_service = CacheService(app)
    app.extensions['cache'] = _cache_service


def cached_view(tenant_id: int, module: str, key: str, loader_fn: Callable[[], Any],
                ttl_config_key: Optional[str] = None) -> Any:
    """Serve a read model through the cache when one is configured."""
    if _cache_service is None or not tenant_id:
        return loader_fn()
    ttl = None
    if ttl_config_key and has_app_context():
        ttl = current_app.config.get(ttl_config_key)
    return _cache_service.memoize(tenant_id, module, key, loader_fn, ttl)


def invalidate_ledger_views(tenant_id: int) -> None:
    """Drop cached read models after a committed ledger write. Never raises."""
    if _cache_service is None or not tenant_id:
        return
    for module in LEDGER_VIEW_MODULES:
        _cache_service.invalidate_module(tenant_id, module)
