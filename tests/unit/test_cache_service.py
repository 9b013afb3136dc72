"""
Unit tests for the Redis cache layer (Redis replaced by an in-memory double).
"""

import fnmatch
from decimal import Decimal

from redis.exceptions import ConnectionError as RedisConnectionError

from storeflex.services.cache_service import CacheService


class InMemoryRedis:
    def __init__(self):
        self.data = {}
        self.fail = False

    def _check(self):
        if self.fail:
            raise RedisConnectionError('redis is down')

    def get(self, key):
        self._check()
        return self.data.get(key)

    def setex(self, key, ttl, value):
        self._check()
        self.data[key] = value

    def scan_iter(self, match=None, count=None):
        self._check()
        return [k for k in list(self.data) if fnmatch.fnmatch(k, match)]

    def delete(self, key):
        self.data.pop(key, None)


def _cache():
    cache = CacheService()
    cache.client = InMemoryRedis()
    cache._enabled = True
    return cache


class TestCacheService:
    def test_disabled_cache_always_loads(self, app):
        cache = CacheService(app)
        calls = []
        assert not cache.enabled
        assert cache.memoize(1, 'dashboard', 'summary', lambda: calls.append(1) or 'fresh') == 'fresh'
        assert cache.memoize(1, 'dashboard', 'summary', lambda: calls.append(1) or 'fresh') == 'fresh'
        assert len(calls) == 2

    def test_keys_are_tenant_scoped(self):
        cache = _cache()
        assert cache.key_for(7, 'moneyflow', 'summary') == 'storeflex:tenant:7:moneyflow:summary'

    def test_memoize_keeps_decimals(self):
        cache = _cache()
        value = {'receivables_total': Decimal('1250.50'), 'transactions': []}

        assert cache.memoize(1, 'moneyflow', 'summary', lambda: value) == value
        cached = cache.memoize(1, 'moneyflow', 'summary', lambda: {'receivables_total': Decimal('0')})

        assert cached['receivables_total'] == Decimal('1250.50')
        assert isinstance(cached['receivables_total'], Decimal)

    def test_invalidate_only_touches_one_tenant(self):
        cache = _cache()
        cache.set(1, 'dashboard', 'summary', 1)
        cache.set(2, 'dashboard', 'summary', 2)

        assert cache.invalidate_module(1, 'dashboard') == 1
        assert cache.get(1, 'dashboard', 'summary') is None
        assert cache.get(2, 'dashboard', 'summary') == 2

    def test_redis_failure_falls_back_to_loader(self):
        cache = _cache()
        cache.client.fail = True

        assert cache.get(1, 'dashboard', 'summary') is None
        assert cache.set(1, 'dashboard', 'summary', 1) is False
        assert cache.memoize(1, 'dashboard', 'summary', lambda: 'from db') == 'from db'
