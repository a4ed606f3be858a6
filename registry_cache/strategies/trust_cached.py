# registry_cache/strategies/trust_cached.py

from registry_cache.cache_store import CacheEntry
from registry_cache.strategies.base import FreshnessStrategy


class TrustCachedStrategy(FreshnessStrategy):
    """
    Любая существующая запись считается свежей.
    Политика по умолчанию для индексов, если реестру не передали другую.
    """

    def is_valid(self, entry: CacheEntry, now: float) -> bool:
        return True
