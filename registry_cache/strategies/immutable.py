# registry_cache/strategies/immutable.py

from registry_cache.cache_store import CacheEntry
from registry_cache.strategies.base import FreshnessStrategy


class ImmutableStrategy(FreshnessStrategy):
    """
    Политика для тарболов: URL тарбола адресует конкретную версию
    и никогда не меняется на месте, поэтому закешированный тарбол всегда свеж.
    """

    def is_valid(self, entry: CacheEntry, now: float) -> bool:
        return True
