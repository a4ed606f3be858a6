# registry_cache/strategies/fixed_ttl.py

from registry_cache.cache_store import CacheEntry
from registry_cache.logger import get_logger
from registry_cache.strategies.base import FreshnessStrategy

logger = get_logger(__name__)


class FixedTTLStrategy(FreshnessStrategy):
    """
    Политика свежести с фиксированным временем жизни (TTL).
    Запись считается валидной, если с момента последнего обновления прошло не более ttl.
    """

    def __init__(self, ttl: float):
        """
        :param ttl: время жизни записи в секундах
        """
        if ttl < 0:
            raise ValueError("TTL must be non-negative")
        self.ttl = ttl
        logger.info(f"FixedTTLStrategy initialized with ttl={ttl}")

    def is_valid(self, entry: CacheEntry, now: float) -> bool:
        age = now - entry.timestamp
        valid = age <= self.ttl
        logger.debug(
            f"is_valid: now={now:.2f}, entry_ts={entry.timestamp:.2f}, age={age:.2f}, ttl={self.ttl}, valid={valid}")
        return valid

    def on_update(self, entry: CacheEntry, now: float) -> None:
        logger.debug(f"on_update: {entry.path} refreshed at t={now:.2f}")
