# registry_cache/strategies/base.py

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from registry_cache.cache_store import CacheEntry


class FreshnessStrategy(ABC):
    """
    Базовый абстрактный класс для политик свежести закешированных ресурсов.
    Ресурс держит стратегию как подключаемую способность, а не наследует её.
    """

    @abstractmethod
    def is_valid(self, entry: "CacheEntry", now: float) -> bool:
        """
        Проверяет, считается ли запись актуальной в момент времени now.

        :param entry: объект CacheEntry для проверки
        :param now: текущее время (clock() реестра)
        :return: True, если запись можно отдать без обращения к источнику
        """
        ...

    def on_access(self, entry: "CacheEntry", now: float) -> None:
        """
        Вызывается при отдаче свежей записи (HIT). По умолчанию ничего не делает.
        """

    def on_update(self, entry: "CacheEntry", now: float) -> None:
        """
        Вызывается после того, как запись перезаписана свежими данными.
        """
