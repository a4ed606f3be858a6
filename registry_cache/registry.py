# registry_cache/registry.py

import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

import simpy

from registry_cache.cache_store import CacheStore
from registry_cache.checksum import ChecksumVerifier
from registry_cache.errors import RegistryNotConfigured
from registry_cache.logger import get_logger
from registry_cache.metrics import MetricsCollector
from registry_cache.resource import Resource
from registry_cache.strategies.base import FreshnessStrategy
from registry_cache.strategies.trust_cached import TrustCachedStrategy
from registry_cache.upstream.base import Upstream

logger = get_logger(__name__)


@dataclass
class ResourceOptions:
    """
    Опции, которые каждый ресурс читает в момент разрешения.
    """
    cache: CacheStore
    upstream: Optional[Upstream] = None
    read_only: bool = False
    max_attempts: int = 3
    index_strategy: FreshnessStrategy = field(default_factory=TrustCachedStrategy)
    verifier: ChecksumVerifier = field(default_factory=ChecksumVerifier)
    serve_stale_on_error: bool = False
    read_only_serves_stale: bool = False


class ResourceRegistry:
    """
    Таблица single-flight: ровно один Resource на каждый URL.

    Это явный объект состояния, а не глобальная переменная модуля: его создают
    один раз на процесс, настраивают через configure() и передают по ссылке.
    Между логическими прогонами сам он не сбрасывается: для изоляции нужно
    вызвать clear() и/или configure() заново.
    """

    def __init__(
            self,
            env: simpy.Environment,
            metrics: Optional[MetricsCollector] = None,
            clock: Callable[[], float] = time.time,
    ):
        self.env = env
        self.metrics = metrics or MetricsCollector()
        self.clock = clock
        self._options: Optional[ResourceOptions] = None
        self._resources: Dict[str, Resource] = {}

    def __len__(self) -> int:
        return len(self._resources)

    def __contains__(self, url: str) -> bool:
        return url in self._resources

    @property
    def options(self) -> ResourceOptions:
        if self._options is None:
            raise RegistryNotConfigured("ResourceRegistry.configure() must be called before use")
        return self._options

    def configure(
            self,
            cache: CacheStore,
            *,
            upstream: Optional[Upstream] = None,
            read_only: bool = False,
            max_attempts: int = 3,
            index_strategy: Optional[FreshnessStrategy] = None,
            verifier: Optional[ChecksumVerifier] = None,
            serve_stale_on_error: bool = False,
            read_only_serves_stale: bool = False,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if upstream is None and not read_only:
            raise ValueError("an upstream is required unless read_only is set")

        self._options = ResourceOptions(
            cache=cache,
            upstream=upstream,
            read_only=read_only,
            max_attempts=max_attempts,
            index_strategy=index_strategy or TrustCachedStrategy(),
            verifier=verifier or ChecksumVerifier(),
            serve_stale_on_error=serve_stale_on_error,
            read_only_serves_stale=read_only_serves_stale,
        )
        logger.info(
            f"ResourceRegistry configured: cache={cache.path}, read_only={read_only}, "
            f"max_attempts={max_attempts}, index_strategy={type(self._options.index_strategy).__name__}"
        )

    def get(self, url: str) -> Resource:
        """
        Вернуть единственный Resource для url, создав его при первом обращении.
        Никакого сетевого или дискового ввода-вывода здесь нет.
        """
        if self._options is None:
            raise RegistryNotConfigured(f"cannot get {url}: registry is not configured", url=url)
        resource = self._resources.get(url)
        if resource is None:
            resource = Resource(url, self)
            self._resources[url] = resource
            logger.debug(f"new {resource}")
        return resource

    def clear(self) -> None:
        """
        Забыть все ресурсы. Кеш на диске не трогается.
        """
        self._resources.clear()
