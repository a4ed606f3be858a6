# registry_cache/mirror.py

from typing import Dict, Iterable, Optional, Union

import simpy

from registry_cache.cache_store import CacheStore
from registry_cache.config import Settings
from registry_cache.errors import RegistryCacheError
from registry_cache.logger import get_logger
from registry_cache.metrics import MetricsCollector
from registry_cache.registry import ResourceRegistry
from registry_cache.strategies.base import FreshnessStrategy
from registry_cache.strategies.fixed_ttl import FixedTTLStrategy
from registry_cache.strategies.trust_cached import TrustCachedStrategy
from registry_cache.upstream.base import Upstream
from registry_cache.upstream.http import HttpUpstream
from registry_cache.upstream.static import StaticUpstream

logger = get_logger(__name__)


class Mirror:
    """
    Фасад зеркала: строит окружение SimPy, кеш, внешний источник, политику
    свежести и реестр ресурсов по Settings и синхронно разрешает URL.
    """

    def __init__(self, settings: Settings, upstream: Optional[Upstream] = None):
        self.cfg = settings
        self.env = simpy.Environment()
        self.metrics = MetricsCollector()

        # 1) Кеш
        self.cache = CacheStore(self.cfg.cache.path)

        # 2) Внешний источник
        self.upstream = upstream or self._build_upstream()

        # 3) Реестр ресурсов
        rcfg = self.cfg.resource
        self.registry = ResourceRegistry(self.env, metrics=self.metrics)
        self.registry.configure(
            self.cache,
            upstream=self.upstream,
            read_only=rcfg.read_only,
            max_attempts=rcfg.max_attempts,
            index_strategy=self._build_strategy(),
            serve_stale_on_error=rcfg.serve_stale_on_error,
            read_only_serves_stale=rcfg.read_only_serves_stale,
        )

    def _build_upstream(self) -> Upstream:
        ucfg = self.cfg.upstream
        if ucfg.kind == "http":
            return HttpUpstream(
                self.env,
                timeout=ucfg.timeout,
                user_agent=ucfg.user_agent,
                pool_size=ucfg.pool_size,
            )
        if ucfg.kind == "static":
            return StaticUpstream(self.env, min_service=ucfg.min_service, max_service=ucfg.max_service)
        raise ValueError(f"Unknown upstream.kind «{ucfg.kind}» in config")

    def _build_strategy(self) -> FreshnessStrategy:
        rcfg = self.cfg.resource
        if rcfg.strategy == "fixed_ttl":
            return FixedTTLStrategy(ttl=rcfg.fixed_ttl.ttl)
        if rcfg.strategy == "trust_cached":
            return TrustCachedStrategy()
        raise ValueError(f"Unknown resource.strategy «{rcfg.strategy}» in config")

    def resolve(self, url: str) -> str:
        """
        Разрешить один URL до локального пути.

        :raises RegistryCacheError: если ресурс не удалось получить
        """
        proc = self.registry.get(url).get_readable_path()
        return self.env.run(until=proc)

    def resolve_many(self, urls: Iterable[str]) -> Dict[str, Union[str, RegistryCacheError]]:
        """
        Разрешить несколько URL параллельно; ошибки возвращаются вместо путей.
        """
        results: Dict[str, Union[str, RegistryCacheError]] = {}

        def collect(url):
            def callback(err, path):
                results[url] = err if err is not None else path
            return callback

        for url in urls:
            self.registry.get(url).get_readable_path(collect(url))

        self.env.run()
        return results

    def export_metrics(self) -> Optional[str]:
        if not (self.cfg.output and self.cfg.output.path):
            return None
        self.metrics.export(self.cfg.output.path)
        return self.cfg.output.path
