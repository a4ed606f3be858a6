# registry_cache/resource.py

"""
Ресурс зеркала: один экземпляр на каждый URL.

Ресурс бывает двух видов:

* index – документ-индекс пакета (все опубликованные версии);
* tar   – неизменяемый тарбол одной версии.

Единственная внешняя операция – ``get_readable_path()``: вернуть путь к
локальному файлу, при необходимости скачав и проверив содержимое.
Параллельные вызовы на одном ресурсе склеиваются в один запрос к источнику.
"""

from __future__ import annotations

import json
import posixpath
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional
from urllib.parse import urlparse, urlunparse

import simpy

from registry_cache.errors import (
    ChecksumMismatch,
    MalformedIndex,
    RegistryCacheError,
    UpstreamError,
    UpstreamNotFound,
    error_for_status,
)
from registry_cache.logger import get_logger
from registry_cache.strategies.base import FreshnessStrategy
from registry_cache.strategies.immutable import ImmutableStrategy

if TYPE_CHECKING:
    from registry_cache.registry import ResourceRegistry

logger = get_logger(__name__)

ARCHIVE_EXTENSIONS = (".tgz", ".tar.gz")
SCOPE_SEPARATOR = "%2f"

Callback = Callable[[Optional[RegistryCacheError], Optional[str]], None]


class ResourceKind(str, Enum):
    INDEX = "index"
    TAR = "tar"


class ResourceState(str, Enum):
    NOT_CACHED = "not_cached"
    CHECKING = "checking"
    FETCHING = "fetching"
    VERIFYING = "verifying"
    READY = "ready"
    FAILED = "failed"


# --------------------------------------------------------------------------- #
#   Разбор URL                                                                #
# --------------------------------------------------------------------------- #
def classify(url: str) -> ResourceKind:
    path = urlparse(url).path.lower()
    return ResourceKind.TAR if path.endswith(ARCHIVE_EXTENSIONS) else ResourceKind.INDEX


def _strip_archive_extension(name: str) -> str:
    for ext in ARCHIVE_EXTENSIONS:
        if name.lower().endswith(ext):
            return name[:-len(ext)]
    return name


def _split_package_path(path: str):
    """
    Разделить путь на (базовые сегменты, имя пакета).
    Для scoped-пакетов «@scope/name» склеивается через %2f.
    """
    if "/-/" in path:
        path = path.split("/-/", 1)[0]
    segments = [s for s in path.split("/") if s]
    if not segments:
        return [], ""
    if len(segments) >= 2 and segments[-2].startswith("@"):
        return segments[:-2], f"{segments[-2]}{SCOPE_SEPARATOR}{segments[-1]}"
    name = segments[-1].replace("%2F", SCOPE_SEPARATOR)
    return segments[:-1], name


def package_name(url: str) -> str:
    """
    >>> package_name("https://registry.npmjs.com/foo/-/foo-1.0.0.tgz")
    'foo'
    >>> package_name("https://registry.npmjs.com/@angular/common/-/common-1.0.0.tgz")
    '@angular%2fcommon'
    """
    path = urlparse(url).path
    if classify(url) is ResourceKind.TAR and "/-/" not in path:
        return _strip_archive_extension(posixpath.basename(path))
    return _split_package_path(path)[1]


def index_url_for(url: str) -> str:
    """
    URL документа-индекса, к которому относится тарбол.
    """
    parsed = urlparse(url)
    base, name = _split_package_path(parsed.path)
    path = "/" + "/".join(base + [name]) if name else "/"
    return urlunparse((parsed.scheme, parsed.netloc, path, "", "", ""))


def find_expected_digest(document: dict, tarball_name: str) -> Optional[str]:
    """
    Найти в индексе ``dist.shasum`` (или ``dist.integrity``) версии,
    чей ``dist.tarball`` оканчивается на ``tarball_name``.
    """
    versions = document.get("versions")
    if not isinstance(versions, dict):
        return None
    for meta in versions.values():
        dist = meta.get("dist") if isinstance(meta, dict) else None
        if not isinstance(dist, dict):
            continue
        tarball = dist.get("tarball")
        if not tarball or posixpath.basename(urlparse(tarball).path) != tarball_name:
            continue
        return dist.get("shasum") or dist.get("integrity")
    return None


def parse_index(body: bytes, url: str) -> dict:
    try:
        document = json.loads(body)
    except (UnicodeDecodeError, ValueError) as exc:
        raise MalformedIndex(f"{url}: index is not valid JSON ({exc})", url=url) from exc
    if not isinstance(document, dict):
        raise MalformedIndex(f"{url}: index is not a JSON object", url=url)
    return document


# --------------------------------------------------------------------------- #
#   Ресурс                                                                    #
# --------------------------------------------------------------------------- #
class Resource:
    """
    Один логический ресурс реестра. Создаётся только через ResourceRegistry.get().
    """

    method = "GET"

    def __init__(self, url: str, registry: "ResourceRegistry"):
        self.url = url
        self.type = classify(url)
        self.state = ResourceState.NOT_CACHED
        self._registry = registry
        self._freshness: Optional[FreshnessStrategy] = None
        self._inflight: Optional[simpy.Process] = None

    def __repr__(self):
        return f"Resource({self.url!r}, type={self.type.value}, state={self.state.value})"

    @property
    def env(self) -> simpy.Environment:
        return self._registry.env

    # ------------------------------------------------------------------------- #
    #                             Производные свойства                          #
    # ------------------------------------------------------------------------- #
    def get_package_name(self) -> str:
        return package_name(self.url)

    @property
    def package_name(self) -> str:
        return package_name(self.url)

    @property
    def index_url(self) -> str:
        return index_url_for(self.url)

    @property
    def tarball_name(self) -> str:
        return posixpath.basename(urlparse(self.url).path)

    # ------------------------------------------------------------------------- #
    #                                  Свежесть                                 #
    # ------------------------------------------------------------------------- #
    @property
    def freshness(self) -> FreshnessStrategy:
        if self._freshness is not None:
            return self._freshness
        if self.type is ResourceKind.TAR:
            return _IMMUTABLE
        return self._registry.options.index_strategy

    @freshness.setter
    def freshness(self, strategy: Optional[FreshnessStrategy]) -> None:
        self._freshness = strategy

    def is_up_to_date(self) -> bool:
        """
        Можно ли отдать закешированную запись без обращения к источнику.
        Экземпляр может подменить этот метод (r.is_up_to_date = lambda: False).
        """
        entry = self._registry.options.cache.entry(self.url, self.method)
        if entry is None:
            return False
        return self.freshness.is_valid(entry, self._registry.clock())

    # ------------------------------------------------------------------------- #
    #                              Основной процесс                             #
    # ------------------------------------------------------------------------- #
    def get_readable_path(self, callback: Optional[Callback] = None) -> simpy.Process:
        """
        Запустить разрешение ресурса.

        :param callback: необязательный ``callback(error, path)``; если передан,
                         ошибка считается обработанной и не роняет планировщик
        :return: процесс SimPy, завершающийся путём или RegistryCacheError
        """
        proc = self.env.process(self._resolve())
        if callback is not None:
            proc.callbacks.append(lambda event: _deliver(event, callback))
        return proc

    def refresh(self, callback: Optional[Callback] = None) -> simpy.Process:
        """
        То же, что get_readable_path(), но закешированная запись считается
        устаревшей независимо от стратегии свежести.
        """
        proc = self.env.process(self._resolve(force=True))
        if callback is not None:
            proc.callbacks.append(lambda event: _deliver(event, callback))
        return proc

    def _resolve(self, force: bool = False):
        opts = self._registry.options
        metrics = self._registry.metrics

        if self._inflight is None:
            self.state = ResourceState.CHECKING
        cached_path = opts.cache.lookup(self.url, self.method)

        if cached_path is not None:
            if not force and self.is_up_to_date():
                metrics.record_hit()
                entry = opts.cache.entry(self.url, self.method)
                if entry is not None:
                    self.freshness.on_access(entry, self._registry.clock())
                logger.debug(f"t={self.env.now:.2f}: HIT {self.url}")
                self.state = ResourceState.READY
                return cached_path

            metrics.record_stale()
            logger.debug(f"t={self.env.now:.2f}: STALE {self.url}")
            if opts.read_only and opts.read_only_serves_stale and not force:
                metrics.record_stale_served()
                logger.warning(f"read-only: serving stale {self.url}")
                self.state = ResourceState.READY
                return cached_path
        else:
            metrics.record_miss()
            logger.debug(f"t={self.env.now:.2f}: MISS {self.url}")

        if opts.read_only:
            self.state = ResourceState.FAILED
            error = UpstreamNotFound(f"{self.url}: not cached (read-only)", url=self.url)
            metrics.record_failure(self.url, error)
            raise error

        # один fetch на ресурс в любой момент времени
        if self._inflight is None:
            self._inflight = self.env.process(self._fetch(cached_path))
        else:
            metrics.record_coalesced()
            logger.debug(f"t={self.env.now:.2f}: joining in-flight fetch of {self.url}")

        path = yield self._inflight
        return path

    def _fetch(self, stale_path: Optional[str]):
        opts = self._registry.options
        try:
            if self.type is ResourceKind.TAR:
                path = yield from self._fetch_tar()
            else:
                path = yield from self._fetch_index()
        except UpstreamError as exc:
            if stale_path is not None and opts.serve_stale_on_error:
                self._registry.metrics.record_stale_served()
                logger.warning(f"{self.url}: upstream failed ({exc.status_code}), serving stale copy")
                self.state = ResourceState.READY
                return stale_path
            self._fail(exc)
            raise
        except RegistryCacheError as exc:
            self._fail(exc)
            raise
        finally:
            self._inflight = None

        self.state = ResourceState.READY
        entry = opts.cache.entry(self.url, self.method)
        if entry is not None:
            self.freshness.on_update(entry, self._registry.clock())
        return path

    def _fail(self, error: RegistryCacheError) -> None:
        self.state = ResourceState.FAILED
        self._registry.metrics.record_failure(self.url, error)
        logger.info(f"{self.url}: failed with {type(error).__name__} ({error.status_code})")

    # ------------------------------------------------------------------------- #
    #                                   Индекс                                  #
    # ------------------------------------------------------------------------- #
    def _fetch_index(self):
        response = yield from self._call_upstream()
        self.state = ResourceState.VERIFYING
        parse_index(response.body, self.url)
        return self._persist(response.body)

    # ------------------------------------------------------------------------- #
    #                                   Тарбол                                  #
    # ------------------------------------------------------------------------- #
    def _fetch_tar(self):
        opts = self._registry.options
        metrics = self._registry.metrics

        expected = yield from self._expected_digest()

        for attempt in range(1, opts.max_attempts + 1):
            response = yield from self._call_upstream()

            if expected is None:
                metrics.record_unverified()
                logger.warning(f"{self.url}: no checksum published in {self.index_url}, storing unverified")
                return self._persist(response.body)

            self.state = ResourceState.VERIFYING
            try:
                matched = opts.verifier.verify(response.body, expected)
            except (TypeError, ValueError) as exc:
                raise MalformedIndex(
                    f"{self.index_url}: unusable checksum for {self.tarball_name} ({exc})",
                    url=self.url,
                ) from exc
            if matched:
                return self._persist(response.body)

            metrics.record_checksum_mismatch(self.url, attempt)
            logger.warning(f"{self.url}: checksum mismatch on attempt {attempt}/{opts.max_attempts}")

        raise ChecksumMismatch(
            f"{self.url}: checksum mismatch after {opts.max_attempts} attempts",
            url=self.url,
            expected=expected,
            attempts=opts.max_attempts,
        )

    def _expected_digest(self):
        """
        Разрешить индекс пакета через тот же реестр и достать из него
        ожидаемую контрольную сумму тарбола.

        Если версии нет в индексе, взятом из кеша, индекс один раз
        перечитывается из источника в обход политики свежести: версия могла
        быть опубликована после того, как индекс попал в кеш.
        """
        index = self._registry.get(self.index_url)
        cached_before = self._registry.options.cache.lookup(index.url, index.method)
        index_path = yield index.get_readable_path()
        digest = self._read_digest(index_path, index.url)

        if digest is None and index_path == cached_before:
            logger.info(f"{self.tarball_name} is not listed in cached {index.url}, refreshing index")
            index_path = yield index.refresh()
            digest = self._read_digest(index_path, index.url)
        return digest

    def _read_digest(self, index_path: str, index_url: str) -> Optional[str]:
        with open(index_path, "rb") as f:
            document = parse_index(f.read(), index_url)
        return find_expected_digest(document, self.tarball_name)

    # ------------------------------------------------------------------------- #
    #                         Обёртки над источником и кешем                    #
    # ------------------------------------------------------------------------- #
    def _call_upstream(self):
        opts = self._registry.options
        metrics = self._registry.metrics

        self.state = ResourceState.FETCHING
        start = self.env.now
        logger.info(f"t={start:.2f}: fetching {self.url}")
        try:
            response = yield opts.upstream.request(self.url, self.method)
        except UpstreamError as exc:
            metrics.record_upstream_call(self.url, exc.status_code, start, self.env.now)
            raise

        metrics.record_upstream_call(self.url, response.status_code, start, self.env.now)
        if not response.ok:
            raise error_for_status(self.url, response.status_code)
        return response

    def _persist(self, body: bytes) -> str:
        path = self._registry.options.cache.store(self.url, self.method, body)
        self._registry.metrics.record_store()
        logger.info(f"t={self.env.now:.2f}: CACHE UPDATE {self.url} -> {path}")
        return path


_IMMUTABLE = ImmutableStrategy()


def _deliver(event: simpy.Event, callback: Callback) -> None:
    if event.ok:
        callback(None, event.value)
    else:
        event.defused = True
        callback(event.value, None)
