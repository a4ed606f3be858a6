import hashlib
import json

import pytest
import simpy

from registry_cache.cache_store import CacheStore
from registry_cache.metrics import MetricsCollector
from registry_cache.registry import ResourceRegistry
from registry_cache.upstream.base import UpstreamResponse
from registry_cache.upstream.static import StaticUpstream

REGISTRY = "https://registry.npmjs.com"


class Clock:
    """Управляемые «настенные» часы для политик свежести."""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def index_document(name: str, tarballs: dict) -> bytes:
    """
    Собрать индекс пакета: tarballs – {версия: (имя файла тарбола, содержимое)}.
    """
    versions = {}
    for version, (filename, content) in tarballs.items():
        versions[version] = {
            "name": name,
            "version": version,
            "dist": {
                "tarball": f"{REGISTRY}/{name}/-/{filename}",
                "shasum": hashlib.sha1(content).hexdigest(),
            },
        }
    return json.dumps({"name": name, "versions": versions}).encode("utf-8")


def ok(body: bytes) -> UpstreamResponse:
    return UpstreamResponse(200, body)


@pytest.fixture
def env():
    return simpy.Environment()


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def cache(tmp_path, clock):
    store = CacheStore(str(tmp_path / "db"), clock=clock)
    store.clear()
    return store


@pytest.fixture
def upstream(env):
    return StaticUpstream(env)


@pytest.fixture
def metrics():
    return MetricsCollector()


@pytest.fixture
def registry(env, cache, upstream, metrics, clock):
    reg = ResourceRegistry(env, metrics=metrics, clock=clock)
    reg.configure(cache, upstream=upstream, read_only=False)
    return reg


@pytest.fixture
def put_cached(cache):
    """
    Положить содержимое в кеш так, будто оно уже было скачано.
    """

    def _put(url: str, content: bytes) -> str:
        cachename = cache.filename()
        with open(cachename, "wb") as f:
            f.write(content)
        cache.complete(url, "GET", cachename)
        return cachename

    return _put


def resolve(env, resource):
    """
    Разрешить ресурс через callback и вернуть (err, path).
    """
    outcome = {}

    def callback(err, path):
        outcome["err"] = err
        outcome["path"] = path

    resource.get_readable_path(callback)
    env.run()
    assert outcome, "callback was never called"
    return outcome["err"], outcome["path"]


def read(path):
    with open(path, "rb") as f:
        return f.read()
