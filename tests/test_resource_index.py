import json

from conftest import REGISTRY, ok, read, resolve

from registry_cache.errors import MalformedIndex, UpstreamError, UpstreamNotFound
from registry_cache.resource import ResourceState
from registry_cache.strategies.fixed_ttl import FixedTTLStrategy
from registry_cache.upstream.base import UpstreamResponse


def test_cached_and_up_to_date_is_served_without_upstream(env, registry, upstream, put_cached):
    url = f"{REGISTRY}/local-cached"
    put_cached(url, b'{ "name": "local-cached" }')

    err, path = resolve(env, registry.get(url))

    assert err is None
    assert json.loads(read(path))["name"] == "local-cached"
    assert upstream.total_calls == 0
    assert registry.get(url).state == ResourceState.READY


def test_missing_and_upstream_404_fails_with_404(env, registry, upstream):
    url = f"{REGISTRY}/remote-valid"

    err, path = resolve(env, registry.get(url))

    assert isinstance(err, UpstreamNotFound)
    assert err.status_code == 404
    assert path is None
    assert upstream.calls[url] == 1
    assert registry.get(url).state == ResourceState.FAILED


def test_missing_index_is_fetched_and_stored(env, registry, upstream, cache):
    url = f"{REGISTRY}/remote-valid"
    upstream.serve_json(url, b'{"name": "remote-valid", "versions": {}}')

    err, path = resolve(env, registry.get(url))

    assert err is None
    assert json.loads(read(path))["name"] == "remote-valid"
    assert cache.lookup(url) == path

    # второй раз – из кеша
    err, again = resolve(env, registry.get(url))
    assert again == path
    assert upstream.calls[url] == 1


def test_outdated_index_is_refetched(env, registry, upstream, put_cached):
    url = f"{REGISTRY}/local-outdated"
    put_cached(url, b'{ "name": "outdated" }')
    upstream.serve_json(url, b'{ "name": "fresh" }')

    resource = registry.get(url)
    resource.is_up_to_date = lambda: False
    err, path = resolve(env, resource)

    assert err is None
    assert json.loads(read(path))["name"] == "fresh"
    assert upstream.calls[url] == 1


def test_outdated_index_with_failing_upstream_surfaces_error(env, registry, upstream, put_cached):
    url = f"{REGISTRY}/local-outdated-fail-500"
    put_cached(url, b'{ "name": "outdated-fail-500" }')
    upstream.set(url, UpstreamResponse(500, b"oops"))

    resource = registry.get(url)
    resource.is_up_to_date = lambda: False
    err, path = resolve(env, resource)

    assert isinstance(err, UpstreamError)
    assert not isinstance(err, UpstreamNotFound)
    assert err.status_code == 500


def test_serve_stale_on_error_falls_back_to_cached_copy(env, registry, cache, upstream, put_cached):
    url = f"{REGISTRY}/local-outdated-fail"
    cached = put_cached(url, b'{ "name": "outdated-fail" }')
    upstream.set(url, UpstreamResponse(503))
    registry.configure(cache, upstream=upstream, serve_stale_on_error=True)

    resource = registry.get(url)
    resource.is_up_to_date = lambda: False
    err, path = resolve(env, resource)

    assert err is None
    assert path == cached
    assert registry.metrics.stale_served == 1


def test_transport_failure_carries_code(env, registry, upstream):
    url = f"{REGISTRY}/unreachable"
    upstream.set(url, ConnectionResetError("peer reset"))

    err, _ = resolve(env, registry.get(url))

    assert isinstance(err, UpstreamError)
    assert err.status_code == 502
    assert err.code == "ConnectionResetError"


def test_malformed_index_is_not_stored(env, registry, upstream, cache):
    url = f"{REGISTRY}/broken"
    upstream.set(url, ok(b"<html>not json</html>"))

    err, _ = resolve(env, registry.get(url))

    assert isinstance(err, MalformedIndex)
    assert cache.lookup(url) is None
    assert upstream.calls[url] == 1


def test_json_array_is_malformed_index(env, registry, upstream):
    url = f"{REGISTRY}/array"
    upstream.set(url, ok(b"[1, 2, 3]"))

    err, _ = resolve(env, registry.get(url))

    assert isinstance(err, MalformedIndex)


def test_fixed_ttl_expires_index(env, registry, cache, upstream, put_cached, clock):
    url = f"{REGISTRY}/aging"
    put_cached(url, b'{ "name": "old" }')
    upstream.serve_json(url, b'{ "name": "new" }')
    registry.configure(cache, upstream=upstream, index_strategy=FixedTTLStrategy(ttl=60))

    err, path = resolve(env, registry.get(url))
    assert json.loads(read(path))["name"] == "old"

    clock.now += 61
    err, path = resolve(env, registry.get(url))
    assert err is None
    assert json.loads(read(path))["name"] == "new"
    assert upstream.calls[url] == 1


def test_concurrent_callers_share_one_fetch(env, registry, upstream):
    url = f"{REGISTRY}/popular"
    upstream.serve_json(url, b'{ "name": "popular" }')
    upstream.min_service = upstream.max_service = 1.0

    outcomes = []
    resource = registry.get(url)
    for _ in range(5):
        resource.get_readable_path(lambda err, path: outcomes.append((err, path)))
    env.run()

    assert upstream.calls[url] == 1
    assert len(outcomes) == 5
    assert len({path for _, path in outcomes}) == 1
    assert all(err is None for err, _ in outcomes)
    assert registry.metrics.coalesced == 4


def test_concurrent_callers_share_one_failure(env, registry, upstream):
    url = f"{REGISTRY}/missing"
    upstream.min_service = upstream.max_service = 1.0

    errors = []
    resource = registry.get(url)
    for _ in range(3):
        resource.get_readable_path(lambda err, path: errors.append(err))
    env.run()

    assert upstream.calls[url] == 1
    assert [e.status_code for e in errors] == [404, 404, 404]


def test_process_can_be_awaited_directly(env, registry, upstream):
    url = f"{REGISTRY}/direct"
    upstream.serve_json(url, b'{ "name": "direct" }')

    path = env.run(until=registry.get(url).get_readable_path())

    assert json.loads(read(path))["name"] == "direct"
