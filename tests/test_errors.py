from registry_cache.errors import (
    ChecksumMismatch,
    MalformedIndex,
    UpstreamError,
    UpstreamNotFound,
    error_for_status,
)


def rebuilt(exc):
    """Так SimPy пересоздаёт исключение перед броском в ожидающий процесс."""
    return type(exc)(*exc.args)


def test_upstream_error_survives_rebuild():
    exc = rebuilt(UpstreamError("boom", url="https://r/x", status_code=503, code="ConnectionResetError"))

    assert exc.status_code == 503
    assert exc.url == "https://r/x"
    assert exc.code == "ConnectionResetError"
    assert str(exc) == "boom"


def test_status_mapping_survives_rebuild():
    not_found = rebuilt(error_for_status("https://r/x", 404))
    server = rebuilt(error_for_status("https://r/x", 500))

    assert isinstance(not_found, UpstreamNotFound)
    assert not_found.status_code == 404
    assert server.status_code == 500
    assert server.url == "https://r/x"


def test_checksum_mismatch_survives_rebuild():
    exc = rebuilt(ChecksumMismatch("bad", url="https://r/x.tgz", expected="abc", attempts=3))

    assert (exc.url, exc.expected, exc.attempts, exc.status_code) == ("https://r/x.tgz", "abc", 3, 502)


def test_malformed_index_survives_rebuild():
    exc = rebuilt(MalformedIndex("nope", url="https://r/x"))

    assert exc.url == "https://r/x"
    assert exc.status_code == 502
