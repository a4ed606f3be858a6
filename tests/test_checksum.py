import base64
import hashlib

import pytest

from registry_cache.checksum import ChecksumVerifier, verify

DATA = b"remote-cached-index-tar"


def test_sha1_shasum():
    assert verify(DATA, hashlib.sha1(DATA).hexdigest())
    assert verify(DATA, hashlib.sha1(DATA).hexdigest().upper())
    assert not verify(DATA + b"!", hashlib.sha1(DATA).hexdigest())


def test_algorithm_is_inferred_from_length():
    verifier = ChecksumVerifier()
    for algorithm in ("md5", "sha256", "sha512"):
        assert verifier.verify(DATA, hashlib.new(algorithm, DATA).hexdigest())


def test_known_fixture_shasum():
    assert verify(b"", "da39a3ee5e6b4b0d3255bfef95601890afd80709")


def test_sri_integrity():
    good = "sha512-" + base64.b64encode(hashlib.sha512(DATA).digest()).decode()
    bad = "sha512-" + base64.b64encode(hashlib.sha512(b"other").digest()).decode()

    assert verify(DATA, good)
    assert not verify(DATA, bad)
    assert verify(DATA, f"{bad} {good}")


def test_unrecognised_checksum_raises():
    with pytest.raises(ValueError):
        verify(DATA, "not-a-digest")
    with pytest.raises(ValueError):
        ChecksumVerifier().compute(DATA, "crc32")


def test_non_string_checksum_raises_type_error():
    with pytest.raises(TypeError):
        verify(DATA, 123)
    with pytest.raises(TypeError):
        verify(DATA, None)
