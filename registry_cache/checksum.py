# registry_cache/checksum.py

"""
Проверка контрольных сумм тарболов.

Ожидаемое значение приходит из ``dist`` индекса пакета в одном из двух видов:

* ``shasum``    – hex-дайджест; алгоритм определяется по длине
                  (32 – md5, 40 – sha1, 64 – sha256, 128 – sha512);
* ``integrity`` – SRI-строка ``<algo>-<base64>`` (например ``sha512-...``).
"""

import base64
import binascii
import hashlib
import hmac
import re

_HEX_PATTERN = re.compile(r"[0-9a-f]{32,128}")
_HEX_ALGORITHMS = {32: "md5", 40: "sha1", 64: "sha256", 128: "sha512"}
_SUPPORTED = {"md5", "sha1", "sha256", "sha512"}


class ChecksumVerifier:
    """
    Чистая функция сравнения дайджестов, обёрнутая в класс ради внедрения
    зависимостей (registry.configure(verifier=...)).
    """

    def compute(self, data: bytes, algorithm: str = "sha1") -> str:
        algorithm = algorithm.lower()
        if algorithm not in _SUPPORTED:
            raise ValueError(f"unsupported checksum algorithm '{algorithm}'")
        return hashlib.new(algorithm, data).hexdigest()

    def verify(self, data: bytes, expected: str) -> bool:
        """
        True, если дайджест ``data`` совпадает с ``expected``.

        :raises TypeError: если ``expected`` не строка
        :raises ValueError: если ``expected`` не hex-дайджест и не SRI-строка
        """
        if not isinstance(expected, str):
            raise TypeError(f"checksum must be a string, got {type(expected).__name__}")
        candidate = expected.strip()

        lowered = candidate.lower()
        if _HEX_PATTERN.fullmatch(lowered) and len(lowered) in _HEX_ALGORITHMS:
            actual = self.compute(data, _HEX_ALGORITHMS[len(lowered)])
            return hmac.compare_digest(actual, lowered)

        # SRI может перечислять несколько дайджестов через пробел
        recognised = False
        for token in candidate.split():
            algorithm, sep, encoded = token.partition("-")
            if not sep or algorithm.lower() not in _SUPPORTED:
                continue
            try:
                digest = base64.b64decode(encoded.split("?", 1)[0], validate=True)
            except (binascii.Error, ValueError):
                continue
            recognised = True
            if hmac.compare_digest(hashlib.new(algorithm.lower(), data).digest(), digest):
                return True

        if recognised:
            return False
        raise ValueError(f"unrecognised checksum '{expected}'")


_default = ChecksumVerifier()


def verify(data: bytes, expected: str) -> bool:
    return _default.verify(data, expected)
