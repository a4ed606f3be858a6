# registry_cache/errors.py

"""
Иерархия ошибок ядра зеркала реестра.

Каждая ошибка несёт ``status_code`` (HTTP-статус, который внешний слой может
отдать клиенту как есть) и ``url`` ресурса, на котором она возникла.
"""

from typing import Optional

__all__ = [
    "RegistryCacheError",
    "RegistryNotConfigured",
    "UpstreamError",
    "UpstreamNotFound",
    "ChecksumMismatch",
    "MalformedIndex",
    "error_for_status",
]


class RegistryCacheError(RuntimeError):
    """
    Базовая ошибка разрешения ресурса.

    Все поля дублируются в ``args``: SimPy пересоздаёт упавшее исключение как
    ``type(exc)(*exc.args)``, прежде чем бросить его в ожидающий процесс.
    """

    default_status = 500

    def __init__(self, message: str, url: Optional[str] = None, status_code: Optional[int] = None):
        status_code = status_code if status_code is not None else self.default_status
        super().__init__(message, url, status_code)
        self.url = url
        self.status_code = status_code

    def __str__(self):
        return str(self.args[0]) if self.args else ""


class RegistryNotConfigured(RegistryCacheError):
    """ResourceRegistry.get() вызван до configure()."""


class UpstreamError(RegistryCacheError):
    """
    Внешний источник ответил не-2xx статусом или упал на транспорте.
    Для транспортных сбоев status_code = 502, а ``code`` содержит имя сбоя.
    """

    default_status = 502

    def __init__(
            self,
            message: str,
            url: Optional[str] = None,
            status_code: Optional[int] = None,
            code: Optional[str] = None,
    ):
        super().__init__(message, url, status_code)
        self.code = code
        self.args = (message, url, self.status_code, code)


class UpstreamNotFound(UpstreamError):
    """404 от источника или синтезированный 404 в режиме read-only."""

    default_status = 404


class ChecksumMismatch(RegistryCacheError):
    """Тарбол так и не сошёлся с контрольной суммой после всех попыток."""

    default_status = 502

    def __init__(self, message: str, url: Optional[str] = None, expected: str = "", attempts: int = 0):
        super().__init__(message, url)
        self.expected = expected
        self.attempts = attempts
        self.args = (message, url, expected, attempts)


class MalformedIndex(RegistryCacheError):
    """Тело индекса не разбирается как JSON-объект, либо в нём битая контрольная сумма."""

    default_status = 502


def error_for_status(url: str, status_code: int) -> UpstreamError:
    if status_code == 404:
        return UpstreamNotFound(f"{url}: not found upstream", url=url, status_code=404)
    return UpstreamError(f"{url}: upstream responded with {status_code}", url=url, status_code=status_code)
