# registry_cache/upstream/base.py

from abc import ABC, abstractmethod
from typing import Dict, Optional

import simpy


class UpstreamResponse:
    """
    Ответ внешнего источника: статус, заголовки и непрозрачное тело.
    """
    __slots__ = ("status_code", "headers", "body")

    def __init__(self, status_code: int, body: bytes = b"", headers: Optional[Dict[str, str]] = None):
        self.status_code = status_code
        self.body = body
        self.headers = dict(headers or {})

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def __repr__(self):
        return f"UpstreamResponse({self.status_code}, {len(self.body)} bytes)"


class Upstream(ABC):
    """
    Базовый класс внешнего источника (реестра-оригинала).
    """

    def __init__(self, env: simpy.Environment):
        self.env = env

    @abstractmethod
    def request(self, url: str, method: str = "GET") -> simpy.Event:
        """
        Запустить запрос к источнику.

        :return: событие SimPy, которое завершается UpstreamResponse
                 или падает с UpstreamError при транспортном сбое
        """
        ...
