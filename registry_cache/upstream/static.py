# registry_cache/upstream/static.py

import random
from typing import Dict, List, Optional, Union

import simpy

from registry_cache.errors import UpstreamError
from registry_cache.logger import get_logger
from registry_cache.upstream.base import Upstream, UpstreamResponse

logger = get_logger(__name__)

Reply = Union[UpstreamResponse, Exception]


class StaticUpstream(Upstream):
    """
    Источник с заранее заданными ответами и симулированным временем обслуживания.

    Для каждого URL можно задать один ответ или последовательность ответов:
    последовательность расходуется по порядку, последний элемент повторяется.
    Экземпляр исключения вместо ответа имитирует транспортный сбой.
    Неизвестные URL получают 404.
    """

    def __init__(
            self,
            env: simpy.Environment,
            responses: Optional[Dict[str, Union[Reply, List[Reply]]]] = None,
            min_service: float = 0.0,
            max_service: float = 0.0,
            capacity: int = 1,
    ):
        super().__init__(env)
        self.min_service = min_service
        self.max_service = max_service
        self.server = simpy.Resource(env, capacity=capacity)
        self.calls: Dict[str, int] = {}
        self._responses: Dict[str, List[Reply]] = {}

        for url, reply in (responses or {}).items():
            self.set(url, reply)

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())

    def set(self, url: str, reply: Union[Reply, List[Reply]]) -> None:
        self._responses[url] = list(reply) if isinstance(reply, list) else [reply]

    def serve_json(self, url: str, body: bytes) -> None:
        self.set(url, UpstreamResponse(200, body, {"content-type": "application/json"}))

    def request(self, url: str, method: str = "GET") -> simpy.Event:
        return self.env.process(self._request_proc(url, method))

    def _next_reply(self, url: str) -> Reply:
        queue = self._responses.get(url)
        if not queue:
            return UpstreamResponse(404, b'{"error":"Not found"}')
        if len(queue) > 1:
            return queue.pop(0)
        return queue[0]

    def _request_proc(self, url: str, method: str):
        arr = self.env.now
        self.calls[url] = self.calls.get(url, 0) + 1

        # общая очередь
        with self.server.request() as req:
            yield req
            service_time = random.uniform(self.min_service, self.max_service)
            yield self.env.timeout(service_time)

        reply = self._next_reply(url)
        finish = self.env.now
        logger.info(f"t={finish:.2f}: Served {method} {url}, wait={finish - arr:.2f}")

        if isinstance(reply, UpstreamError):
            raise reply
        if isinstance(reply, Exception):
            raise UpstreamError(
                f"{url}: {reply}", url=url, status_code=502, code=type(reply).__name__
            ) from reply
        return reply
