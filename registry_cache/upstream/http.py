# registry_cache/upstream/http.py

import time
from typing import Optional

import requests
import simpy
from requests.adapters import HTTPAdapter

from registry_cache.errors import UpstreamError
from registry_cache.logger import get_logger
from registry_cache.upstream.base import Upstream, UpstreamResponse

logger = get_logger(__name__)


class HttpUpstream(Upstream):
    """
    Реальный источник поверх requests.Session.

    Сам HTTP-запрос блокирующий: процесс SimPy выполняет его целиком
    и только потом уступает управление планировщику.
    """

    def __init__(
            self,
            env: simpy.Environment,
            timeout: float = 30.0,
            user_agent: str = "registry-cache",
            pool_size: int = 10,
            session: Optional[requests.Session] = None,
    ):
        super().__init__(env)
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers["User-Agent"] = user_agent

        adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def request(self, url: str, method: str = "GET") -> simpy.Event:
        return self.env.process(self._request_proc(url, method))

    def _request_proc(self, url: str, method: str):
        started = time.monotonic()
        try:
            response = self.session.request(method, url, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.warning(f"{method} {url} failed: {exc}")
            raise UpstreamError(
                f"{url}: {exc}", url=url, status_code=502, code=type(exc).__name__
            ) from exc

        elapsed = time.monotonic() - started
        logger.info(f"{method} {url} -> {response.status_code} in {elapsed:.2f}s, {len(response.content)} bytes")

        # отдаём управление планировщику, ответ уже получен
        yield self.env.timeout(0)
        return UpstreamResponse(response.status_code, response.content, dict(response.headers))

    def close(self) -> None:
        self.session.close()
