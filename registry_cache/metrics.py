# registry_cache/metrics.py

import json
import os
from statistics import mean
from typing import Any, Dict, List, Optional

from registry_cache.logger import get_logger

logger = get_logger(__name__)


class MetricsCollector:
    """
    Сбор и экспорт метрик разрешения ресурсов.

    Счётчики ведутся по URL, чтобы тесты и отчёты могли проверить,
    сколько раз конкретный ресурс ходил во внешний источник.
    """

    def __init__(self):
        # ---- счётчики событий ----
        self.hits: int = 0
        self.misses: int = 0
        self.stale: int = 0
        self.stale_served: int = 0
        self.coalesced: int = 0
        self.stores: int = 0
        self.unverified: int = 0

        # ---- «сырые» данные ----
        self.upstream_calls: List[Dict[str, Any]] = []
        self.checksum_mismatches: List[Dict[str, Any]] = []
        self.failures: List[Dict[str, Any]] = []

    # ------------------------------------------------------------------ #
    #   Методы‑регистраторы                                              #
    # ------------------------------------------------------------------ #
    def record_hit(self):
        self.hits += 1

    def record_miss(self):
        self.misses += 1

    def record_stale(self):
        self.stale += 1

    def record_stale_served(self):
        self.stale_served += 1

    def record_coalesced(self):
        self.coalesced += 1

    def record_store(self):
        self.stores += 1

    def record_unverified(self):
        self.unverified += 1

    def record_upstream_call(self, url: str, status: Optional[int], start: float, finish: float):
        self.upstream_calls.append(
            {
                "url": url,
                "status": status,
                "start": start,
                "finish": finish,
                "latency": finish - start,
            }
        )

    def record_checksum_mismatch(self, url: str, attempt: int):
        self.checksum_mismatches.append({"url": url, "attempt": attempt})

    def record_failure(self, url: str, error: Exception):
        self.failures.append(
            {
                "url": url,
                "error": type(error).__name__,
                "status": getattr(error, "status_code", None),
            }
        )

    def upstream_calls_for(self, url: str) -> int:
        return sum(1 for call in self.upstream_calls if call["url"] == url)

    # ------------------------------------------------------------------ #
    #   Сводка результатов                                               #
    # ------------------------------------------------------------------ #
    def summary(self) -> dict:
        total = self.hits + self.misses + self.stale
        latencies = [call["latency"] for call in self.upstream_calls]

        return {
            # агрегаты
            "total_requests": total,
            "hits": self.hits,
            "misses": self.misses,
            "stale": self.stale,
            "stale_served": self.stale_served,
            "hit_rate": self.hits / total if total else 0.0,
            "coalesced": self.coalesced,
            "stores": self.stores,
            "unverified": self.unverified,
            "upstream_calls": len(self.upstream_calls),
            "avg_upstream_latency": mean(latencies) if latencies else None,
            "checksum_mismatches": len(self.checksum_mismatches),
            "failures": len(self.failures),
            # подробные логи
            "upstream_calls_detail": self.upstream_calls,
            "checksum_mismatches_detail": self.checksum_mismatches,
            "failures_detail": self.failures,
        }

    def export(self, path: str) -> None:
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        with open(path, "w", encoding="utf-8") as out:
            json.dump(self.summary(), out, indent=2, ensure_ascii=False)
        logger.info(f"[Metrics] exported to {path}")
