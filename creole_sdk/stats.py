from __future__ import annotations

import statistics
from collections import deque
from typing import Deque, Dict, NamedTuple, Optional


class HttpEvent(NamedTuple):
    """One request attempt as reported to the ``on_event`` hook."""
    method: str
    url: str
    status: int  # 0 when no response was received
    duration_s: float
    bytes: int
    attempt: int


class RollingStats:
    """Rolling latency statistics over the last ``capacity`` successful attempts."""

    def __init__(self, capacity: int = 512):
        self.capacity = capacity
        self.samples_ms: Deque[float] = deque(maxlen=capacity)

    def add(self, total_ms: float) -> None:
        self.samples_ms.append(total_ms)

    @staticmethod
    def _percentile(data: list, p: float) -> Optional[float]:
        if not data:
            return None
        k = max(0, min(len(data) - 1, int(round((p / 100.0) * (len(data) - 1)))))
        return sorted(data)[k]

    def summary(self) -> Dict[str, Optional[float]]:
        data = list(self.samples_ms)
        return {
            "count": len(data),
            "p50_ms": self._percentile(data, 50),
            "p95_ms": self._percentile(data, 95),
            "p99_ms": self._percentile(data, 99),
            "avg_ms": statistics.fmean(data) if data else None,
        }
