from __future__ import annotations

from dataclasses import dataclass
from threading import Lock


@dataclass
class EndpointMetric:
    total_requests: int = 0
    total_duration_ms: float = 0.0
    error_count: int = 0

    def record(self, status_code: int, duration_ms: float) -> None:
        self.total_requests += 1
        self.total_duration_ms += duration_ms
        if status_code >= 400:
            self.error_count += 1

    def as_dict(self) -> dict[str, float | int]:
        avg = self.total_duration_ms / self.total_requests if self.total_requests else 0.0
        return {
            "total_requests": self.total_requests,
            "total_duration_ms": round(self.total_duration_ms, 2),
            "avg_duration_ms": round(avg, 2),
            "error_count": self.error_count,
        }


class InMemoryRequestMetrics:
    """Per-route counters for the admin console; reset on process restart."""

    def __init__(self) -> None:
        self._metrics: dict[tuple[str, str], EndpointMetric] = {}
        self._conflicts: dict[str, int] = {}
        self._lock = Lock()

    def observe(self, endpoint: str, method: str, status_code: int, duration_ms: float) -> None:
        with self._lock:
            self._metrics.setdefault((endpoint, method), EndpointMetric()).record(status_code, duration_ms)
            if status_code == 409:
                key = f"{method} {endpoint}"
                self._conflicts[key] = self._conflicts.get(key, 0) + 1

    def snapshot(self) -> dict[str, dict[str, float | int]]:
        with self._lock:
            return {f"{method} {endpoint}": metric.as_dict() for (endpoint, method), metric in self._metrics.items()}

    def conflicts(self) -> dict[str, int]:
        with self._lock:
            return dict(self._conflicts)

    def reset(self) -> None:
        with self._lock:
            self._metrics.clear()
            self._conflicts.clear()


request_metrics = InMemoryRequestMetrics()
