"""
Run metrics for the bundler
Counts transfers, trades and RPC calls and keeps latency summaries
"""

import statistics
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Deque, Dict, Optional, Tuple


LabelKey = Tuple[str, Tuple[Tuple[str, str], ...]]

# Samples kept per operation; older ones drop off
MAX_LATENCY_SAMPLES = 10000


@dataclass
class LatencySummary:
    """Summary of recorded latencies for one operation"""
    operation: str
    count: int
    mean_ms: float
    max_ms: float


class MetricsCollector:
    """Collects counters, gauges and latencies for the current process"""

    def __init__(self):
        self._counters: Dict[LabelKey, int] = defaultdict(int)
        self._gauges: Dict[LabelKey, float] = {}
        self._latencies: Dict[str, Deque[float]] = defaultdict(
            lambda: deque(maxlen=MAX_LATENCY_SAMPLES)
        )

    @staticmethod
    def _key(name: str, labels: Optional[Dict[str, str]]) -> LabelKey:
        return name, tuple(sorted((labels or {}).items()))

    def increment_counter(
        self,
        metric_name: str,
        value: int = 1,
        labels: Optional[Dict[str, str]] = None
    ) -> None:
        """Increment a counter, optionally labelled"""
        self._counters[self._key(metric_name, labels)] += value

    def set_gauge(
        self,
        metric_name: str,
        value: float,
        labels: Optional[Dict[str, str]] = None
    ) -> None:
        """Set a gauge value, optionally labelled"""
        self._gauges[self._key(metric_name, labels)] = value

    def record_latency(self, operation: str, latency_ms: float) -> None:
        self._latencies[operation].append(latency_ms)

    def get_counter(self, metric_name: str, labels: Optional[Dict[str, str]] = None) -> int:
        return self._counters.get(self._key(metric_name, labels), 0)

    def get_gauge(self, metric_name: str, labels: Optional[Dict[str, str]] = None) -> float:
        return self._gauges.get(self._key(metric_name, labels), 0.0)

    def get_latency_summary(self, operation: str) -> Optional[LatencySummary]:
        """
        Summarise latencies recorded for an operation

        Returns:
            LatencySummary or None if nothing was recorded
        """
        samples = self._latencies.get(operation)
        if not samples:
            return None

        return LatencySummary(
            operation=operation,
            count=len(samples),
            mean_ms=statistics.mean(samples),
            max_ms=max(samples)
        )

    def export_metrics(self) -> Dict:
        """Export all metrics as a JSON-serializable dict"""
        def flatten(name: str, labels: Tuple[Tuple[str, str], ...]) -> str:
            if not labels:
                return name
            rendered = ",".join(f"{k}={v}" for k, v in labels)
            return f"{name}{{{rendered}}}"

        return {
            "counters": {flatten(*key): value for key, value in self._counters.items()},
            "gauges": {flatten(*key): value for key, value in self._gauges.items()},
            "latencies": {
                operation: vars(self.get_latency_summary(operation))
                for operation in self._latencies
            },
        }

    def reset(self) -> None:
        """Reset all metrics (useful for testing)"""
        self._counters.clear()
        self._gauges.clear()
        self._latencies.clear()


class LatencyTimer:
    """Context manager for measuring operation latency"""

    def __init__(self, metrics: MetricsCollector, operation: str):
        self.metrics = metrics
        self.operation = operation
        self.start_time: Optional[float] = None
        self.latency_ms: Optional[float] = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is not None:
            self.latency_ms = (time.perf_counter() - self.start_time) * 1000
            self.metrics.record_latency(self.operation, self.latency_ms)


_global_metrics: Optional[MetricsCollector] = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance"""
    global _global_metrics
    if _global_metrics is None:
        _global_metrics = MetricsCollector()
    return _global_metrics
