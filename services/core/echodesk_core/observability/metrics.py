"""Metrics collection for the auto-reply engine.

Provides simple in-process metrics. Engine counters carry `platform` and
`user_id` labels, so a tenant's slice can be read with a label filter.

- Counters: triggers, rate-limit rejections, replies sent/failed, skips
- Gauges: executions selected by the last tick
- Histograms: tick duration
"""

import threading
from typing import Any, Optional


# Metric names used by the engine
FLOWS_TRIGGERED = "auto_reply_flows_triggered_total"
RATE_LIMITED = "auto_reply_rate_limited_total"
REPLIES_SENT = "auto_reply_replies_sent_total"
REPLIES_FAILED = "auto_reply_replies_failed_total"
STEPS_SKIPPED = "auto_reply_steps_skipped_total"
EXECUTIONS_COMPLETED = "auto_reply_executions_completed_total"
EXECUTION_ERRORS = "auto_reply_execution_errors_total"
CLAIMS_LOST = "auto_reply_claims_lost_total"
CLAIMS_RECOVERED = "auto_reply_claims_recovered_total"
TICK_DUE = "auto_reply_tick_due_executions"
TICK_DURATION = "auto_reply_tick_duration_seconds"


class MetricsCollector:
    """Thread-safe metrics collector.

    Collects and stores metrics in memory for later retrieval.
    """

    def __init__(self):
        """Initialize metrics collector."""
        self._lock = threading.RLock()
        self._counters: dict[str, float] = {}
        self._gauges: dict[str, float] = {}
        self._histograms: dict[str, list[float]] = {}
        self._series: dict[str, tuple[str, dict[str, str]]] = {}

    def _make_key(self, name: str, labels: Optional[dict[str, str]] = None) -> str:
        """Create a unique key for a metric with labels."""
        if not labels:
            return name

        label_str = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
        return f"{name}{{{label_str}}}"

    def _register(self, name: str, labels: Optional[dict[str, str]]) -> str:
        key = self._make_key(name, labels)
        self._series.setdefault(key, (name, dict(labels or {})))
        return key

    def _matches(self, key: str, name: Optional[str], labels: Optional[dict[str, str]]) -> bool:
        series_name, series_labels = self._series[key]
        if name is not None and series_name != name:
            return False
        return all(series_labels.get(k) == v for k, v in (labels or {}).items())

    def increment(
        self,
        name: str,
        value: float = 1.0,
        labels: Optional[dict[str, str]] = None,
    ) -> None:
        """Increment a counter metric.

        Args:
            name: Counter name
            value: Value to add (default 1)
            labels: Optional labels (e.g. {"platform": "Telegram"})
        """
        with self._lock:
            key = self._register(name, labels)
            self._counters[key] = self._counters.get(key, 0) + value

    def set_gauge(
        self,
        name: str,
        value: float,
        labels: Optional[dict[str, str]] = None,
    ) -> None:
        """Set a gauge metric value."""
        with self._lock:
            key = self._register(name, labels)
            self._gauges[key] = value

    def record_histogram(
        self,
        name: str,
        value: float,
        labels: Optional[dict[str, str]] = None,
    ) -> None:
        """Record a value in a histogram."""
        with self._lock:
            key = self._register(name, labels)
            self._histograms.setdefault(key, []).append(value)

    def get(
        self,
        name: str,
        labels: Optional[dict[str, str]] = None,
    ) -> float:
        """Sum of the counter (or gauge) series whose labels include `labels`.

        0 if nothing matching was recorded.
        """
        with self._lock:
            counters = [v for k, v in self._counters.items() if self._matches(k, name, labels)]
            if counters:
                return sum(counters)
            gauges = [v for k, v in self._gauges.items() if self._matches(k, name, labels)]
            return sum(gauges)

    def get_histogram_stats(self, key: str) -> dict[str, float]:
        """Get count/min/max/avg/p95 for a histogram key."""
        with self._lock:
            values = list(self._histograms.get(key, []))

        if not values:
            return {"count": 0, "min": 0, "max": 0, "avg": 0}

        sorted_values = sorted(values)
        count = len(values)

        return {
            "count": count,
            "min": sorted_values[0],
            "max": sorted_values[-1],
            "avg": sum(values) / count,
            "p95": sorted_values[min(int(count * 0.95), count - 1)],
        }

    def get_all(self, labels: Optional[dict[str, str]] = None) -> dict[str, Any]:
        """Get all metrics as a dictionary.

        Args:
            labels: Only include series whose labels include these.
        """
        with self._lock:
            histogram_keys = [k for k in self._histograms if self._matches(k, None, labels)]
            result = {
                "counters": {
                    k: v for k, v in self._counters.items() if self._matches(k, None, labels)
                },
                "gauges": {
                    k: v for k, v in self._gauges.items() if self._matches(k, None, labels)
                },
            }
        result["histograms"] = {k: self.get_histogram_stats(k) for k in histogram_keys}
        return result

    def reset(self) -> None:
        """Reset all metrics."""
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._histograms.clear()
            self._series.clear()


# Global metrics collector instance
_collector = MetricsCollector()


def get_collector() -> MetricsCollector:
    """Get the global metrics collector."""
    return _collector
