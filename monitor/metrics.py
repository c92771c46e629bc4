"""In-process metrics buffer.

Records performance, business and usage events in a bounded ring buffer.
The alert manager reads it as its metrics source through ``get_metrics``.
"""
import logging
import threading
from collections import deque

from models.enums import MetricType
from models.metrics import PerformanceMetric, BusinessMetric, UsageMetric
from utils.clock import SystemClock

logger = logging.getLogger("governor.monitor.metrics")


class MetricsCollector:
    def __init__(self, clock=None, buffer_size=500):
        self.clock = clock or SystemClock()
        self.buffer_size = buffer_size
        self._buffer = deque(maxlen=buffer_size)
        self._lock = threading.Lock()

    def _add(self, metric):
        with self._lock:
            self._buffer.append(metric)
        logger.debug(f"Metric collected: {metric.type.value}")
        return metric

    def track_performance(self, operation, duration, success=True, error_type=None,
                          metadata=None, user_id=None):
        """Record one timed operation (duration in milliseconds)."""
        return self._add(PerformanceMetric(
            timestamp=self.clock.now(),
            user_id=user_id,
            operation=operation,
            duration=float(duration),
            success=success,
            error_type=error_type,
            metadata=metadata or {},
        ))

    def track_business_event(self, event, value=None, properties=None, user_id=None):
        logger.info(f"Business event: {event}")
        return self._add(BusinessMetric(
            timestamp=self.clock.now(),
            user_id=user_id,
            event=event,
            value=value,
            properties=properties or {},
        ))

    def track_usage(self, feature, action, context=None, user_id=None):
        return self._add(UsageMetric(
            timestamp=self.clock.now(),
            user_id=user_id,
            feature=feature,
            action=action,
            context=context or {},
        ))

    def get_metrics(self, since=None, metric_type=None):
        """Buffered records, oldest first.

        Args:
            since: only records strictly newer than this unix timestamp
            metric_type: a MetricType (or its value) to filter on
        """
        with self._lock:
            records = list(self._buffer)
        if since is not None:
            records = [m for m in records if m.timestamp > since]
        if metric_type is not None:
            wanted = MetricType(metric_type)
            records = [m for m in records if m.type == wanted]
        return records

    def get_summary(self, window_minutes=5):
        """Counts per type plus error rate and mean duration over a recent window."""
        records = self.get_metrics()
        cutoff = self.clock.now() - window_minutes * 60
        perf = [m for m in records if m.type == MetricType.PERFORMANCE and m.timestamp > cutoff]
        failures = sum(1 for m in perf if not m.success)
        counts = {t.value: 0 for t in MetricType}
        for m in records:
            counts[m.type.value] += 1
        return {
            "buffered": len(records),
            "by_type": counts,
            "window_minutes": window_minutes,
            "performance_count": len(perf),
            "error_rate": failures / len(perf) if perf else 0.0,
            "avg_duration_ms": sum(m.duration for m in perf) / len(perf) if perf else 0.0,
        }

    def clear(self):
        with self._lock:
            self._buffer.clear()
