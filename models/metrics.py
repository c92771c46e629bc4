"""Dataclasses for buffered metric records and health reports."""
from dataclasses import dataclass, field, asdict
from typing import Optional

from models.enums import HealthStatus, MetricType


@dataclass
class MetricRecord:
    timestamp: float = 0.0
    user_id: Optional[str] = None

    type = None

    def to_dict(self):
        d = asdict(self)
        d["type"] = self.type.value
        return d


@dataclass
class PerformanceMetric(MetricRecord):
    operation: str = ""
    duration: float = 0.0  # milliseconds
    success: bool = True
    error_type: Optional[str] = None
    metadata: dict = field(default_factory=dict)

    type = MetricType.PERFORMANCE


@dataclass
class BusinessMetric(MetricRecord):
    event: str = ""
    value: Optional[float] = None
    properties: dict = field(default_factory=dict)

    type = MetricType.BUSINESS


@dataclass
class UsageMetric(MetricRecord):
    feature: str = ""
    action: str = ""
    context: dict = field(default_factory=dict)

    type = MetricType.USAGE


@dataclass
class HealthCheckResult:
    name: str = ""
    status: HealthStatus = HealthStatus.HEALTHY
    response_time: float = 0.0  # milliseconds
    error: Optional[str] = None
    metadata: dict = field(default_factory=dict)

    def to_dict(self):
        return {
            "name": self.name,
            "status": HealthStatus(self.status).value,
            "responseTime": self.response_time,
            "error": self.error,
            "metadata": dict(self.metadata),
        }


@dataclass
class SystemHealth:
    status: HealthStatus = HealthStatus.HEALTHY
    timestamp: str = ""
    uptime: float = 0.0
    version: str = "unknown"
    environment: str = "unknown"
    checks: list = field(default_factory=list)

    @property
    def summary(self):
        counts = {s.value: 0 for s in HealthStatus}
        for c in self.checks:
            counts[HealthStatus(c.status).value] += 1
        return {"total": len(self.checks), **counts}

    def to_dict(self):
        return {
            "status": HealthStatus(self.status).value,
            "timestamp": self.timestamp,
            "uptime": self.uptime,
            "version": self.version,
            "environment": self.environment,
            "checks": [c.to_dict() for c in self.checks],
            "summary": self.summary,
        }
