"""Dataclasses for alert thresholds, conditions and alert records."""
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import ClassVar, Optional, Union

from models.enums import AlertStatus, Comparator, ConditionType, Severity

DEFAULT_WINDOW_MINUTES = 5


@dataclass
class AlertCondition:
    comparator: Comparator = Comparator.GT
    value: Union[float, str] = 0
    time_window_minutes: Optional[float] = None

    type: ClassVar[ConditionType]

    @property
    def window_minutes(self) -> float:
        return self.time_window_minutes or DEFAULT_WINDOW_MINUTES

    def to_dict(self) -> dict:
        d = {"type": self.type.value}
        for f in fields(self):
            val = getattr(self, f.name)
            if isinstance(val, Comparator):
                val = val.value
            if val is not None:
                d[f.name] = val
        return d


@dataclass
class MetricCondition(AlertCondition):
    field: str = ""
    aggregation: str = "avg"

    type: ClassVar[ConditionType] = ConditionType.METRIC


@dataclass
class ErrorRateCondition(AlertCondition):
    operation: Optional[str] = None

    type: ClassVar[ConditionType] = ConditionType.ERROR_RATE


@dataclass
class ResponseTimeCondition(AlertCondition):
    operation: Optional[str] = None

    type: ClassVar[ConditionType] = ConditionType.RESPONSE_TIME


@dataclass
class HealthCheckCondition(AlertCondition):
    field: Optional[str] = None

    type: ClassVar[ConditionType] = ConditionType.HEALTH_CHECK


@dataclass
class CustomCondition(AlertCondition):
    evaluator: str = ""

    type: ClassVar[ConditionType] = ConditionType.CUSTOM


CONDITION_CLASSES = {
    ConditionType.METRIC: MetricCondition,
    ConditionType.ERROR_RATE: ErrorRateCondition,
    ConditionType.RESPONSE_TIME: ResponseTimeCondition,
    ConditionType.HEALTH_CHECK: HealthCheckCondition,
    ConditionType.CUSTOM: CustomCondition,
}


def condition_from_dict(raw: dict) -> AlertCondition:
    """Build the condition variant named by ``raw["type"]``.

    Accepts ``operator``/``timeWindow`` as aliases for
    ``comparator``/``time_window_minutes``. Raises ValueError on an
    unknown type or comparator.
    """
    cond_type = ConditionType(raw.get("type"))
    comparator = Comparator(raw.get("comparator", raw.get("operator")))
    cls = CONDITION_CLASSES[cond_type]

    kwargs = {
        "comparator": comparator,
        "value": raw.get("value", 0),
        "time_window_minutes": raw.get("time_window_minutes", raw.get("timeWindow")),
    }
    extra = {f.name for f in fields(cls)} - set(kwargs)
    for name in extra:
        if name in raw:
            kwargs[name] = raw[name]
    return cls(**kwargs)


@dataclass
class AlertThreshold:
    id: str = ""
    name: str = ""
    description: str = ""
    severity: Severity = Severity.INFO
    enabled: bool = True
    conditions: list = field(default_factory=list)
    channels: list = field(default_factory=list)
    cooldown_minutes: Optional[float] = None
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "severity": Severity(self.severity).value,
            "enabled": self.enabled,
            "conditions": [c.to_dict() for c in self.conditions],
            "channels": list(self.channels),
            "cooldown_minutes": self.cooldown_minutes,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, raw: dict) -> "AlertThreshold":
        return cls(
            id=raw["id"],
            name=raw.get("name", raw["id"]),
            description=raw.get("description", ""),
            severity=Severity(raw.get("severity", "info")),
            enabled=raw.get("enabled", True),
            conditions=[condition_from_dict(c) for c in raw.get("conditions", [])],
            channels=list(raw.get("channels", [])),
            cooldown_minutes=raw.get("cooldown_minutes", raw.get("cooldownMinutes")),
            metadata=dict(raw.get("metadata") or {}),
        )


@dataclass
class Alert:
    id: str = ""
    threshold_id: str = ""
    severity: Severity = Severity.INFO
    title: str = ""
    message: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    status: AlertStatus = AlertStatus.ACTIVE
    metadata: dict = field(default_factory=dict)
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    def acknowledge(self, actor: str, at: datetime) -> bool:
        if self.status != AlertStatus.ACTIVE:
            return False
        self.status = AlertStatus.ACKNOWLEDGED
        self.acknowledged_by = actor
        self.acknowledged_at = at
        return True

    def resolve(self, at: datetime) -> bool:
        if self.status == AlertStatus.RESOLVED:
            return False
        self.status = AlertStatus.RESOLVED
        self.resolved_at = at
        return True

    def to_dict(self) -> dict:
        def _iso(dt):
            return dt.isoformat() if dt else None

        return {
            "id": self.id,
            "threshold_id": self.threshold_id,
            "severity": Severity(self.severity).value,
            "title": self.title,
            "message": self.message,
            "timestamp": _iso(self.timestamp),
            "status": AlertStatus(self.status).value,
            "metadata": dict(self.metadata),
            "acknowledged_by": self.acknowledged_by,
            "acknowledged_at": _iso(self.acknowledged_at),
            "resolved_at": _iso(self.resolved_at),
        }
