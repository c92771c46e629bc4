"""Dataclasses for feature flags and the user evaluation context."""
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Optional


def parse_datetime(value) -> Optional[datetime]:
    """Parse an ISO-8601 string (``Z`` suffix allowed) into an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass
class FeatureFlag:
    key: str = ""
    name: str = ""
    description: str = ""
    enabled: bool = False
    value: Any = None
    rollout_percentage: Optional[float] = None
    user_segments: list = field(default_factory=list)
    environments: list = field(default_factory=list)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    metadata: dict = field(default_factory=dict)

    @property
    def disabled_value(self):
        """What an evaluation that fails a gate returns."""
        return self.value if self.value is not None else False

    @property
    def enabled_value(self):
        return self.value if self.value is not None else True

    def updated(self, **updates) -> "FeatureFlag":
        if "start_date" in updates:
            updates["start_date"] = parse_datetime(updates["start_date"])
        if "end_date" in updates:
            updates["end_date"] = parse_datetime(updates["end_date"])
        return replace(self, **updates)

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "name": self.name,
            "description": self.description,
            "enabled": self.enabled,
            "value": self.value,
            "rollout_percentage": self.rollout_percentage,
            "user_segments": list(self.user_segments),
            "environments": list(self.environments),
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, raw: dict) -> "FeatureFlag":
        return cls(
            key=raw["key"],
            name=raw.get("name", raw["key"]),
            description=raw.get("description", ""),
            enabled=bool(raw.get("enabled", False)),
            value=raw.get("value"),
            rollout_percentage=raw.get("rollout_percentage", raw.get("rolloutPercentage")),
            user_segments=list(raw.get("user_segments", raw.get("userSegments")) or []),
            environments=list(raw.get("environments", raw.get("environment")) or []),
            start_date=parse_datetime(raw.get("start_date", raw.get("startDate"))),
            end_date=parse_datetime(raw.get("end_date", raw.get("endDate"))),
            metadata=dict(raw.get("metadata") or {}),
        )


@dataclass
class UserContext:
    user_id: Optional[str] = None
    email: Optional[str] = None
    tier: Optional[str] = None
    segments: list = field(default_factory=list)
    environment: Optional[str] = None
    version: Optional[str] = None
    experiment: Optional[str] = None

    def merged(self, other: "UserContext") -> "UserContext":
        """Values set on ``other`` win; unset ones keep this context's values."""
        updates = {k: v for k, v in other.to_dict().items() if v not in (None, [])}
        return replace(self, **updates)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "email": self.email,
            "tier": self.tier,
            "segments": list(self.segments),
            "environment": self.environment,
            "version": self.version,
            "experiment": self.experiment,
        }

    @classmethod
    def from_dict(cls, raw: dict) -> "UserContext":
        raw = raw or {}
        return cls(
            user_id=raw.get("user_id", raw.get("userId")),
            email=raw.get("email"),
            tier=raw.get("tier"),
            segments=list(raw.get("segments") or []),
            environment=raw.get("environment"),
            version=raw.get("version"),
            experiment=raw.get("experiment"),
        )
