"""Data models."""
from models.enums import Severity, AlertStatus, ConditionType, Comparator, HealthStatus, MetricType, UserTier
from models.alerts import (
    AlertCondition, MetricCondition, ErrorRateCondition, ResponseTimeCondition,
    HealthCheckCondition, CustomCondition, AlertThreshold, Alert, condition_from_dict,
)
from models.flags import FeatureFlag, UserContext
from models.metrics import PerformanceMetric, BusinessMetric, UsageMetric, HealthCheckResult, SystemHealth
from models.ratelimit import RateLimitEntry, RateLimitResult
