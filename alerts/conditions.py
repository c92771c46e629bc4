"""Evaluation of alert conditions against metrics and health data."""
import logging
from numbers import Real

from models.alerts import (
    CustomCondition, ErrorRateCondition, HealthCheckCondition, MetricCondition, ResponseTimeCondition,
)
from models.enums import Comparator, HealthStatus, MetricType
from utils.clock import SystemClock

logger = logging.getLogger("governor.alerts.conditions")

# Status assumed for an unreachable health source, for every comparator.
UNREACHABLE_STATUS = HealthStatus.UNHEALTHY.value

NUMERIC_OPERATORS = {
    Comparator.GT: lambda a, e: a > e,
    Comparator.LT: lambda a, e: a < e,
    Comparator.GTE: lambda a, e: a >= e,
    Comparator.LTE: lambda a, e: a <= e,
}

AGGREGATIONS = {
    "avg": lambda vals: sum(vals) / len(vals),
    "sum": sum,
    "min": min,
    "max": max,
    "count": len,
    "last": lambda vals: vals[-1],
}

FAILURE_RATE_SUFFIX = "_failure_rate"


def _is_number(value):
    return isinstance(value, Real) and not isinstance(value, bool)


def compare_values(actual, comparator, expected) -> bool:
    comparator = Comparator(comparator)
    if comparator == Comparator.EQ:
        return actual == expected
    if comparator == Comparator.CONTAINS:
        return str(expected) in str(actual)
    if comparator == Comparator.NOT_CONTAINS:
        return str(expected) not in str(actual)
    if not (_is_number(actual) and _is_number(expected)):
        return False
    return NUMERIC_OPERATORS[comparator](actual, expected)


def _failure_rate(records):
    if not records:
        return None
    failures = sum(1 for m in records if not m.success)
    return failures / len(records)


class ConditionEvaluator:
    """Decides whether a single condition holds right now.

    Data-source errors propagate to the caller, except an unreachable
    health source, which is read as ``unhealthy``.
    """

    def __init__(self, metrics=None, health_source=None, clock=None):
        self.metrics = metrics
        self.health_source = health_source
        self.clock = clock or SystemClock()
        self.custom_evaluators = {}

    def evaluate(self, condition) -> bool:
        match condition:
            case MetricCondition():
                return self._evaluate_metric(condition)
            case ErrorRateCondition():
                return self._evaluate_error_rate(condition)
            case ResponseTimeCondition():
                return self._evaluate_response_time(condition)
            case HealthCheckCondition():
                return self._evaluate_health(condition)
            case CustomCondition():
                return self._evaluate_custom(condition)
            case _:
                logger.warning(f"Unknown condition kind: {type(condition).__name__}")
                return False

    def _recent(self, condition, metric_type):
        if self.metrics is None:
            return []
        cutoff = self.clock.now() - condition.window_minutes * 60
        return [m for m in self.metrics.get_metrics(since=cutoff) if m.type == metric_type]

    def _performance(self, condition, operation=None):
        records = self._recent(condition, MetricType.PERFORMANCE)
        if operation:
            records = [m for m in records if m.operation == operation]
        return records

    def _evaluate_metric(self, condition: MetricCondition) -> bool:
        name = condition.field
        if name.endswith(FAILURE_RATE_SUFFIX):
            operation = name[:-len(FAILURE_RATE_SUFFIX)]
            rate = _failure_rate(self._performance(condition, operation))
            return rate is not None and compare_values(rate, condition.comparator, condition.value)

        values = [m.value for m in self._recent(condition, MetricType.BUSINESS)
                  if m.event == name and m.value is not None]
        values += [m.duration for m in self._performance(condition, name)]
        if not values:
            return False

        aggregate = AGGREGATIONS.get(condition.aggregation)
        if aggregate is None:
            logger.warning(f"Unknown aggregation '{condition.aggregation}' for metric {name}")
            return False
        return compare_values(aggregate(values), condition.comparator, condition.value)

    def _evaluate_error_rate(self, condition: ErrorRateCondition) -> bool:
        rate = _failure_rate(self._performance(condition, condition.operation))
        return rate is not None and compare_values(rate, condition.comparator, condition.value)

    def _evaluate_response_time(self, condition: ResponseTimeCondition) -> bool:
        records = self._performance(condition, condition.operation)
        if not records:
            return False
        mean = sum(m.duration for m in records) / len(records)
        return compare_values(mean, condition.comparator, condition.value)

    def _evaluate_health(self, condition: HealthCheckCondition) -> bool:
        if self.health_source is None:
            return False
        try:
            health = self.health_source.get_health()
        except Exception as e:
            logger.warning(f"Health source unreachable, treating as {UNREACHABLE_STATUS}: {e}")
            return compare_values(UNREACHABLE_STATUS, condition.comparator, condition.value)

        checks = health.get("checks") or []
        if condition.field == "status":
            return compare_values(health.get("status"), condition.comparator, condition.value)
        if condition.field:
            for check in checks:
                if check.get("name") == condition.field:
                    return compare_values(check.get("status"), condition.comparator, condition.value)
            logger.debug(f"Health document has no subsystem '{condition.field}'")
            return False
        return any(c.get("status") == HealthStatus.UNHEALTHY.value for c in checks)

    def _evaluate_custom(self, condition: CustomCondition) -> bool:
        fn = self.custom_evaluators.get(condition.evaluator)
        if fn is None:
            logger.debug(f"No custom evaluator registered for '{condition.evaluator}'")
            return False
        return compare_values(fn(condition), condition.comparator, condition.value)
