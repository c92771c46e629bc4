"""Tests for threshold YAML loading."""
from pathlib import Path

import yaml

from alerts.engine import AlertManager
from alerts.thresholds import ThresholdLoader
from models.alerts import ErrorRateCondition, HealthCheckCondition, MetricCondition
from models.enums import Severity

DEFAULT_THRESHOLDS = Path(__file__).parent.parent / "config" / "alert_thresholds.yaml"


def test_default_thresholds_load():
    thresholds = ThresholdLoader(DEFAULT_THRESHOLDS).load()
    by_id = {t.id: t for t in thresholds}
    assert set(by_id) == {
        "high_error_rate", "slow_response_time", "service_unhealthy",
        "high_memory_usage", "ai_generation_failures",
    }
    err = by_id["high_error_rate"]
    assert err.severity == Severity.ERROR
    assert err.cooldown_minutes == 15
    assert isinstance(err.conditions[0], ErrorRateCondition)
    assert err.conditions[0].value == 0.05

    health = by_id["service_unhealthy"].conditions[0]
    assert isinstance(health, HealthCheckCondition)
    assert health.field == "status"

    mem = by_id["high_memory_usage"].conditions[0]
    assert isinstance(mem, MetricCondition)
    assert mem.aggregation == "last"


def test_missing_file_returns_empty(tmp_path):
    assert ThresholdLoader(tmp_path / "nope.yaml").load() == []


def test_invalid_entries_are_skipped(tmp_path):
    path = tmp_path / "thresholds.yaml"
    path.write_text(yaml.safe_dump({"thresholds": [
        {"id": "ok", "conditions": [{"type": "error_rate", "comparator": "gt", "value": 0.1}]},
        {"id": "bad_type", "conditions": [{"type": "latency", "comparator": "gt", "value": 1}]},
        {"id": "bad_severity", "severity": "urgent"},
        {"name": "no id"},
    ]}))
    assert [t.id for t in ThresholdLoader(path).load()] == ["ok"]


def test_duplicate_ids_keep_last():
    thresholds = ThresholdLoader.parse([
        {"id": "dup", "name": "First"},
        {"id": "other"},
        {"id": "dup", "name": "Second"},
    ])
    assert [t.id for t in thresholds] == ["other", "dup"]
    assert thresholds[-1].name == "Second"


def test_load_into_manager(clock):
    mgr = AlertManager(clock=clock)
    try:
        assert ThresholdLoader(DEFAULT_THRESHOLDS).load_into(mgr) == 5
        assert mgr.get_threshold("ai_generation_failures").conditions[0].field == "ai_generation_failure_rate"
    finally:
        mgr.destroy(grace_seconds=1)
