"""Tests for the alert manager: evaluation, cooldowns, lifecycle and dispatch."""
import time
import logging
import threading

import pytest

from alerts.engine import AlertManager
from conftest import FailingChannel, RecordingChannel, StaticHealthSource
from models.alerts import AlertThreshold, ErrorRateCondition, HealthCheckCondition, MetricCondition
from models.enums import AlertStatus, Severity
from utils.http_client import APIError


def _error_rate_threshold(**kwargs):
    defaults = dict(
        id="high_error_rate",
        name="High Error Rate",
        description="Error rate exceeds 5%",
        severity=Severity.ERROR,
        conditions=[ErrorRateCondition(comparator="gt", value=0.05)],
        channels=["recording"],
        cooldown_minutes=15,
    )
    defaults.update(kwargs)
    return AlertThreshold(**defaults)


def _add_errors(metrics, failures=1, total=10):
    for i in range(total):
        metrics.track_performance("GET api", 10, success=i >= failures)


@pytest.fixture
def manager(metrics, clock, recording_channel):
    mgr = AlertManager(metrics=metrics, clock=clock, channels={"recording": recording_channel})
    yield mgr
    mgr.destroy(grace_seconds=1)


# ── Threshold admin ─────────────────────────────────────

def test_add_and_get_threshold(manager):
    t = _error_rate_threshold()
    manager.add_threshold(t)
    assert manager.get_threshold("high_error_rate") is t
    assert manager.get_all_thresholds() == [t]


def test_update_threshold(manager):
    manager.add_threshold(_error_rate_threshold())
    assert manager.update_threshold("high_error_rate", severity="critical", cooldown_minutes=5,
                                    conditions=[{"type": "error_rate", "comparator": "gt", "value": 0.5}])
    t = manager.get_threshold("high_error_rate")
    assert t.severity == Severity.CRITICAL
    assert t.cooldown_minutes == 5
    assert t.conditions[0].value == 0.5


def test_update_unknown_threshold_returns_false(manager):
    assert manager.update_threshold("missing", enabled=False) is False


def test_remove_threshold(manager):
    manager.add_threshold(_error_rate_threshold())
    assert manager.remove_threshold("high_error_rate")
    assert manager.get_threshold("high_error_rate") is None
    assert manager.remove_threshold("high_error_rate") is False


# ── Evaluation ──────────────────────────────────────────

def test_threshold_fires_when_condition_holds(manager, metrics, recording_channel):
    manager.add_threshold(_error_rate_threshold())
    _add_errors(metrics, failures=1, total=10)

    alerts = manager.evaluate_all()
    assert len(alerts) == 1
    alert = alerts[0]
    assert alert.threshold_id == "high_error_rate"
    assert alert.severity == Severity.ERROR
    assert alert.title == "High Error Rate"
    assert alert.status == AlertStatus.ACTIVE
    assert alert.id.startswith("alert_")

    assert manager.flush(timeout=2)
    assert recording_channel.sent == [alert]


def test_threshold_quiet_when_condition_fails(manager, metrics, recording_channel):
    manager.add_threshold(_error_rate_threshold())
    _add_errors(metrics, failures=0, total=10)
    assert manager.evaluate_all() == []
    assert manager.get_active_alerts() == []


def test_all_conditions_must_hold(manager, metrics):
    threshold = _error_rate_threshold(conditions=[
        ErrorRateCondition(comparator="gt", value=0.05),
        MetricCondition(comparator="gt", value=90, field="memory_percentage"),
    ])
    manager.add_threshold(threshold)
    _add_errors(metrics, failures=5, total=10)
    assert manager.evaluate_all() == []

    metrics.track_business_event("memory_percentage", 95)
    assert len(manager.evaluate_all()) == 1


def test_all_conditions_must_hold_when_only_metric_holds(manager, metrics):
    threshold = _error_rate_threshold(conditions=[
        ErrorRateCondition(comparator="gt", value=0.05),
        MetricCondition(comparator="gt", value=90, field="memory_percentage"),
    ])
    manager.add_threshold(threshold)
    metrics.track_business_event("memory_percentage", 95)
    _add_errors(metrics, failures=0, total=10)
    assert manager.evaluate_all() == []
    assert manager.get_active_alerts() == []


def test_disabled_threshold_never_fires(manager, metrics):
    manager.add_threshold(_error_rate_threshold(enabled=False))
    _add_errors(metrics, failures=5, total=10)
    assert manager.evaluate_all() == []


def test_triggered_alert_tracks_business_event(manager, metrics):
    manager.add_threshold(_error_rate_threshold())
    _add_errors(metrics)
    manager.evaluate_all()
    events = [m for m in metrics.get_metrics(metric_type="business") if m.event == "alert_triggered"]
    assert len(events) == 1
    assert events[0].properties["threshold_id"] == "high_error_rate"


# ── Cooldown ────────────────────────────────────────────

def test_cooldown_suppresses_repeat_alerts(manager, metrics, clock):
    manager.add_threshold(_error_rate_threshold(cooldown_minutes=15))
    _add_errors(metrics, failures=3, total=10)

    assert len(manager.evaluate_all()) == 1
    assert manager.is_in_cooldown("high_error_rate")

    clock.advance(60)
    _add_errors(metrics, failures=3, total=10)
    assert manager.evaluate_all() == []

    clock.advance(15 * 60)
    _add_errors(metrics, failures=3, total=10)
    assert len(manager.evaluate_all()) == 1


def test_no_cooldown_fires_every_pass(manager, metrics):
    manager.add_threshold(_error_rate_threshold(cooldown_minutes=None))
    _add_errors(metrics)
    assert len(manager.evaluate_all()) == 1
    assert len(manager.evaluate_all()) == 1


def test_removal_clears_cooldown(manager, metrics):
    manager.add_threshold(_error_rate_threshold())
    _add_errors(metrics)
    manager.evaluate_all()
    manager.remove_threshold("high_error_rate")
    assert not manager.is_in_cooldown("high_error_rate")

    manager.add_threshold(_error_rate_threshold())
    assert len(manager.evaluate_all()) == 1


def test_concurrent_evaluation_fires_once(manager, metrics):
    manager.add_threshold(_error_rate_threshold())
    _add_errors(metrics)
    threshold = manager.get_threshold("high_error_rate")

    results = []
    threads = [threading.Thread(target=lambda: results.append(manager.evaluate_threshold(threshold)))
               for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len([r for r in results if r is not None]) == 1


# ── Evaluation failures ─────────────────────────────────

def test_failing_threshold_does_not_block_others(manager, metrics):
    manager.register_custom_evaluator("boom", lambda cond: 1 / 0)
    manager.add_threshold(AlertThreshold.from_dict({
        "id": "broken", "name": "Broken", "severity": "warning", "channels": ["recording"],
        "conditions": [{"type": "custom", "comparator": "gt", "value": 0, "evaluator": "boom"}],
    }))
    manager.add_threshold(_error_rate_threshold())
    _add_errors(metrics)

    alerts = manager.evaluate_all()
    assert [a.threshold_id for a in alerts] == ["high_error_rate"]


def test_unreachable_health_source_fires_unhealthy_alert(metrics, clock, recording_channel):
    source = StaticHealthSource(error=APIError("timeout", source="health"))
    mgr = AlertManager(metrics=metrics, health_source=source, clock=clock,
                       channels={"recording": recording_channel})
    mgr.add_threshold(AlertThreshold(
        id="service_unhealthy", name="Service Unhealthy", severity=Severity.CRITICAL,
        conditions=[HealthCheckCondition(comparator="eq", value="unhealthy", field="status")],
        channels=["recording"], cooldown_minutes=5,
    ))
    try:
        alerts = mgr.evaluate_all()
        assert len(alerts) == 1
        assert alerts[0].severity == Severity.CRITICAL
    finally:
        mgr.destroy(grace_seconds=1)


def test_slow_evaluation_times_out(metrics, clock):
    release = threading.Event()
    mgr = AlertManager(metrics=metrics, clock=clock, evaluation_timeout_seconds=0.2)
    mgr.register_custom_evaluator("slow", lambda cond: release.wait(5) and 1)
    mgr.add_threshold(AlertThreshold.from_dict({
        "id": "slow", "conditions": [{"type": "custom", "comparator": "gt", "value": 0, "evaluator": "slow"}],
    }))
    try:
        start = time.monotonic()
        assert mgr.evaluate_all() == []
        assert time.monotonic() - start < 2
    finally:
        release.set()
        mgr.destroy(grace_seconds=1)


# ── Dispatch ────────────────────────────────────────────

def test_channel_failure_is_isolated(metrics, clock, caplog):
    good = RecordingChannel()
    bad = FailingChannel()
    mgr = AlertManager(metrics=metrics, clock=clock, channels={"bad": bad, "good": good})
    mgr.add_threshold(_error_rate_threshold(channels=["bad", "good"]))
    _add_errors(metrics)
    try:
        alerts = mgr.evaluate_all()
        assert mgr.flush(timeout=2)
        assert bad.calls == 1
        assert good.sent == alerts
        assert "Failed to send alert" in caplog.text
    finally:
        mgr.destroy(grace_seconds=1)


def test_unknown_channel_is_skipped(manager, metrics, recording_channel, caplog):
    manager.add_threshold(_error_rate_threshold(channels=["pager", "recording"]))
    _add_errors(metrics)
    alerts = manager.evaluate_all()
    assert manager.flush(timeout=2)
    assert recording_channel.sent == alerts
    assert "channel 'pager' is not configured" in caplog.text


def test_slow_channel_does_not_block_evaluation(metrics, clock):
    release = threading.Event()

    class SlowChannel:
        def send(self, alert):
            release.wait(5)

    mgr = AlertManager(metrics=metrics, clock=clock, channels={"slow": SlowChannel()})
    mgr.add_threshold(_error_rate_threshold(channels=["slow"]))
    _add_errors(metrics)
    try:
        start = time.monotonic()
        assert len(mgr.evaluate_all()) == 1
        assert time.monotonic() - start < 2
        assert mgr.flush(timeout=0.1) is False
    finally:
        release.set()
        mgr.destroy(grace_seconds=1)


# ── Test alerts ─────────────────────────────────────────

def test_trigger_test_alert(manager, recording_channel):
    alert = manager.trigger_test_alert("warning", channels=["recording"])
    assert alert.threshold_id == "test_alert"
    assert alert.severity == Severity.WARNING
    assert alert.title == "Test Alert"
    assert manager.flush(timeout=2)
    assert recording_channel.sent == [alert]


def test_test_alerts_are_distinct(manager):
    first = manager.trigger_test_alert(channels=["recording"])
    second = manager.trigger_test_alert(channels=["recording"])
    assert first.id != second.id
    assert len(manager.get_active_alerts()) == 2


@pytest.mark.parametrize("severity,level", [
    ("info", logging.INFO),
    ("warning", logging.WARNING),
    ("critical", logging.CRITICAL),
])
def test_trigger_logs_at_alert_severity(manager, caplog, severity, level):
    caplog.set_level(logging.DEBUG, logger="governor.alerts.engine")
    manager.trigger_test_alert(severity, channels=["recording"])
    record = next(r for r in caplog.records if r.getMessage().startswith("Alert triggered"))
    assert record.levelno == level


# ── Lifecycle ───────────────────────────────────────────

def test_acknowledge_then_resolve(manager, clock):
    alert = manager.trigger_test_alert(channels=["recording"])

    assert manager.acknowledge_alert(alert.id, "oncall")
    assert alert.status == AlertStatus.ACKNOWLEDGED
    assert alert.acknowledged_by == "oncall"
    assert alert.acknowledged_at == clock.utcnow()
    assert not manager.acknowledge_alert(alert.id, "someone-else")

    clock.advance(30)
    assert manager.resolve_alert(alert.id)
    assert alert.status == AlertStatus.RESOLVED
    assert alert.resolved_at == clock.utcnow()
    assert manager.get_active_alerts() == []
    assert manager.get_alert_history() == [alert]


def test_resolve_active_alert_directly(manager):
    alert = manager.trigger_test_alert(channels=["recording"])
    assert manager.resolve_alert(alert.id)
    assert alert.acknowledged_by is None


def test_lifecycle_on_unknown_alert(manager):
    assert manager.acknowledge_alert("nope", "oncall") is False
    assert manager.resolve_alert("nope") is False


def test_resolved_alert_cannot_be_acknowledged(manager):
    alert = manager.trigger_test_alert(channels=["recording"])
    manager.resolve_alert(alert.id)
    assert manager.acknowledge_alert(alert.id, "oncall") is False
    assert manager.resolve_alert(alert.id) is False


def test_history_limit(metrics, clock):
    mgr = AlertManager(metrics=metrics, clock=clock, history_limit=3)
    try:
        ids = [mgr.trigger_test_alert(channels=[]).id for _ in range(5)]
        assert [a.id for a in mgr.get_alert_history()] == ids[-3:]
        assert [a.id for a in mgr.get_alert_history(limit=2)] == ids[-2:]
    finally:
        mgr.destroy(grace_seconds=1)


# ── Dry run & formatting ────────────────────────────────

def test_test_thresholds_is_dry_run(manager, metrics):
    manager.add_threshold(_error_rate_threshold())
    _add_errors(metrics)
    results = manager.test_thresholds()
    assert results[0]["would_fire"] is True
    assert results[0]["conditions"] == [True]
    assert manager.get_active_alerts() == []
    assert not manager.is_in_cooldown("high_error_rate")


def test_format_alert_summary(manager):
    assert manager.format_alert_summary([]) == "All clear - no alerts triggered."
    alert = manager.trigger_test_alert("critical", channels=[])
    summary = manager.format_alert_summary([alert])
    assert "[CRITICAL] Test Alert" in summary
    assert "(active)" in summary


def test_evaluate_after_destroy_is_noop(metrics, clock):
    mgr = AlertManager(metrics=metrics, clock=clock)
    mgr.add_threshold(_error_rate_threshold(channels=[]))
    _add_errors(metrics)
    mgr.destroy(grace_seconds=1)
    assert mgr.evaluate_all() == []
