"""Tests for the Flask API."""
import copy
import threading
from unittest.mock import patch

import pytest

from bootstrap import build_services
from config import load_config
from conftest import RecordingChannel
from models.enums import HealthStatus
from models.flags import FeatureFlag
from models.metrics import HealthCheckResult
from web.app import create_app


@pytest.fixture(scope="module")
def base_config():
    return load_config(environ={})


@pytest.fixture
def services(base_config, clock):
    config = copy.deepcopy(base_config)
    config["rate_limit"]["default_max_requests"] = 1000
    svc = build_services(config, clock=clock, channels={"console": RecordingChannel(),
                                                        "log": RecordingChannel()}, environ={})
    svc["health_checker"].register_check(
        "disk", lambda: HealthCheckResult(name="disk", status=HealthStatus.HEALTHY))
    yield svc
    svc["alert_manager"].destroy(grace_seconds=1)


@pytest.fixture
def client(services):
    app = create_app(services["config"], services)
    app.config["TESTING"] = True
    return app.test_client()


# ── Health & metrics ────────────────────────────────────

def test_health_ok(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["status"] == "healthy"
    assert data["checks"][0]["name"] == "disk"
    assert "X-RateLimit-Limit" in resp.headers


def test_health_unhealthy_returns_503(client, services):
    services["health_checker"].register_check(
        "db", lambda: HealthCheckResult(name="db", status=HealthStatus.UNHEALTHY, error="down"))
    resp = client.get("/api/health")
    assert resp.status_code == 503
    assert resp.get_json()["status"] == "unhealthy"


def test_health_single_check(client):
    resp = client.get("/api/health?check=disk")
    assert resp.status_code == 200
    assert resp.get_json()["name"] == "disk"


def test_health_unknown_check(client):
    resp = client.get("/api/health?check=nope")
    assert resp.status_code == 404
    assert resp.get_json()["availableChecks"] == ["disk"]


def test_requests_are_tracked_as_performance_metrics(client, services):
    client.get("/api/health")
    ops = [m.operation for m in services["metrics"].get_metrics(metric_type="performance")]
    assert "GET api_health" in ops


def test_metrics_summary(client):
    client.get("/api/health")
    data = client.get("/api/metrics").get_json()
    assert data["by_type"]["performance"] >= 1
    assert data["window_minutes"] == 5


# ── Rate limiting ───────────────────────────────────────

def test_api_is_rate_limited(base_config, clock):
    config = copy.deepcopy(base_config)
    config["rate_limit"]["default_max_requests"] = 2
    svc = build_services(config, clock=clock, channels={}, environ={})
    try:
        client = create_app(config, svc).test_client()
        assert client.get("/api/metrics").status_code == 200
        assert client.get("/api/metrics").status_code == 200
        resp = client.get("/api/metrics")
        assert resp.status_code == 429
        assert resp.get_json()["error"] == "Rate limit exceeded"
    finally:
        svc["alert_manager"].destroy(grace_seconds=1)


# ── Thresholds ──────────────────────────────────────────

NEW_THRESHOLD = {
    "id": "queue_backlog",
    "name": "Queue Backlog",
    "severity": "warning",
    "channels": ["log"],
    "cooldown_minutes": 10,
    "conditions": [{"type": "metric", "comparator": "gt", "value": 100, "field": "queue_depth"}],
}


def test_list_thresholds(client):
    data = client.get("/api/admin/thresholds").get_json()
    assert data["count"] == 5
    assert {t["id"] for t in data["thresholds"]} >= {"high_error_rate", "service_unhealthy"}


def test_create_update_delete_threshold(client, services):
    resp = client.post("/api/admin/thresholds", json=NEW_THRESHOLD)
    assert resp.status_code == 201
    assert services["alert_manager"].get_threshold("queue_backlog") is not None

    resp = client.patch("/api/admin/thresholds/queue_backlog", json={"enabled": False, "bogus": 1})
    assert resp.status_code == 200
    assert resp.get_json()["enabled"] is False

    assert client.delete("/api/admin/thresholds/queue_backlog").status_code == 200
    assert client.delete("/api/admin/thresholds/queue_backlog").status_code == 404


def test_create_threshold_validation(client):
    bad = dict(NEW_THRESHOLD, conditions=[{"type": "latency", "comparator": "gt", "value": 1}])
    assert client.post("/api/admin/thresholds", json=bad).status_code == 400
    assert client.post("/api/admin/thresholds", data="nope", content_type="text/plain").status_code == 400


def test_update_unknown_threshold(client):
    assert client.patch("/api/admin/thresholds/nope", json={"enabled": False}).status_code == 404


# ── Alerts ──────────────────────────────────────────────

def test_test_alert_then_lifecycle(client, services):
    resp = client.post("/api/admin/alerts/test", json={"severity": "warning"})
    assert resp.status_code == 201
    alert = resp.get_json()
    assert alert["severity"] == "warning"

    active = client.get("/api/admin/alerts").get_json()
    assert active["count"] == 1

    resp = client.post(f"/api/admin/alerts/{alert['id']}/acknowledge", json={"actor": "oncall"})
    assert resp.status_code == 200
    assert resp.get_json()["acknowledged_by"] == "oncall"

    resp = client.post(f"/api/admin/alerts/{alert['id']}/resolve")
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "resolved"

    assert client.get("/api/admin/alerts").get_json()["count"] == 0
    history = client.get("/api/admin/alerts?history=1&limit=10").get_json()
    assert [a["id"] for a in history["alerts"]] == [alert["id"]]


def test_test_alert_bad_severity(client):
    assert client.post("/api/admin/alerts/test", json={"severity": "urgent"}).status_code == 400


def test_lifecycle_unknown_alert(client):
    assert client.post("/api/admin/alerts/nope/acknowledge").status_code == 404
    assert client.post("/api/admin/alerts/nope/resolve").status_code == 404


# ── Flags ───────────────────────────────────────────────

def test_list_flags(client):
    data = client.get("/api/admin/flags").get_json()
    assert data["stats"]["totalFlags"] == 9
    assert len(data["flags"]) == 9


def test_evaluate_flag(client):
    data = client.get("/api/flags/max_file_size_mb/evaluate?user_id=u1&tier=free").get_json()
    assert data == {"key": "max_file_size_mb", "enabled": True, "value": 100}

    data = client.get("/api/flags/analytics_tracking/evaluate?user_id=u1").get_json()
    assert data["enabled"] is True


def test_evaluate_flag_segments(client):
    url = "/api/flags/advanced_ai_features/evaluate?user_id=u1&tier=enterprise"
    assert client.get(url).get_json()["enabled"] is False  # flag disabled
    client.patch("/api/admin/flags/advanced_ai_features", json={"enabled": True, "rollout_percentage": 100})
    assert client.get(url).get_json()["enabled"] is True
    assert client.get("/api/flags/advanced_ai_features/evaluate?user_id=u1").get_json()["enabled"] is False


def test_evaluate_flag_is_isolated_per_request(client, services):
    flags = services["feature_flags"]
    flags.add_flag(FeatureFlag(key="exp", enabled=True, rollout_percentage=50))
    users = [f"user{i}" for i in range(100)]
    on_user = next(u for u in users if flags.bucket("exp", u) < 50)
    off_user = next(u for u in users if flags.bucket("exp", u) >= 50)
    app = client.application
    wrong = []

    def hammer(user_id, expected):
        own_client = app.test_client()
        for _ in range(200):
            data = own_client.get(f"/api/flags/exp/evaluate?user_id={user_id}").get_json()
            if data["enabled"] is not expected:
                wrong.append((user_id, data["enabled"]))

    threads = [threading.Thread(target=hammer, args=(on_user, True)),
               threading.Thread(target=hammer, args=(off_user, False))]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert wrong == []
    assert flags.get_user_context().user_id is None


def test_update_flag(client, services):
    resp = client.patch("/api/admin/flags/debug_mode", json={"enabled": True})
    assert resp.status_code == 200
    assert services["feature_flags"].get_flag("debug_mode").enabled is True
    assert client.patch("/api/admin/flags/nope", json={"enabled": True}).status_code == 404


def test_override_flag(client):
    assert client.put("/api/admin/flags/new_ui_design/override", json={"value": True}).status_code == 200
    assert client.get("/api/flags/new_ui_design/evaluate").get_json()["enabled"] is True
    assert client.delete("/api/admin/flags/new_ui_design/override").status_code == 200
    assert client.get("/api/flags/new_ui_design/evaluate").get_json()["enabled"] is False
    assert client.put("/api/admin/flags/new_ui_design/override", json={}).status_code == 400


def test_flag_config_export_import(client, services):
    exported = client.get("/api/admin/flags/config").get_json()
    assert len(exported["flags"]) == 9

    resp = client.post("/api/admin/flags/config", json={
        "flags": [{"key": "dark_mode", "enabled": True}],
        "overrides": {"debug_mode": True},
    })
    assert resp.status_code == 200
    assert resp.get_json()["stats"]["totalFlags"] == 10
    assert services["feature_flags"].is_enabled("debug_mode")

    assert client.post("/api/admin/flags/config", json={"flags": [{"name": "no key"}]}).status_code == 400


# ── Alert evaluation through the API ───────────────────

def test_server_errors_feed_error_rate_threshold(client, services):
    app = client.application

    @app.route("/api/boom")
    def boom():
        return {"error": "boom"}, 500

    for _ in range(3):
        client.get("/api/boom")
    alerts = services["alert_manager"].evaluate_all()
    assert "high_error_rate" in {a.threshold_id for a in alerts}
