"""
Flask app exposing health, metrics and the governance admin surface.

Public:
  GET    /api/health                           System health (503 when unhealthy), ?check=<name>
  GET    /api/metrics                          Metrics buffer summary
  GET    /api/flags/<key>/evaluate             Evaluate a flag, ?user_id=&tier=&segment=

Admin:
  GET    /api/admin/thresholds                 List alert thresholds
  POST   /api/admin/thresholds                 Register a threshold
  PATCH  /api/admin/thresholds/<id>            Update a threshold
  DELETE /api/admin/thresholds/<id>            Remove a threshold
  GET    /api/admin/alerts                     Active alerts (?history=1&limit=n for history)
  POST   /api/admin/alerts/<id>/acknowledge    Acknowledge, body {"actor": ...}
  POST   /api/admin/alerts/<id>/resolve        Resolve
  POST   /api/admin/alerts/test                Trigger a test alert, body {"severity": ...}
  GET    /api/admin/flags                      List flags and evaluation stats
  PATCH  /api/admin/flags/<key>                Update a flag definition
  PUT    /api/admin/flags/<key>/override       Force a flag value, body {"value": ...}
  DELETE /api/admin/flags/<key>/override       Clear an override
  GET    /api/admin/flags/config               Export flag configuration
  POST   /api/admin/flags/config               Import flag configuration

Every /api/* route is rate limited per client.
"""
import time
import logging

from flask import Flask, g, jsonify, request

from models.alerts import AlertThreshold
from models.enums import HealthStatus, Severity
from models.flags import UserContext
from rate_limiting import middleware

logger = logging.getLogger("governor.web.app")

FLAG_FIELDS = {
    "name", "description", "enabled", "value", "rollout_percentage", "user_segments",
    "environments", "start_date", "end_date", "metadata",
}
THRESHOLD_FIELDS = {
    "name", "description", "severity", "enabled", "conditions", "channels", "cooldown_minutes", "metadata",
}


def create_app(config: dict, services: dict) -> Flask:
    """
    Factory function. Receives initialized services from bootstrap.build_services.

    Args:
        config: Application config dict
        services: dict with rate_limiter, alert_manager, feature_flags, metrics, health_checker
    """
    app = Flask(__name__)

    alert_manager = services["alert_manager"]
    flags = services["feature_flags"]
    metrics = services["metrics"]
    health_checker = services["health_checker"]

    rl_cfg = config["rate_limit"]
    middleware.init_app(
        app,
        services["rate_limiter"],
        max_requests=rl_cfg["default_max_requests"],
        window_ms=rl_cfg["default_window_ms"],
        path_prefix=rl_cfg.get("path_prefix", "/api/"),
    )

    # ─── Request timing ──────────────────────────────────

    @app.before_request
    def _start_timer():
        g.request_started = time.monotonic()

    @app.after_request
    def _track_request(response):
        started = g.pop("request_started", None)
        if started is not None and request.endpoint:
            metrics.track_performance(
                f"{request.method} {request.endpoint}",
                (time.monotonic() - started) * 1000,
                success=response.status_code < 500,
                error_type=str(response.status_code) if response.status_code >= 500 else None,
            )
        return response

    def _json_body():
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return None
        return data

    # ─── Health & metrics ────────────────────────────────

    @app.route("/api/health")
    def api_health():
        check_name = request.args.get("check")
        if check_name:
            result = health_checker.run_check(check_name)
            if result is None:
                return jsonify({
                    "error": "Health check not found",
                    "availableChecks": health_checker.check_names,
                }), 404
            body = result.to_dict()
            status = result.status
        else:
            health = health_checker.run_all_checks()
            body = health.to_dict()
            status = health.status
        code = 503 if HealthStatus(status) == HealthStatus.UNHEALTHY else 200
        return jsonify(body), code

    @app.route("/api/metrics")
    def api_metrics():
        window = config["metrics"].get("summary_window_minutes", 5)
        return jsonify(metrics.get_summary(window_minutes=window))

    # ─── Alert thresholds ────────────────────────────────

    @app.route("/api/admin/thresholds", methods=["GET"])
    def list_thresholds():
        thresholds = [t.to_dict() for t in alert_manager.get_all_thresholds()]
        return jsonify({"thresholds": thresholds, "count": len(thresholds)})

    @app.route("/api/admin/thresholds", methods=["POST"])
    def add_threshold():
        data = _json_body()
        if data is None:
            return jsonify({"error": "Expected a JSON object"}), 400
        try:
            threshold = AlertThreshold.from_dict(data)
        except (KeyError, ValueError, TypeError) as e:
            return jsonify({"error": f"Invalid threshold: {e}"}), 400
        alert_manager.add_threshold(threshold)
        return jsonify(threshold.to_dict()), 201

    @app.route("/api/admin/thresholds/<threshold_id>", methods=["PATCH"])
    def update_threshold(threshold_id):
        data = _json_body()
        if data is None:
            return jsonify({"error": "Expected a JSON object"}), 400
        updates = {k: v for k, v in data.items() if k in THRESHOLD_FIELDS}
        try:
            updated = alert_manager.update_threshold(threshold_id, **updates)
        except (ValueError, TypeError) as e:
            return jsonify({"error": f"Invalid update: {e}"}), 400
        if not updated:
            return jsonify({"error": f"Unknown threshold: {threshold_id}"}), 404
        return jsonify(alert_manager.get_threshold(threshold_id).to_dict())

    @app.route("/api/admin/thresholds/<threshold_id>", methods=["DELETE"])
    def remove_threshold(threshold_id):
        if not alert_manager.remove_threshold(threshold_id):
            return jsonify({"error": f"Unknown threshold: {threshold_id}"}), 404
        return jsonify({"removed": threshold_id})

    # ─── Alerts ──────────────────────────────────────────

    @app.route("/api/admin/alerts", methods=["GET"])
    def list_alerts():
        if request.args.get("history"):
            limit = request.args.get("limit", type=int)
            alerts = alert_manager.get_alert_history(limit=limit)
        else:
            alerts = alert_manager.get_active_alerts()
        return jsonify({"alerts": [a.to_dict() for a in alerts], "count": len(alerts)})

    @app.route("/api/admin/alerts/<alert_id>/acknowledge", methods=["POST"])
    def acknowledge_alert(alert_id):
        data = _json_body() or {}
        actor = data.get("actor") or "operator"
        if not alert_manager.acknowledge_alert(alert_id, actor):
            return jsonify({"error": f"No active alert {alert_id} to acknowledge"}), 404
        return jsonify(alert_manager.get_alert(alert_id).to_dict())

    @app.route("/api/admin/alerts/<alert_id>/resolve", methods=["POST"])
    def resolve_alert(alert_id):
        if not alert_manager.resolve_alert(alert_id):
            return jsonify({"error": f"No active alert {alert_id} to resolve"}), 404
        return jsonify(alert_manager.get_alert(alert_id).to_dict())

    @app.route("/api/admin/alerts/test", methods=["POST"])
    def test_alert():
        data = _json_body() or {}
        try:
            severity = Severity(data.get("severity", "info"))
        except ValueError:
            return jsonify({"error": f"Unknown severity: {data.get('severity')}"}), 400
        alert = alert_manager.trigger_test_alert(severity, channels=data.get("channels"))
        return jsonify(alert.to_dict()), 201

    # ─── Feature flags ───────────────────────────────────

    @app.route("/api/flags/<key>/evaluate")
    def evaluate_flag(key):
        context = UserContext(
            user_id=request.args.get("user_id"),
            tier=request.args.get("tier"),
            segments=request.args.getlist("segment"),
            environment=request.args.get("environment"),
        )
        value = flags.evaluate_for(context, key)
        return jsonify({"key": key, "enabled": bool(value), "value": value})

    @app.route("/api/admin/flags", methods=["GET"])
    def list_flags():
        return jsonify({
            "flags": [f.to_dict() for f in flags.get_all_flags()],
            "stats": flags.get_evaluation_stats(),
        })

    @app.route("/api/admin/flags/<key>", methods=["PATCH"])
    def update_flag(key):
        data = _json_body()
        if data is None:
            return jsonify({"error": "Expected a JSON object"}), 400
        updates = {k: v for k, v in data.items() if k in FLAG_FIELDS}
        try:
            updated = flags.update_flag(key, **updates)
        except (ValueError, TypeError) as e:
            return jsonify({"error": f"Invalid update: {e}"}), 400
        if not updated:
            return jsonify({"error": f"Unknown flag: {key}"}), 404
        return jsonify(flags.get_flag(key).to_dict())

    @app.route("/api/admin/flags/<key>/override", methods=["PUT"])
    def override_flag(key):
        data = _json_body()
        if data is None or "value" not in data:
            return jsonify({"error": "Body must be {\"value\": ...}"}), 400
        flags.override(key, data["value"])
        return jsonify({"key": key, "override": data["value"]})

    @app.route("/api/admin/flags/<key>/override", methods=["DELETE"])
    def clear_flag_override(key):
        flags.clear_override(key)
        return jsonify({"key": key, "override": None})

    @app.route("/api/admin/flags/config", methods=["GET"])
    def export_flags():
        return jsonify(flags.export_configuration())

    @app.route("/api/admin/flags/config", methods=["POST"])
    def import_flags():
        data = _json_body()
        if data is None:
            return jsonify({"error": "Expected a JSON object"}), 400
        try:
            flags.import_configuration(data)
        except (KeyError, ValueError, TypeError) as e:
            return jsonify({"error": f"Invalid configuration: {e}"}), 400
        return jsonify({"imported": True, "stats": flags.get_evaluation_stats()})

    return app
