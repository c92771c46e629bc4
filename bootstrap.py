"""Wiring of the governance services from configuration."""
import logging

from alerts.channels import build_channels
from alerts.engine import AlertManager
from alerts.thresholds import ThresholdLoader
from config import resolve_path
from feature_flags.loader import load_flags_file, load_from_environment
from feature_flags.manager import FeatureFlagManager
from monitor.health import HealthChecker, HTTPHealthSource, LocalHealthSource, disk_check, http_check
from monitor.metrics import MetricsCollector
from rate_limiting.limiter import RateLimiter
from utils.clock import SystemClock

logger = logging.getLogger("governor.bootstrap")


def build_services(config, clock=None, channels=None, environ=None):
    """Construct every service from ``config``. Nothing is started."""
    clock = clock or SystemClock()
    app_cfg = config["app"]

    metrics = MetricsCollector(clock=clock, buffer_size=config["metrics"]["buffer_size"])

    health_cfg = config["health"]
    health_checker = HealthChecker(
        clock=clock,
        cache_ttl_seconds=health_cfg["cache_ttl_seconds"],
        version=app_cfg.get("version", "unknown"),
        environment=app_cfg["environment"],
    )
    health_checker.register_check("disk", disk_check(health_cfg.get("disk_path", ".")))
    for name, url in (health_cfg.get("dependencies") or {}).items():
        health_checker.register_check(name, http_check(name, url, timeout=health_cfg["timeout_seconds"]))

    if health_cfg.get("url"):
        health_source = HTTPHealthSource(health_cfg["url"], timeout=health_cfg["timeout_seconds"])
    else:
        health_source = LocalHealthSource(health_checker)

    alerts_cfg = config["alerts"]
    alert_manager = AlertManager(
        metrics=metrics,
        health_source=health_source,
        channels=build_channels(config) if channels is None else channels,
        clock=clock,
        evaluation_interval_seconds=alerts_cfg["evaluation_interval_seconds"],
        evaluation_timeout_seconds=alerts_cfg.get("evaluation_timeout_seconds", 30),
        max_workers=alerts_cfg.get("max_workers", 4),
        history_limit=alerts_cfg.get("history_limit", 1000),
    )
    ThresholdLoader(resolve_path(alerts_cfg["thresholds_path"])).load_into(alert_manager)

    flags_cfg = config["feature_flags"]
    feature_flags = FeatureFlagManager(
        flags=load_flags_file(resolve_path(flags_cfg["flags_path"])),
        clock=clock,
        environment=app_cfg["environment"],
        cache_ttl_seconds=flags_cfg["cache_ttl_seconds"],
        metrics=metrics,
    )
    if flags_cfg.get("load_environment", True):
        load_from_environment(feature_flags, environ)

    rate_limiter = RateLimiter(clock=clock,
                               cleanup_interval_seconds=config["rate_limit"]["cleanup_interval_seconds"])

    return {
        "config": config,
        "clock": clock,
        "metrics": metrics,
        "health_checker": health_checker,
        "health_source": health_source,
        "alert_manager": alert_manager,
        "feature_flags": feature_flags,
        "rate_limiter": rate_limiter,
    }


def start_background(services):
    """Start the rate-limit cleanup sweep and the alert evaluation loop."""
    services["rate_limiter"].start()
    services["alert_manager"].start()
    logger.info("Background jobs started")


def shutdown(services):
    grace = services["config"]["alerts"].get("shutdown_grace_seconds", 5)
    services["rate_limiter"].destroy()
    services["alert_manager"].destroy(grace_seconds=grace)
    logger.info("Services shut down")
