"""Metrics, health and background job runners."""
from monitor.metrics import MetricsCollector
from monitor.health import HealthChecker, HTTPHealthSource, LocalHealthSource, disk_check, http_check
from monitor.scheduler import PeriodicJob
