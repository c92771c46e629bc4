"""Health checks for the service and its dependencies.

``HealthChecker`` runs registered checks in parallel and caches each result
for a short time. ``HTTPHealthSource`` and ``LocalHealthSource`` expose a
health document to the alert manager's ``health_check`` conditions.
"""
import time
import shutil
import logging
from concurrent.futures import ThreadPoolExecutor

import requests

from models.enums import HealthStatus
from models.metrics import HealthCheckResult, SystemHealth
from utils.cache import TTLCache
from utils.clock import SystemClock
from utils.http_client import HTTPClient

logger = logging.getLogger("governor.monitor.health")


class HealthChecker:
    def __init__(self, clock=None, cache_ttl_seconds=30, version="unknown", environment="unknown"):
        self.clock = clock or SystemClock()
        self.cache_ttl = cache_ttl_seconds
        self.version = version
        self.environment = environment
        self._checks = {}
        self._cache = TTLCache(clock=self.clock)
        self._started_at = self.clock.now()

    def register_check(self, name, check_fn):
        """Register ``check_fn() -> HealthCheckResult`` under ``name``."""
        self._checks[name] = check_fn
        self._cache.invalidate(name)

    @property
    def check_names(self):
        return list(self._checks)

    def _execute(self, name):
        cached = self._cache.get(name)
        if cached is not None:
            return cached

        start = time.monotonic()
        try:
            result = self._checks[name]()
        except Exception as e:
            elapsed = (time.monotonic() - start) * 1000
            logger.error(f"Health check failed: {name}: {e}")
            return HealthCheckResult(name=name, status=HealthStatus.UNHEALTHY,
                                     response_time=elapsed, error=str(e))

        self._cache.set(name, result, ttl=self.cache_ttl)
        logger.debug(f"Health check completed: {name} → {HealthStatus(result.status).value}")
        return result

    def run_check(self, name):
        """Run a single named check; None if no such check is registered."""
        if name not in self._checks:
            return None
        return self._execute(name)

    def run_all_checks(self) -> SystemHealth:
        names = list(self._checks)
        if names:
            with ThreadPoolExecutor(max_workers=min(8, len(names))) as pool:
                checks = list(pool.map(self._execute, names))
        else:
            checks = []

        statuses = {HealthStatus(c.status) for c in checks}
        if HealthStatus.UNHEALTHY in statuses:
            overall = HealthStatus.UNHEALTHY
        elif HealthStatus.DEGRADED in statuses:
            overall = HealthStatus.DEGRADED
        else:
            overall = HealthStatus.HEALTHY

        health = SystemHealth(
            status=overall,
            timestamp=self.clock.utcnow().isoformat(),
            uptime=self.clock.now() - self._started_at,
            version=self.version,
            environment=self.environment,
            checks=checks,
        )
        logger.info(f"System health check completed: {overall.value} {health.summary}")
        return health

    def clear_cache(self):
        self._cache.clear()


def disk_check(path=".", degraded_pct=80, unhealthy_pct=90):
    """Build a check reporting disk usage of the filesystem holding ``path``."""
    def check():
        start = time.monotonic()
        usage = shutil.disk_usage(path)
        pct = usage.used / usage.total * 100 if usage.total else 0.0
        status = HealthStatus.HEALTHY
        if pct > unhealthy_pct:
            status = HealthStatus.UNHEALTHY
        elif pct > degraded_pct:
            status = HealthStatus.DEGRADED
        return HealthCheckResult(
            name="disk",
            status=status,
            response_time=(time.monotonic() - start) * 1000,
            metadata={"percentage": round(pct, 1), "free_gb": round(usage.free / 1e9, 2)},
        )
    return check


def http_check(name, url, timeout=5):
    """Build a check that GETs ``url``: 2xx healthy, 5xx unhealthy, anything else degraded."""
    def check():
        start = time.monotonic()
        try:
            resp = requests.get(url, timeout=timeout)
        except requests.RequestException as e:
            return HealthCheckResult(name=name, status=HealthStatus.UNHEALTHY,
                                     response_time=(time.monotonic() - start) * 1000,
                                     error=str(e))
        elapsed = (time.monotonic() - start) * 1000
        if resp.ok:
            return HealthCheckResult(name=name, status=HealthStatus.HEALTHY, response_time=elapsed,
                                     metadata={"statusCode": resp.status_code})
        status = HealthStatus.UNHEALTHY if resp.status_code >= 500 else HealthStatus.DEGRADED
        return HealthCheckResult(name=name, status=status, response_time=elapsed,
                                 error=f"HTTP {resp.status_code}",
                                 metadata={"statusCode": resp.status_code})
    return check


class HTTPHealthSource:
    """Reads a health document from a remote ``/api/health`` style endpoint."""

    def __init__(self, url, timeout=5):
        # 503 still carries the health document
        self.client = HTTPClient(url, timeout=timeout, max_retries=0,
                                 accept_status=(200, 503), source="health")

    def get_health(self) -> dict:
        data = self.client.get()
        if not isinstance(data, dict):
            raise ValueError("Health endpoint returned a non-JSON body")
        return data


class LocalHealthSource:
    """Reads the in-process HealthChecker."""

    def __init__(self, checker):
        self.checker = checker

    def get_health(self) -> dict:
        return self.checker.run_all_checks().to_dict()
