"""Alert threshold evaluation, alert lifecycle and channel dispatch."""
import random
import string
import logging
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import replace

from alerts.conditions import ConditionEvaluator
from models.alerts import Alert, AlertThreshold, condition_from_dict
from models.enums import AlertStatus, Severity
from monitor.scheduler import PeriodicJob
from utils.clock import SystemClock, now_ms

logger = logging.getLogger("governor.alerts.engine")

_ID_ALPHABET = string.ascii_lowercase + string.digits

LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
    Severity.CRITICAL: logging.CRITICAL,
}


class AlertManager:
    """Evaluates registered thresholds on a timer and tracks the alerts they raise.

    Thresholds are evaluated independently on a worker pool; a threshold
    fires only when every one of its conditions holds in the same pass and
    it is not cooling down. Each channel delivery runs as its own task, so
    a failing channel never holds up the others or the evaluation loop.
    """

    def __init__(self, metrics=None, health_source=None, channels=None, clock=None,
                 evaluation_interval_seconds=60, evaluation_timeout_seconds=30,
                 max_workers=4, history_limit=1000):
        self.clock = clock or SystemClock()
        self.metrics = metrics
        self.channels = dict(channels or {})
        self.evaluator = ConditionEvaluator(metrics, health_source, self.clock)
        self.evaluation_timeout = evaluation_timeout_seconds

        self._thresholds = {}
        self._active = {}
        self._history = deque(maxlen=history_limit)
        self._cooldowns = {}  # threshold id -> unix time the cooldown ends
        self._lock = threading.RLock()

        self._eval_pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="alert-eval")
        self._dispatch_pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="alert-dispatch")
        self._pending = set()
        self._closed = False
        self._job = PeriodicJob("alert-evaluation", evaluation_interval_seconds, self.evaluate_all)

    # ── thresholds ───────────────────────────────────

    def add_threshold(self, threshold: AlertThreshold):
        with self._lock:
            self._thresholds[threshold.id] = threshold
        logger.debug(f"Added alert threshold: {threshold.name} ({threshold.id})")

    def update_threshold(self, threshold_id, **updates) -> bool:
        if "conditions" in updates:
            updates["conditions"] = [
                condition_from_dict(c) if isinstance(c, dict) else c for c in updates["conditions"]
            ]
        if "severity" in updates:
            updates["severity"] = Severity(updates["severity"])
        with self._lock:
            existing = self._thresholds.get(threshold_id)
            if existing is None:
                return False
            self._thresholds[threshold_id] = replace(existing, **updates)
        logger.debug(f"Updated alert threshold: {threshold_id}")
        return True

    def remove_threshold(self, threshold_id) -> bool:
        with self._lock:
            removed = self._thresholds.pop(threshold_id, None)
            self._cooldowns.pop(threshold_id, None)
        if removed:
            logger.debug(f"Removed alert threshold: {threshold_id}")
        return removed is not None

    def get_threshold(self, threshold_id):
        with self._lock:
            return self._thresholds.get(threshold_id)

    def get_all_thresholds(self):
        with self._lock:
            return list(self._thresholds.values())

    def register_channel(self, name, channel):
        self.channels[name] = channel

    def register_custom_evaluator(self, name, fn):
        """``fn(condition)`` returns the actual value compared against the condition."""
        self.evaluator.custom_evaluators[name] = fn

    # ── evaluation ───────────────────────────────────

    def is_in_cooldown(self, threshold_id) -> bool:
        with self._lock:
            until = self._cooldowns.get(threshold_id)
        return until is not None and self.clock.now() < until

    def evaluate_all(self):
        """Evaluate every enabled threshold once. Returns the alerts raised."""
        if self._closed:
            return []
        thresholds = [t for t in self.get_all_thresholds() if t.enabled]
        if not thresholds:
            return []

        futures = [self._eval_pool.submit(self._safe_evaluate, t) for t in thresholds]
        done, not_done = wait(futures, timeout=self.evaluation_timeout)
        if not_done:
            logger.warning(f"{len(not_done)} threshold evaluation(s) still running after "
                           f"{self.evaluation_timeout}s; results dropped for this pass")
        return [f.result() for f in done if f.result() is not None]

    def _safe_evaluate(self, threshold):
        try:
            return self.evaluate_threshold(threshold)
        except Exception as e:
            logger.error(f"Failed to evaluate threshold {threshold.id}: {e}")
            return None

    def evaluate_threshold(self, threshold: AlertThreshold):
        if self.is_in_cooldown(threshold.id):
            return None
        for condition in threshold.conditions:
            if not self.evaluator.evaluate(condition):
                return None
        return self._trigger(threshold)

    def test_thresholds(self):
        """Dry-run every threshold, ignoring cooldowns. Nothing is triggered."""
        results = []
        for threshold in self.get_all_thresholds():
            condition_results = []
            error = None
            for condition in threshold.conditions:
                try:
                    condition_results.append(self.evaluator.evaluate(condition))
                except Exception as e:
                    error = str(e)
                    condition_results.append(False)
            results.append({
                "threshold_id": threshold.id,
                "name": threshold.name,
                "severity": Severity(threshold.severity).value,
                "enabled": threshold.enabled,
                "conditions": condition_results,
                "would_fire": all(condition_results) and error is None,
                "in_cooldown": self.is_in_cooldown(threshold.id),
                "error": error,
            })
        return results

    # ── triggering & dispatch ────────────────────────

    def _generate_alert_id(self):
        suffix = "".join(random.choices(_ID_ALPHABET, k=9))
        return f"alert_{now_ms(self.clock)}_{suffix}"

    def _trigger(self, threshold, respect_cooldown=True):
        now = self.clock.now()
        with self._lock:
            until = self._cooldowns.get(threshold.id)
            if respect_cooldown and until is not None and now < until:
                return None

            alert = Alert(
                id=self._generate_alert_id(),
                threshold_id=threshold.id,
                severity=Severity(threshold.severity),
                title=threshold.name,
                message=threshold.description,
                timestamp=self.clock.utcnow(),
                metadata=dict(threshold.metadata),
            )
            self._active[alert.id] = alert
            self._history.append(alert)
            if threshold.cooldown_minutes:
                self._cooldowns[threshold.id] = now + threshold.cooldown_minutes * 60

        logger.log(LOG_LEVELS[alert.severity], f"Alert triggered: {threshold.name} "
                   f"(alert={alert.id}, threshold={threshold.id}, severity={alert.severity.value})")

        if self.metrics is not None:
            self.metrics.track_business_event("alert_triggered", 1, {
                "threshold_id": threshold.id,
                "severity": alert.severity.value,
                "channels": list(threshold.channels),
            })

        self._dispatch(alert, threshold.channels)
        return alert

    def _dispatch(self, alert, channel_names):
        for name in channel_names:
            channel = self.channels.get(name)
            if channel is None:
                logger.warning(f"Alert {alert.id}: channel '{name}' is not configured")
                continue
            try:
                future = self._dispatch_pool.submit(self._send, name, channel, alert)
            except RuntimeError:
                logger.warning(f"Alert {alert.id}: dispatcher shut down, dropping {name}")
                continue
            with self._lock:
                self._pending.add(future)
            future.add_done_callback(self._forget)

    def _forget(self, future):
        with self._lock:
            self._pending.discard(future)

    def _send(self, name, channel, alert):
        try:
            channel.send(alert)
            logger.debug(f"Alert {alert.id} delivered to {name}")
            return True
        except Exception as e:
            logger.warning(f"Failed to send alert {alert.id} to channel {name}: {e}")
            return False

    def flush(self, timeout=None) -> bool:
        """Wait for in-flight deliveries. True if all finished within ``timeout``."""
        with self._lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def trigger_test_alert(self, severity="info", channels=None):
        """Raise a synthetic alert to check the dispatch path end to end."""
        threshold = AlertThreshold(
            id="test_alert",
            name="Test Alert",
            description="This is a test alert to verify the alerting system",
            severity=Severity(severity),
            channels=list(channels or ["console"]),
        )
        return self._trigger(threshold, respect_cooldown=False)

    # ── alert lifecycle ──────────────────────────────

    def acknowledge_alert(self, alert_id, acknowledged_by) -> bool:
        with self._lock:
            alert = self._active.get(alert_id)
            if alert is None or not alert.acknowledge(acknowledged_by, self.clock.utcnow()):
                return False
        logger.info(f"Alert acknowledged: {alert_id} by {acknowledged_by}")
        return True

    def resolve_alert(self, alert_id) -> bool:
        with self._lock:
            alert = self._active.get(alert_id)
            if alert is None or not alert.resolve(self.clock.utcnow()):
                return False
            del self._active[alert_id]
        logger.info(f"Alert resolved: {alert_id}")
        return True

    def get_active_alerts(self):
        with self._lock:
            return list(self._active.values())

    def get_alert_history(self, limit=None):
        with self._lock:
            history = list(self._history)
        return history[-limit:] if limit else history

    def get_alert(self, alert_id):
        with self._lock:
            if alert_id in self._active:
                return self._active[alert_id]
            return next((a for a in self._history if a.id == alert_id), None)

    def format_alert_summary(self, alerts):
        """Format alerts for display."""
        if not alerts:
            return "All clear - no alerts triggered."
        icons = {"critical": "!!!", "error": "!!", "warning": "!", "info": "i"}
        lines = []
        for a in alerts:
            sev = Severity(a.severity).value
            lines.append(f"[{icons.get(sev, '?')}] [{sev.upper()}] {a.title}: {a.message} ({AlertStatus(a.status).value})")
        return "\n".join(lines)

    # ── lifecycle ────────────────────────────────────

    def start(self):
        self._job.start()

    def destroy(self, grace_seconds=5):
        """Stop the evaluation loop and give in-flight deliveries ``grace_seconds`` to finish."""
        self._job.stop()
        self._closed = True
        if not self.flush(timeout=grace_seconds):
            logger.warning("Abandoning alert deliveries still running after shutdown grace period")
        self._dispatch_pool.shutdown(wait=False, cancel_futures=True)
        self._eval_pool.shutdown(wait=False, cancel_futures=True)
