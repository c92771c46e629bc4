"""Alert notification channels.

Every channel implements ``send(alert)`` and raises on delivery failure;
the alert manager logs the failure and carries on with the other channels.
"""
import json
import logging
from typing import Protocol, runtime_checkable

import requests
import sentry_sdk

from models.enums import SEVERITY_ORDER, Severity
from notifications.email_sender import EmailSender

logger = logging.getLogger("governor.alerts.channels")


@runtime_checkable
class AlertChannel(Protocol):
    def send(self, alert) -> None: ...


def meets_severity(alert, min_severity) -> bool:
    if min_severity is None:
        return True
    return SEVERITY_ORDER[Severity(alert.severity)] >= SEVERITY_ORDER[Severity(min_severity)]


class ConsoleChannel:
    """Print alerts to terminal with rich formatting."""

    SEVERITY_STYLES = {
        "critical": "bold white on red",
        "error": "bold red",
        "warning": "bold yellow",
        "info": "bold blue",
    }

    def __init__(self, console=None):
        from rich.console import Console
        self.console = console or Console(stderr=True)

    def send(self, alert):
        sev = Severity(alert.severity).value
        style = self.SEVERITY_STYLES.get(sev, "")
        self.console.print(f"[{style}][ALERT {sev.upper()}][/] {alert.title}: {alert.message}",
                           highlight=False)


class LogChannel:
    """Write alerts to the application log at a level matching their severity."""

    LEVELS = {
        "info": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
        "critical": logging.CRITICAL,
    }

    def __init__(self, logger_name="governor.alerts.sink"):
        self.log = logging.getLogger(logger_name)

    def send(self, alert):
        sev = Severity(alert.severity).value
        self.log.log(self.LEVELS[sev], f"[ALERT] {alert.title}: {alert.message} (id={alert.id})")


class FileChannel:
    """Append alerts to a JSON lines log file."""

    def __init__(self, log_path="data/alerts.jsonl"):
        self.log_path = log_path

    def send(self, alert):
        with open(self.log_path, "a") as f:
            f.write(json.dumps(alert.to_dict()) + "\n")


class SentryChannel:
    """Report alerts to Sentry as messages."""

    LEVELS = {"info": "info", "warning": "warning", "error": "error", "critical": "fatal"}

    def __init__(self, min_severity=None):
        self.min_severity = min_severity

    def send(self, alert):
        if not meets_severity(alert, self.min_severity):
            return
        sev = Severity(alert.severity).value
        sentry_sdk.capture_message(
            f"{alert.title}: {alert.message}",
            level=self.LEVELS[sev],
            tags={"alert_id": alert.id, "threshold_id": alert.threshold_id},
        )


class EmailChannel:
    """Email alert channel; by default only critical alerts are mailed."""

    def __init__(self, email_config: dict, min_severity="critical", timeout=30):
        self.sender = EmailSender(email_config, timeout=timeout)
        self.min_severity = min_severity

    def send(self, alert):
        if not meets_severity(alert, self.min_severity):
            return
        if not self.sender.is_configured():
            logger.debug("EmailChannel: SMTP not configured, skipping")
            return
        self.sender.send_alert(
            title=alert.title,
            severity=Severity(alert.severity).value,
            message=alert.message,
            alert_id=alert.id,
        )


class SlackChannel:
    """Post alerts to a Slack incoming webhook."""

    EMOJI = {
        "critical": ":rotating_light:",
        "error": ":red_circle:",
        "warning": ":warning:",
        "info": ":information_source:",
    }

    def __init__(self, webhook_url, min_severity="warning", timeout=10):
        self.webhook_url = webhook_url
        self.min_severity = min_severity
        self.timeout = timeout

    def send(self, alert):
        if not meets_severity(alert, self.min_severity):
            return
        sev = Severity(alert.severity).value
        text = f"{self.EMOJI.get(sev, '')} *[{sev.upper()}] {alert.title}*\n{alert.message}\n_id: {alert.id}_"
        resp = requests.post(self.webhook_url, json={"text": text}, timeout=self.timeout)
        resp.raise_for_status()


class WebhookChannel:
    """POST the alert as JSON to an arbitrary endpoint."""

    def __init__(self, url, headers=None, min_severity=None, timeout=10):
        self.url = url
        self.headers = dict(headers or {})
        self.min_severity = min_severity
        self.timeout = timeout

    def send(self, alert):
        if not meets_severity(alert, self.min_severity):
            return
        resp = requests.post(self.url, json={"alert": alert.to_dict()},
                             headers=self.headers, timeout=self.timeout)
        resp.raise_for_status()


def build_channels(config: dict) -> dict:
    """Build the channel registry from the ``alerts.channels`` config section."""
    alerts_cfg = config.get("alerts", {})
    cfg = alerts_cfg.get("channels", {})
    timeout = alerts_cfg.get("dispatch_timeout_seconds", 10)
    channels = {}

    if cfg.get("console", {}).get("enabled", True):
        channels["console"] = ConsoleChannel()
    if cfg.get("log", {}).get("enabled", True):
        channels["log"] = LogChannel()

    file_cfg = cfg.get("file", {})
    if file_cfg.get("enabled"):
        channels["file"] = FileChannel(file_cfg.get("path", "data/alerts.jsonl"))

    sentry_cfg = cfg.get("sentry", {})
    if sentry_cfg.get("enabled"):
        if sentry_cfg.get("dsn"):
            sentry_sdk.init(dsn=sentry_cfg["dsn"],
                            environment=config.get("app", {}).get("environment", "development"))
        channels["sentry"] = SentryChannel(min_severity=sentry_cfg.get("min_severity"))

    email_cfg = cfg.get("email", {})
    if email_cfg.get("enabled"):
        channels["email"] = EmailChannel(email_cfg, min_severity=email_cfg.get("min_severity", "critical"),
                                         timeout=timeout)

    slack_cfg = cfg.get("slack", {})
    if slack_cfg.get("enabled") and slack_cfg.get("webhook_url"):
        channels["slack"] = SlackChannel(slack_cfg["webhook_url"],
                                         min_severity=slack_cfg.get("min_severity", "warning"),
                                         timeout=timeout)

    hook_cfg = cfg.get("webhook", {})
    if hook_cfg.get("enabled") and hook_cfg.get("url"):
        channels["webhook"] = WebhookChannel(hook_cfg["url"], headers=hook_cfg.get("headers"),
                                             min_severity=hook_cfg.get("min_severity"),
                                             timeout=timeout)

    logger.info(f"Alert channels configured: {', '.join(channels) or 'none'}")
    return channels
