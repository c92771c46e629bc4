"""Alert system module."""
from alerts.engine import AlertManager
from alerts.conditions import ConditionEvaluator, compare_values
from alerts.thresholds import ThresholdLoader
from alerts.channels import (
    ConsoleChannel, LogChannel, FileChannel, SentryChannel, EmailChannel, SlackChannel, WebhookChannel,
    build_channels,
)
