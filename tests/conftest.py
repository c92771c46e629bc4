"""Shared test fixtures."""
import os
import sys
import pytest
from datetime import datetime, timezone

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from monitor.metrics import MetricsCollector

# 2025-06-01T12:00:00Z
START_TIME = 1748779200.0


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start=START_TIME):
        self.t = start

    def now(self):
        return self.t

    def utcnow(self):
        return datetime.fromtimestamp(self.t, tz=timezone.utc)

    def advance(self, seconds):
        self.t += seconds


class RecordingChannel:
    """Channel that remembers every alert it was given."""

    def __init__(self):
        self.sent = []

    def send(self, alert):
        self.sent.append(alert)


class FailingChannel:
    def __init__(self):
        self.calls = 0

    def send(self, alert):
        self.calls += 1
        raise ConnectionError("channel down")


class StaticHealthSource:
    """Health source returning a fixed document, or raising if given an exception."""

    def __init__(self, document=None, error=None):
        self.document = document
        self.error = error
        self.calls = 0

    def get_health(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.document


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def metrics(clock):
    return MetricsCollector(clock=clock, buffer_size=500)


@pytest.fixture
def recording_channel():
    return RecordingChannel()
