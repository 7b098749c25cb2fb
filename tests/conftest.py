"""Shared fakes for the SoundSOS tests."""

import threading

import pytest

from soundsos.system.transport import Failed, Sent
from soundsos.utils.helpers import sine_window


class FakeTimer:
    def __init__(self, delay_s, callback):
        self.delay_s = delay_s
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True

    def fire(self):
        # Runs even when cancelled, like a threading.Timer that already started.
        return self.callback()


class FakeScheduler:
    def __init__(self):
        self.timers = []

    def schedule(self, delay_s, callback):
        timer = FakeTimer(delay_s, callback)
        self.timers.append(timer)
        return timer


class RecordingTransport:
    def __init__(self):
        self.calls = []
        self.failing = {}
        self.on_send = None
        self._lock = threading.Lock()

    def send(self, recipient, message):
        with self._lock:
            self.calls.append((recipient, message))
        if self.on_send is not None:
            self.on_send(recipient, message)
        if recipient in self.failing:
            return Failed(self.failing[recipient])
        return Sent()

    @property
    def recipients(self):
        return [recipient for recipient, _ in self.calls]


@pytest.fixture
def fake_scheduler():
    return FakeScheduler()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def contacts():
    return frozenset({"+15550001", "+15550002", "+15550003"})


@pytest.fixture
def sine_pcm():
    """Two seconds of a 1 kHz tone at 16 kHz."""
    return sine_window(freq_hz=1000.0, amplitude=0.5)
