import sys
import os

# Add project root to sys.path so tests can import from all modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from hypothesis import settings

# CI profile: more examples for thorough testing
settings.register_profile("ci", max_examples=200)
# Dev profile: fewer examples for faster iteration
settings.register_profile("dev", max_examples=100)
# Default to dev profile
settings.load_profile("dev")


class FakeEngine:
    """Speech engine double; when auto_finish is False call finish() to end playback."""

    def __init__(self, auto_finish=False):
        self.auto_finish = auto_finish
        self.spoken = []
        self.stopped = 0
        self._on_done = None

    def say(self, text, on_done):
        self.spoken.append(text)
        self._on_done = on_done
        if self.auto_finish:
            on_done()

    def finish(self):
        self._on_done()

    def stop(self):
        self.stopped += 1


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def engine():
    return FakeEngine(auto_finish=True)


@pytest.fixture
def manual_engine():
    return FakeEngine(auto_finish=False)


@pytest.fixture
def fake_clock():
    return FakeClock()
