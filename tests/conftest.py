"""Pytest configuration and shared fixtures."""
import pytest
import sys
import os

# Ensure the project root is on sys.path so 'maildispatch' is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from maildispatch.models import Message
from maildispatch.providers.base import BaseProvider, DeliveryError


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedProvider(BaseProvider):
    """Provider whose attempts follow a script.

    ``results`` is consumed one entry per attempt (True = delivered,
    False = DeliveryError); once exhausted, ``default`` applies.
    """

    def __init__(self, name, results=None, default=True, journal=None):
        super().__init__(name)
        self._results = list(results or [])
        self._default = default
        self._journal = journal
        self.sent: list[str] = []

    async def _deliver(self, message):
        self.sent.append(message.id)
        if self._journal is not None:
            self._journal.append((self.name, message.id))
        ok = self._results.pop(0) if self._results else self._default
        if not ok:
            raise DeliveryError(self.name, "scripted failure")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeps():
    """Awaitable sleep replacement that records requested delays."""
    calls: list[float] = []

    async def fake_sleep(delay: float) -> None:
        calls.append(delay)

    fake_sleep.calls = calls
    return fake_sleep


@pytest.fixture
def scripted():
    """Factory for :class:`ScriptedProvider`."""
    return ScriptedProvider


@pytest.fixture
def make_message():
    def _make(message_id: str = "e1") -> Message:
        return Message(
            id=message_id,
            to="user@example.com",
            subject="Hi",
            body="Hello",
        )

    return _make
