"""Pytest configuration for all tests."""

from typing import List

import pytest
from prometheus_client import CollectorRegistry

from infrakit.common.metrics import ClientMetrics


class SleepRecorder:
    """Async stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def metrics():
    """Metrics bound to a private registry so tests don't share counters."""
    return ClientMetrics(CollectorRegistry())


@pytest.fixture
def no_sleep():
    return SleepRecorder()


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every INFRAKIT_ variable from the environment."""
    import os

    for name in list(os.environ):
        if name.startswith("INFRAKIT_"):
            monkeypatch.delenv(name, raising=False)
    return monkeypatch
