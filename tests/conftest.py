"""Shared fixtures.

OS resource reads are replaced by a scripted sampler where tests need exact
numbers. Real capture() is exercised in test_metrics.py.
"""

import pytest
from loguru import logger

from phasebench import ResourceSample


class ScriptedSampler:
    """Returns pre-scripted readings in order, repeating the last one forever.

    Each reading is (timestamp, user_time, system_time, max_resident_memory).
    """

    def __init__(self, readings: list[tuple[float, float, float, int]]) -> None:
        assert readings, "ScriptedSampler needs at least one reading"
        self._readings = list(readings)
        self._index = 0
        self.names: list[str] = []

    def __call__(self, name: str) -> ResourceSample:
        reading = self._readings[min(self._index, len(self._readings) - 1)]
        self._index += 1
        self.names.append(name)
        return ResourceSample(name, *reading)


@pytest.fixture
def scripted():
    return ScriptedSampler


@pytest.fixture
def log_messages():
    """Collect loguru messages at DEBUG and above for the duration of a test."""
    messages: list[str] = []
    handler_id = logger.add(lambda message: messages.append(str(message)), level="DEBUG")
    yield messages
    logger.remove(handler_id)
