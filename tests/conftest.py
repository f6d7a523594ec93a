import os
import sys

import pytest

ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

from core import utils  # noqa: E402


@pytest.fixture(autouse=True)
def quiet_logs(monkeypatch):
    """Keep test output readable"""
    monkeypatch.setattr(utils, "_current_log_level", utils.LOG_LEVEL_ERROR)


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
