"""Shared fixtures for cmdwatch tests."""

import pytest

from cmdwatch.config import CommandSpec
from cmdwatch.differ import UnifiedDiffer
from cmdwatch.execution_state import RunSettings


class FakeExecutor:
    """Stands in for the shell: returns queued outputs or raises queued errors."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def __call__(self, run_text, timeout=None):
        self.calls.append(run_text)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def state_dir(tmp_path):
    return tmp_path / "state"


@pytest.fixture
def settings(state_dir):
    return RunSettings(state_dir=state_dir)


@pytest.fixture
def differ():
    return UnifiedDiffer()


@pytest.fixture
def spec():
    return CommandSpec(run="list-things", name="things", interval=10)


@pytest.fixture
def make_executor():
    return FakeExecutor
