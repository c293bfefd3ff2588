"""Shared test fixtures."""

from __future__ import annotations

import sys

import pytest

from knctl_e2e.runner.knctl import Knctl

pytest_plugins = ["knctl_e2e.plugin"]


class RecordingReporter:
    """Failure reporter that records messages and halts like pytest.fail."""

    class Halted(Exception):
        pass

    def __init__(self) -> None:
        self.messages: list[str] = []

    def __call__(self, message: str) -> None:
        self.messages.append(message)
        raise self.Halted(message)


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def py_knctl(reporter: RecordingReporter) -> Knctl:
    """Knctl that runs the current Python interpreter instead of knctl."""
    return Knctl("e2e-ns", binary=sys.executable, fail=reporter)
