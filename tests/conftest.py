"""Shared fakes for the synchronizer's collaborators."""

from __future__ import annotations

import pytest

from difficulty_exporter.chain import Header
from difficulty_exporter.errors import PushError, RPCError, StorageError


class FakeReader:
    """Serves scripted tips and per-height difficulties."""

    def __init__(self, tips=(), difficulties=None, failing_heights=()):
        self.tips = list(tips)
        self.difficulties = dict(difficulties or {})
        self.failing_heights = set(failing_heights)
        self.header_calls: list[int] = []
        self.tip_calls = 0

    def current_height(self) -> int:
        self.tip_calls += 1
        tip = self.tips.pop(0) if len(self.tips) > 1 else self.tips[0]
        if isinstance(tip, Exception):
            raise tip
        return tip

    def header_at(self, height: int) -> Header:
        self.header_calls.append(height)
        if height in self.failing_heights:
            raise RPCError(f"boom at {height}")
        return Header(number=height, difficulty=self.difficulties.get(height, height))


class FakeLedger:
    def __init__(self, failing_heights=()):
        self.failing_heights = set(failing_heights)
        self.rows: dict[int, int] = {}
        self.calls: list[tuple[int, int]] = []

    def record_observation(self, height, difficulty, timestamp) -> bool:
        self.calls.append((height, difficulty))
        if height in self.failing_heights:
            raise StorageError(f"failed to insert data for block {height}")
        if height in self.rows:
            return False
        self.rows[height] = difficulty
        return True


class FakeExporter:
    def __init__(self, fail_push=False):
        self.fail_push = fail_push
        self.values: list[int] = []
        self.pushes = 0

    def set_gauge(self, value):
        self.values.append(value)

    def push(self):
        self.pushes += 1
        if self.fail_push:
            raise PushError("gateway down")


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def exporter():
    return FakeExporter()
