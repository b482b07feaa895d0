"""Shared test fixtures for procsem tests."""

import logging
import subprocess
import sys
import time
from collections.abc import Generator
from pathlib import Path

import pytest
from typer.testing import CliRunner


class FakeProcessChecker:
    """Process checker that treats a fixed set of PIDs as dead."""

    available = True

    def __init__(self, dead: set[int] | None = None) -> None:
        self.dead = dead or set()
        self.checked: list[int] = []

    def is_alive(self, pid: int) -> bool:
        self.checked.append(pid)
        return pid not in self.dead


class RecordingSleep:
    """Sleep replacement that records durations and runs a hook per call."""

    def __init__(self, hook=None, real: bool = False) -> None:
        self.durations: list[float] = []
        self._hook = hook
        self._real = real

    def __call__(self, seconds: float) -> None:
        self.durations.append(seconds)
        if self._hook is not None:
            self._hook(len(self.durations))
        if self._real:
            time.sleep(seconds)


@pytest.fixture
def runner() -> CliRunner:
    """Create CLI test runner."""
    return CliRunner()


@pytest.fixture
def lock_path(tmp_path: Path) -> Path:
    """Path of a shared lock file that does not exist yet."""
    return tmp_path / "shared.lock"


@pytest.fixture
def dead_pid() -> int:
    """PID of a process that has already exited and been reaped."""
    proc = subprocess.Popen([sys.executable, "-c", "pass"])
    proc.wait()
    return proc.pid


@pytest.fixture
def process_checker() -> FakeProcessChecker:
    """Process checker whose ``dead`` set tests can fill in."""
    return FakeProcessChecker()


@pytest.fixture
def make_sleep() -> type[RecordingSleep]:
    """Factory for recording sleep functions: make_sleep(hook=None, real=False)."""
    return RecordingSleep


@pytest.fixture(autouse=True)
def restore_root_logging() -> Generator[None, None, None]:
    """Undo logging configuration done by CLI invocations."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture(autouse=True)
def utc_timezone(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Run every test with the local timezone pinned to UTC."""
    if not hasattr(time, "tzset"):
        yield
        return
    monkeypatch.setenv("TZ", "UTC")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()


@pytest.fixture
def local_timezone(monkeypatch: pytest.MonkeyPatch, utc_timezone: None) -> None:
    """Switch the local timezone to a fixed UTC+2 (POSIX TZ string, no tzdata needed)."""
    if not hasattr(time, "tzset"):
        pytest.skip("needs time.tzset")
    monkeypatch.setenv("TZ", "EET-2")
    time.tzset()
