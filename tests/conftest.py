"""Shared fixtures: an in-memory child process and a spawner that records it."""

from __future__ import annotations

import asyncio
import itertools
import signal
from pathlib import Path

import pytest

from devreload.config import ReloadTarget
from devreload.models import ChildExit

_pids = itertools.count(1000)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class FakeChild:
    """Stands in for ChildProcess: exits when signalled unless told to ignore SIGTERM."""

    def __init__(self, ignores_term: bool = False) -> None:
        self.pid = next(_pids)
        self.ignores_term = ignores_term
        self.signals: list[signal.Signals] = []
        self.exit: ChildExit | None = None
        self._observers = []

    @property
    def alive(self) -> bool:
        return self.exit is None

    def on_exit(self, observer) -> None:
        self._observers.append(observer)

    def remove_all_observers(self) -> None:
        self._observers.clear()

    def terminate(self, sig: signal.Signals = signal.SIGTERM) -> None:
        self.signals.append(sig)
        if sig is signal.SIGTERM and self.ignores_term:
            return
        # Like a real process, the exit is reported on a later loop iteration
        asyncio.get_running_loop().call_soon(self.finish, ChildExit(signal=sig.name))

    def finish(self, exit: ChildExit) -> None:
        if self.exit is not None:
            return
        self.exit = exit
        for observer in list(self._observers):
            observer(exit)


class FakeSpawner:
    def __init__(self) -> None:
        self.children: list[FakeChild] = []
        self.ignores_term = False
        self.max_alive = 0
        # Seconds each spawn takes, like a slow interpreter start
        self.delay = 0.0

    async def __call__(self, target: ReloadTarget) -> FakeChild:
        await asyncio.sleep(self.delay)
        child = FakeChild(ignores_term=self.ignores_term)
        self.children.append(child)
        self.max_alive = max(self.max_alive, sum(c.alive for c in self.children))
        return child

    @property
    def latest(self) -> FakeChild:
        return self.children[-1]


@pytest.fixture
def spawner() -> FakeSpawner:
    return FakeSpawner()


@pytest.fixture
def target(tmp_path: Path) -> ReloadTarget:
    script = tmp_path / "app.py"
    script.write_text("print('hello')\n")
    return ReloadTarget(script="app.py", cwd=str(tmp_path), kill_delay=200)
