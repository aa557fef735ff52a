"""Child process handle: spawns the supervised script and reports its exit."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from collections.abc import Callable

from devreload.config import ReloadTarget
from devreload.models import ChildExit

log = logging.getLogger(__name__)

# Exit code reported when the interpreter could not be executed at all
SPAWN_FAILURE_CODE = 127

ExitObserver = Callable[[ChildExit], None]


class ChildProcess:
    """A running child plus the observers interested in its exit.

    The exit is dispatched exactly once, from a background waiter task, to
    whichever observers are attached at that moment.
    """

    def __init__(self, process: asyncio.subprocess.Process | None) -> None:
        self._process = process
        self._observers: list[ExitObserver] = []
        self.exit: ChildExit | None = None
        self._waiter = asyncio.create_task(self._wait_for_exit(), name=f"child-{self.pid}-waiter")

    @classmethod
    async def spawn(cls, target: ReloadTarget) -> ChildProcess:
        """Start ``target`` in its own process group.

        An exec failure does not raise: it is reported to the exit observers
        as code ``SPAWN_FAILURE_CODE``.
        """
        command = target.command()
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=target.cwd,
                # New session so the whole tree can be signalled at once
                preexec_fn=os.setsid,
            )
        except OSError as exc:
            log.error("Failed to start %s: %s", " ".join(command), exc)
            return cls(None)

        log.info("Started %s (pid=%s)", target.relative(target.script_path), process.pid)
        return cls(process)

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    def on_exit(self, observer: ExitObserver) -> None:
        self._observers.append(observer)

    def remove_all_observers(self) -> None:
        self._observers.clear()

    def terminate(self, sig: signal.Signals = signal.SIGTERM) -> None:
        """Send ``sig`` to the child's process group."""
        if self._process is None or self._process.returncode is not None:
            return
        try:
            os.killpg(os.getpgid(self._process.pid), sig)
        except (ProcessLookupError, OSError):
            # Already gone; the waiter will still report the exit
            log.debug("Could not deliver %s to pid %s", sig.name, self._process.pid)

    async def wait(self) -> ChildExit:
        return await asyncio.shield(self._waiter)

    async def _wait_for_exit(self) -> ChildExit:
        if self._process is None:
            child_exit = ChildExit(code=SPAWN_FAILURE_CODE)
        else:
            child_exit = ChildExit.from_returncode(await self._process.wait())
        self.exit = child_exit

        for observer in list(self._observers):
            observer(child_exit)
        return child_exit
