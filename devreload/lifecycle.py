"""Lifecycle controller: the state machine deciding when the child runs.

Every trigger (file change, SIGUSR1, SIGINT/SIGTERM, watcher failure, the
child's own exit) funnels into one ``LifecycleController``, which guarantees
at most one child is alive and that a restart's ``stop()`` has fully finished
before its ``start()`` runs.
"""

from __future__ import annotations

import asyncio
import errno
import logging
import signal
from collections.abc import Awaitable, Callable
from pathlib import Path

from devreload.child import ChildProcess
from devreload.config import ReloadTarget
from devreload.models import ChildExit, SupervisorState

log = logging.getLogger(__name__)

Spawner = Callable[[ReloadTarget], Awaitable[ChildProcess]]

RELOAD_SIGNAL = signal.SIGUSR1
TERMINATION_SIGNALS = (signal.SIGINT, signal.SIGTERM)

EXIT_OK = 0
EXIT_WATCH_EXHAUSTED = 1

_EXHAUSTION_MARKERS = ("ENOSPC", "No space left on device", "file watch limit")

WATCH_LIMIT_HINT = """\
  Your system does not have enough file watchers to run the reloader.
  You need to increase this number:
    - Linux: "sudo sysctl -w fs.inotify.max_user_watches=524288"
    - OSX: "sudo sysctl -w kern.maxfiles=524288"

  Or you can just search "increase system file watcher <your os>\""""


def is_watch_exhaustion(exc: BaseException) -> bool:
    """True when ``exc`` says the OS ran out of file-watch handles."""
    if isinstance(exc, OSError) and exc.errno == errno.ENOSPC:
        return True
    message = str(exc)
    return any(marker in message for marker in _EXHAUSTION_MARKERS)


class LifecycleController:
    """Owns the supervisor state and the single child handle."""

    def __init__(
        self,
        target: ReloadTarget,
        spawn: Spawner = ChildProcess.spawn,
        handle_signals: bool = True,
    ) -> None:
        self.target = target
        self._spawn = spawn
        self._handle_signals = handle_signals
        self._state = SupervisorState.STOPPED
        self._child: ChildProcess | None = None
        # Serializes restart cycles so two stop/start pairs never interleave
        self._cycle_lock = asyncio.Lock()
        self._signals_installed = False
        self._watch_exhausted = False
        self._exit_code: int | None = None
        self._forwarded_signal: signal.Signals | None = None
        self._exit_requested = asyncio.Event()
        self._background: set[asyncio.Task[None]] = set()

    @property
    def state(self) -> SupervisorState:
        return self._state

    @property
    def child(self) -> ChildProcess | None:
        return self._child

    @property
    def exit_code(self) -> int | None:
        return self._exit_code

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Spawn the child. Only legal from STOPPED."""
        if self._state is not SupervisorState.STOPPED:
            log.warning("Refusing to start: process is %s", self._state.value)
            return

        self._install_signal_handlers()

        child = await self._spawn(self.target)
        child.on_exit(self.on_child_exit)
        self._child = child
        self._state = SupervisorState.RUNNING

        if self._exit_requested.is_set():
            # A termination signal arrived while the spawn was in flight
            sig = self._forwarded_signal or signal.SIGTERM
            log.info("Exit already requested; sending %s to the new process", sig.name)
            child.terminate(sig)

    async def launch(self) -> None:
        """Initial start, queued behind any restart cycle already in flight."""
        async with self._cycle_lock:
            await self.start()

    async def stop(self, kill_delay: int | None = None) -> None:
        """Gracefully stop the child, escalating to SIGKILL after ``kill_delay`` ms.

        A no-op unless the state is RUNNING, so concurrent callers are safe.
        Returns once the exit has actually been observed.
        """
        if self._state is not SupervisorState.RUNNING:
            return

        delay = self.target.kill_delay if kill_delay is None else kill_delay
        child = self._child
        if child is None:
            self._state = SupervisorState.STOPPED
            return

        self._state = SupervisorState.STOPPING
        log.info("Stopping process (pid=%s)", child.pid)

        exited = asyncio.Event()
        child.remove_all_observers()
        child.on_exit(lambda _exit: exited.set())
        child.terminate(signal.SIGTERM)

        try:
            await asyncio.wait_for(exited.wait(), timeout=delay / 1000)
        except asyncio.TimeoutError:
            log.warning("Process still here after %dms. Sending a SIGKILL signal", delay)
            child.terminate(signal.SIGKILL)
            # SIGKILL cannot be ignored; wait as long as the OS needs
            await exited.wait()

        self._child = None
        self._state = SupervisorState.STOPPED
        log.info("Process stopped")

    def on_child_exit(self, child_exit: ChildExit) -> None:
        """Default exit observer: the child ended without being asked to."""
        log.error(
            "Process exited with %s. Waiting for a file change to restart it.",
            child_exit.describe(),
        )
        self._child = None
        self._state = SupervisorState.STOPPED

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    async def on_file_change(self, path: str | Path) -> None:
        if self._state is SupervisorState.STOPPING:
            log.debug("Ignoring change on %s: restart already in progress", path)
            return

        log.info("Change detected on %s. Reloading...", self.target.relative(path))
        await self._restart()

    async def reload(self) -> None:
        log.info("Caught signal %s. Restarting...", RELOAD_SIGNAL.name)
        await self._restart()

    def on_termination_signal(self, sig: signal.Signals) -> None:
        """Forward ``sig`` to the child and exit without waiting for it."""
        log.info("Caught signal %s. Exiting", sig.name)
        self._forwarded_signal = sig
        if self._child is not None:
            self._child.terminate(sig)
        self.request_exit(EXIT_OK)

    async def on_watch_error(self, exc: BaseException) -> None:
        """Handle an error raised by the watch source.

        Running out of OS watch handles is reported once, the child is stopped
        and the supervisor exits with status 1. Anything else is re-raised.
        """
        if not is_watch_exhaustion(exc):
            raise exc

        if self._watch_exhausted:
            return
        self._watch_exhausted = True

        log.error("%s\n%s", exc, WATCH_LIMIT_HINT)

        async with self._cycle_lock:
            await self.stop()
        self.request_exit(EXIT_WATCH_EXHAUSTED)

    # ------------------------------------------------------------------
    # Supervisor exit
    # ------------------------------------------------------------------

    def request_exit(self, code: int) -> None:
        if self._exit_requested.is_set():
            return
        self._exit_code = code
        self._exit_requested.set()

    async def wait_for_exit(self) -> int:
        """Block until some trigger asks the supervisor to exit; return its status."""
        await self._exit_requested.wait()
        if self._exit_code is None:
            return EXIT_OK
        return self._exit_code

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _restart(self) -> None:
        async with self._cycle_lock:
            if self._exit_requested.is_set():
                return
            await self.stop()
            await self.start()

    def _install_signal_handlers(self) -> None:
        if not self._handle_signals or self._signals_installed:
            return
        self._signals_installed = True

        loop = asyncio.get_running_loop()
        loop.add_signal_handler(RELOAD_SIGNAL, self._spawn_reload)
        for sig in TERMINATION_SIGNALS:
            loop.add_signal_handler(sig, self.on_termination_signal, sig)

    def _spawn_reload(self) -> None:
        task = asyncio.create_task(self.reload(), name="reload")
        self._background.add(task)
        task.add_done_callback(self._background.discard)
