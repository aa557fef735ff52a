"""Wire the watch source, the signal handlers and the controller together."""

from __future__ import annotations

import asyncio
import contextlib
import logging

from devreload.child import ChildProcess
from devreload.config import ReloadTarget
from devreload.lifecycle import LifecycleController, Spawner
from devreload.watcher import WatchSource

log = logging.getLogger(__name__)


async def run(
    target: ReloadTarget,
    spawn: Spawner = ChildProcess.spawn,
    handle_signals: bool = True,
    watcher: WatchSource | None = None,
) -> int:
    """Run ``target`` under the reloader until told to exit.

    Returns the supervisor's exit status. Errors from the watch source that
    are not recognised propagate out of here unhandled.
    """
    controller = LifecycleController(target, spawn=spawn, handle_signals=handle_signals)
    source = watcher or WatchSource(target)

    await controller.launch()

    watch_task = asyncio.create_task(
        source.run(controller.on_file_change, controller.on_watch_error),
        name="watcher",
    )
    exit_task = asyncio.create_task(controller.wait_for_exit(), name="exit-waiter")

    try:
        done, _ = await asyncio.wait(
            {watch_task, exit_task}, return_when=asyncio.FIRST_COMPLETED,
        )
        if watch_task in done:
            # Re-raise anything the controller refused to handle
            watch_task.result()
        code = await exit_task
    finally:
        source.stop_event.set()
        for task in (watch_task, exit_task):
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    log.info("Reloader exiting with status %d", code)
    return code
