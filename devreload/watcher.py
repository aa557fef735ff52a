"""Watch source: turns filesystem changes into reload notifications."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path

from watchfiles import DefaultFilter, awatch

from devreload.config import ReloadTarget

log = logging.getLogger(__name__)

ChangeHandler = Callable[[str], Awaitable[None]]
ErrorHandler = Callable[[BaseException], Awaitable[None]]

DEFAULT_DEBOUNCE_MS = 300


class WatchSource:
    """Watch the target script and its watch directories.

    Each debounced batch from ``watchfiles`` produces exactly one change
    notification, and the next batch is not read until that notification has
    been fully handled.
    """

    def __init__(
        self,
        target: ReloadTarget,
        debounce: int = DEFAULT_DEBOUNCE_MS,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        self.target = target
        self.debounce = debounce
        self.stop_event = stop_event or asyncio.Event()

    def paths(self) -> list[Path]:
        existing: list[Path] = []
        for path in self.target.watch_paths():
            if path.exists():
                existing.append(path)
            else:
                log.warning("Not watching %s: no such file or directory", path)
        return existing

    async def run(self, on_change: ChangeHandler, on_error: ErrorHandler) -> None:
        paths = self.paths()
        if not paths:
            log.warning("Nothing to watch; changes will not trigger a reload")
            await self.stop_event.wait()
            return

        log.info("Watching %s", ", ".join(self.target.relative(p) for p in paths))
        try:
            async for changes in awatch(
                *paths,
                watch_filter=DefaultFilter(),
                debounce=self.debounce,
                stop_event=self.stop_event,
            ):
                changed = sorted(path for _, path in changes)
                if len(changed) > 1:
                    log.debug("%d files changed: %s", len(changed), ", ".join(changed))
                await on_change(changed[0])
        except Exception as exc:
            await on_error(exc)
