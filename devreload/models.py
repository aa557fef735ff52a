from __future__ import annotations

import signal
from dataclasses import dataclass
from enum import Enum


class SupervisorState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass(frozen=True)
class ChildExit:
    """How a child process ended: an exit code or the name of a signal."""

    code: int | None = None
    signal: str | None = None

    @classmethod
    def from_returncode(cls, returncode: int) -> ChildExit:
        # asyncio reports death-by-signal as a negative return code
        if returncode < 0:
            try:
                name = signal.Signals(-returncode).name
            except ValueError:
                name = str(-returncode)
            return cls(signal=name)
        return cls(code=returncode)

    def describe(self) -> str:
        if self.code is not None:
            return f"code {self.code}"
        return f"signal {self.signal}"
