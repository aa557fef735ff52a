"""devreload: run a Python script and restart it when its files change.

The process lifecycle (start, graceful stop, SIGKILL escalation) lives in
``LifecycleController``; ``run`` wires it to a file watcher and to the
process's signals.

Can run standalone:
    python -m devreload app.py
"""

from devreload.config import ReloadTarget
from devreload.lifecycle import LifecycleController
from devreload.models import ChildExit, SupervisorState
from devreload.runner import run

__all__ = ["ChildExit", "LifecycleController", "ReloadTarget", "SupervisorState", "run"]
