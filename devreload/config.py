from __future__ import annotations

import json
import os
import shlex
import sys
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

DEFAULT_KILL_DELAY_MS = 1000

# JSON config file keys -> ReloadTarget fields
_FILE_KEYS = {
    "watch": "watch",
    "killDelay": "kill_delay",
    "cwd": "cwd",
    "scriptArgs": "script_args",
    "interpreterArgs": "interpreter_args",
    "interpreter": "interpreter",
}


def _split_list(raw: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _string_list(name: str, raw: Any) -> tuple[str, ...]:
    if isinstance(raw, (str, bytes)) or not isinstance(raw, (list, tuple)):
        raise ValueError(f"{name} must be a list of strings, got {raw!r}")
    if not all(isinstance(item, str) for item in raw):
        raise ValueError(f"{name} must only contain strings, got {raw!r}")
    return tuple(raw)


def _parse_kill_delay(raw: Any) -> int:
    # JSON hands us true/false and floats; int() would quietly accept both
    if isinstance(raw, bool) or (isinstance(raw, float) and not raw.is_integer()):
        raise ValueError(f"Kill delay must be an integer number of milliseconds, got {raw!r}")
    try:
        delay = int(raw)
    except (TypeError, ValueError):
        raise ValueError(f"Kill delay must be an integer number of milliseconds, got {raw!r}") from None
    if delay < 0:
        raise ValueError(f"Kill delay must not be negative, got {delay}")
    return delay


@dataclass(frozen=True)
class ReloadTarget:
    """Everything needed to (re)launch the supervised script.

    Relative paths (script, watch entries) are resolved against ``cwd``:

        script="app.py", cwd="/srv/api"      ->  /srv/api/app.py
        watch=("lib",),  cwd="/srv/api"      ->  /srv/api/lib
        watch=("/etc/api",)                  ->  /etc/api  (absolute paths used as-is)
    """

    script: str
    script_args: tuple[str, ...] = ()
    interpreter_args: tuple[str, ...] = ()
    interpreter: str = sys.executable
    cwd: str = field(default_factory=os.getcwd)
    kill_delay: int = DEFAULT_KILL_DELAY_MS
    watch: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.script:
            raise ValueError("A script to run is required")
        if not Path(self.cwd).is_dir():
            raise ValueError(f"Working directory does not exist: {self.cwd}")
        object.__setattr__(self, "kill_delay", _parse_kill_delay(self.kill_delay))
        # Lists coming from JSON or argparse are frozen into tuples
        for name in ("script_args", "interpreter_args", "watch"):
            object.__setattr__(self, name, _string_list(name, getattr(self, name)))

    @property
    def kill_delay_seconds(self) -> float:
        return self.kill_delay / 1000

    @property
    def script_path(self) -> Path:
        return self._resolve(self.script)

    def watch_paths(self) -> list[Path]:
        """The script itself followed by every watched directory."""
        return [self.script_path, *(self._resolve(entry) for entry in self.watch)]

    def command(self) -> list[str]:
        return [
            self.interpreter,
            *self.interpreter_args,
            str(self.script_path),
            *self.script_args,
        ]

    def relative(self, path: str | Path) -> str:
        """Render ``path`` relative to the working directory when it lies inside it."""
        try:
            return str(Path(path).resolve().relative_to(Path(self.cwd).resolve()))
        except ValueError:
            return str(path)

    def with_overrides(self, **overrides: Any) -> ReloadTarget:
        """Return a copy with every non-None override applied."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes) if changes else self

    def _resolve(self, entry: str) -> Path:
        path = Path(entry)
        return path if path.is_absolute() else Path(self.cwd) / path

    # ------------------------------------------------------------------
    # Loaders
    # ------------------------------------------------------------------

    @classmethod
    def from_env(
        cls,
        script: str,
        script_args: tuple[str, ...] | list[str] = (),
        env_path: str | Path | None = None,
    ) -> ReloadTarget:
        load_dotenv(env_path)

        overrides: dict[str, Any] = {}
        if raw := os.getenv("DEVRELOAD_WATCH"):
            overrides["watch"] = _split_list(raw)
        if raw := os.getenv("DEVRELOAD_KILL_DELAY"):
            overrides["kill_delay"] = raw
        if raw := os.getenv("DEVRELOAD_CWD"):
            overrides["cwd"] = raw
        if raw := os.getenv("DEVRELOAD_INTERPRETER"):
            overrides["interpreter"] = raw
        if raw := os.getenv("DEVRELOAD_INTERPRETER_ARGS"):
            overrides["interpreter_args"] = tuple(shlex.split(raw))

        return cls(script=script, script_args=tuple(script_args), **overrides)

    def merge_file(self, config_path: str | Path) -> ReloadTarget:
        """Apply settings from a JSON config file.

        Config format:
            {
                "watch": ["lib", "config"],
                "killDelay": 3000,
                "cwd": "/path/to/project",
                "scriptArgs": ["--port", "8080"],
                "interpreterArgs": ["-X", "dev"]
            }
        """
        path = Path(config_path)
        if not path.is_file():
            raise ValueError(f"Config file does not exist: {path}")

        with open(path) as f:
            try:
                raw: dict[str, Any] = json.load(f)
            except json.JSONDecodeError as exc:
                raise ValueError(f"Invalid JSON in {path}: {exc}") from None

        if not isinstance(raw, dict):
            raise ValueError(f"Config file {path} must contain a JSON object")

        unknown = sorted(set(raw) - set(_FILE_KEYS))
        if unknown:
            raise ValueError(f"Unknown config keys in {path}: {', '.join(unknown)}")

        return self.with_overrides(**{_FILE_KEYS[key]: value for key, value in raw.items()})
