"""Tests for ReloadTarget loading and validation."""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import pytest

from devreload.config import DEFAULT_KILL_DELAY_MS, ReloadTarget

ENV_VARS = (
    "DEVRELOAD_WATCH",
    "DEVRELOAD_KILL_DELAY",
    "DEVRELOAD_CWD",
    "DEVRELOAD_INTERPRETER",
    "DEVRELOAD_INTERPRETER_ARGS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield
    # load_dotenv writes straight into os.environ
    for name in ENV_VARS:
        os.environ.pop(name, None)


def test_defaults(tmp_path: Path):
    target = ReloadTarget(script="app.py", cwd=str(tmp_path))

    assert target.kill_delay == DEFAULT_KILL_DELAY_MS
    assert target.interpreter == sys.executable
    assert target.watch == ()


def test_paths_resolve_against_cwd(tmp_path: Path):
    target = ReloadTarget(script="app.py", cwd=str(tmp_path), watch=["lib", "/etc/app"])

    assert target.script_path == tmp_path / "app.py"
    assert target.watch_paths() == [tmp_path / "app.py", tmp_path / "lib", Path("/etc/app")]


def test_command_orders_interpreter_args_before_script(tmp_path: Path):
    target = ReloadTarget(
        script="app.py",
        cwd=str(tmp_path),
        interpreter="python3",
        interpreter_args=["-X", "dev"],
        script_args=["--port", "8080"],
    )

    assert target.command() == ["python3", "-X", "dev", str(tmp_path / "app.py"), "--port", "8080"]


def test_relative_renders_paths_inside_cwd(tmp_path: Path):
    target = ReloadTarget(script="app.py", cwd=str(tmp_path))

    assert target.relative(tmp_path / "lib" / "mod.py") == str(Path("lib") / "mod.py")
    assert target.relative("/elsewhere/mod.py") == "/elsewhere/mod.py"


@pytest.mark.parametrize("delay", [-1, "soon", None, True, 1.5])
def test_invalid_kill_delay_is_rejected(tmp_path: Path, delay):
    with pytest.raises(ValueError, match="Kill delay"):
        ReloadTarget(script="app.py", cwd=str(tmp_path), kill_delay=delay)


def test_missing_cwd_is_rejected(tmp_path: Path):
    with pytest.raises(ValueError, match="Working directory does not exist"):
        ReloadTarget(script="app.py", cwd=str(tmp_path / "nope"))


def test_empty_script_is_rejected(tmp_path: Path):
    with pytest.raises(ValueError, match="script"):
        ReloadTarget(script="", cwd=str(tmp_path))


def test_from_env_reads_dotenv_file(tmp_path: Path):
    env_file = tmp_path / ".env"
    env_file.write_text(
        "DEVRELOAD_WATCH=lib, config\n"
        "DEVRELOAD_KILL_DELAY=2500\n"
        f"DEVRELOAD_CWD={tmp_path}\n"
        "DEVRELOAD_INTERPRETER_ARGS=-X dev -u\n"
    )

    target = ReloadTarget.from_env("app.py", ["--debug"], env_path=env_file)

    assert target.watch == ("lib", "config")
    assert target.kill_delay == 2500
    assert target.cwd == str(tmp_path)
    assert target.interpreter_args == ("-X", "dev", "-u")
    assert target.script_args == ("--debug",)


def test_merge_file_applies_json_settings(tmp_path: Path):
    config = tmp_path / "reload.json"
    config.write_text(json.dumps({"watch": ["src"], "killDelay": 3000, "scriptArgs": ["-v"]}))
    target = ReloadTarget(script="app.py", cwd=str(tmp_path))

    merged = target.merge_file(config)

    assert merged.watch == ("src",)
    assert merged.kill_delay == 3000
    assert merged.script_args == ("-v",)
    assert target.kill_delay == DEFAULT_KILL_DELAY_MS


def test_merge_file_rejects_unknown_keys(tmp_path: Path):
    config = tmp_path / "reload.json"
    config.write_text(json.dumps({"watchh": ["src"]}))
    target = ReloadTarget(script="app.py", cwd=str(tmp_path))

    with pytest.raises(ValueError, match="Unknown config keys"):
        target.merge_file(config)


def test_merge_file_rejects_bad_json(tmp_path: Path):
    config = tmp_path / "reload.json"
    config.write_text("{not json")
    target = ReloadTarget(script="app.py", cwd=str(tmp_path))

    with pytest.raises(ValueError, match="Invalid JSON"):
        target.merge_file(config)


def test_with_overrides_skips_none(tmp_path: Path):
    target = ReloadTarget(script="app.py", cwd=str(tmp_path), kill_delay=500)

    updated = target.with_overrides(kill_delay=None, watch=["lib"])

    assert updated.kill_delay == 500
    assert updated.watch == ("lib",)


@pytest.mark.parametrize(
    "settings",
    [
        {"watch": "src"},
        {"scriptArgs": "--debug"},
        {"interpreterArgs": ["-X", 1]},
    ],
)
def test_merge_file_rejects_non_list_values(tmp_path: Path, settings):
    config = tmp_path / "reload.json"
    config.write_text(json.dumps(settings))
    target = ReloadTarget(script="app.py", cwd=str(tmp_path))

    with pytest.raises(ValueError, match="list of strings|only contain strings"):
        target.merge_file(config)


def test_merge_file_accepts_whole_number_float_delay(tmp_path: Path):
    config = tmp_path / "reload.json"
    config.write_text(json.dumps({"killDelay": 1500.0}))
    target = ReloadTarget(script="app.py", cwd=str(tmp_path))

    assert target.merge_file(config).kill_delay == 1500
