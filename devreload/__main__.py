"""Run a Python script under the reloader.

Usage:
    python -m devreload [--watch DIR ...] [--kill-delay MS] script [args ...]

The script is restarted whenever a watched file changes or the reloader
receives SIGUSR1. SIGINT/SIGTERM are forwarded to the script before the
reloader exits.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from devreload.config import DEFAULT_KILL_DELAY_MS, ReloadTarget
from devreload.runner import run

log = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="devreload",
        description="Restart a Python script whenever its files change",
    )
    parser.add_argument("script", help="Path to the script to run")
    parser.add_argument(
        "script_args", nargs=argparse.REMAINDER,
        help="Arguments passed through to the script",
    )
    parser.add_argument(
        "--watch", "-w", action="append", default=None, metavar="DIR",
        help="Directory to watch, relative to --cwd (repeatable)",
    )
    parser.add_argument(
        "--kill-delay", type=int, default=None, metavar="MS",
        help=f"Milliseconds to wait before sending SIGKILL (default: {DEFAULT_KILL_DELAY_MS})",
    )
    parser.add_argument("--cwd", default=None, help="Working directory (default: current directory)")
    parser.add_argument(
        "--interpreter-arg", action="append", default=None, dest="interpreter_args",
        metavar="ARG", help="Argument for the Python interpreter, e.g. --interpreter-arg=-u (repeatable)",
    )
    parser.add_argument("--interpreter", default=None, help="Interpreter executable")
    parser.add_argument("--config", type=Path, default=None, help="JSON config file")
    parser.add_argument("--env-file", type=Path, default=None, help="dotenv file to load")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser


def load_target(args: argparse.Namespace) -> ReloadTarget:
    """Environment, then config file, then command-line flags."""
    target = ReloadTarget.from_env(args.script, args.script_args, env_path=args.env_file)
    if args.config is not None:
        target = target.merge_file(args.config)
    return target.with_overrides(
        watch=args.watch,
        kill_delay=args.kill_delay,
        cwd=args.cwd,
        interpreter_args=args.interpreter_args,
        interpreter=args.interpreter,
    )


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [reloader] %(levelname)s %(message)s",
    )

    try:
        target = load_target(args)
    except ValueError as exc:
        parser.error(str(exc))

    log.info("Starting reloader for %s (kill delay %dms)", target.script, target.kill_delay)
    sys.exit(asyncio.run(run(target)))


if __name__ == "__main__":
    main()
