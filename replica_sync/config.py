"""Invocation parameters: command line, optional JSON config file, and their merge."""

from __future__ import annotations

import argparse
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .errors import ConfigError
from .remove import RemovalPolicy

DEFAULT_RETRIES = 3
DEFAULT_SETTLE_SECONDS = 2.0


@dataclass(frozen=True)
class SyncConfig:
    source: Path
    replica: Path
    log_file: Path
    verbose: bool = False
    retries: int = DEFAULT_RETRIES
    throw_on_failure: bool = True
    dry_run: bool = False
    excludes: tuple[str, ...] = ()
    mtime_tolerance: float = 0.0
    interval: Optional[float] = None
    watch: bool = False
    settle: float = DEFAULT_SETTLE_SECONDS

    @property
    def repeat(self) -> bool:
        return self.watch or self.interval is not None

    def removal_policy(self) -> RemovalPolicy:
        return RemovalPolicy(
            retries=self.retries,
            throw_on_failure=self.throw_on_failure,
            dry_run=self.dry_run,
        )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="replica-sync",
        description="Make a replica folder an exact copy of a source folder.",
    )
    p.add_argument("--source", type=str, default=None, help="Folder to copy from (authoritative).")
    p.add_argument("--replica", type=str, default=None, help="Folder to update so it mirrors the source.")
    p.add_argument("--log-file", type=str, default=None, help="File that receives the run log (appended).")
    p.add_argument("-v", "--verbose", action="store_true", default=None, help="Echo every action to the console.")
    p.add_argument("--retries", type=int, default=None, help=f"Delete attempts per entry (default {DEFAULT_RETRIES}).")
    p.add_argument(
        "--no-throw",
        action="store_true",
        default=None,
        help="Report a delete that keeps failing instead of raising it.",
    )
    p.add_argument("--dry-run", action="store_true", default=None, help="Log deletions without performing them.")
    p.add_argument(
        "--exclude",
        action="append",
        default=None,
        metavar="PATTERN",
        help="gitignore-style pattern to leave out of both trees (repeatable).",
    )
    p.add_argument(
        "--mtime-tolerance",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Treat a source file as newer only if it is ahead by more than this (default 0).",
    )
    p.add_argument("--interval", type=float, default=None, metavar="SECONDS", help="Repeat the sync every N seconds.")
    p.add_argument("--watch", action="store_true", default=None, help="Re-sync when the source folder changes.")
    p.add_argument(
        "--settle",
        type=float,
        default=None,
        metavar="SECONDS",
        help=f"Quiet time after a change before a watch-triggered sync (default {DEFAULT_SETTLE_SECONDS:g}).",
    )
    p.add_argument("--config", type=str, default=None, help="JSON file with defaults for any of the options above.")
    return p


def parse_args(argv: list[str]) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def load_config_file(path: Path) -> dict:
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Config file {path} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must hold a JSON object.")
    return data


def build_effective_config(args: argparse.Namespace) -> SyncConfig:
    saved = load_config_file(Path(args.config)) if args.config else {}

    def pick(cli_value, key, default=None):
        return cli_value if cli_value is not None else saved.get(key, default)

    def flag(cli_value, key, default):
        if cli_value is not None:
            return cli_value
        value = saved.get(key, default)
        if not isinstance(value, bool):
            raise ConfigError(f"Config key \"{key}\" must be true or false, got {value!r}")
        return value

    source = pick(args.source, "source")
    replica = pick(args.replica, "replica")
    log_file = pick(args.log_file, "log_file")
    missing = [name for name, value in (("source", source), ("replica", replica), ("log-file", log_file)) if not value]
    if missing:
        raise ConfigError("Missing required option(s): " + ", ".join(f"--{m}" for m in missing))

    if args.no_throw is not None:
        throw_on_failure = not args.no_throw
    else:
        throw_on_failure = flag(None, "throw_on_failure", True)

    try:
        retries = int(pick(args.retries, "retries", DEFAULT_RETRIES))
        tolerance = float(pick(args.mtime_tolerance, "mtime_tolerance", 0.0))
        interval = pick(args.interval, "interval")
        interval = float(interval) if interval is not None else None
        settle = float(pick(args.settle, "settle", DEFAULT_SETTLE_SECONDS))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid numeric option: {e}") from e

    if retries < 0:
        raise ConfigError(f"--retries must be 0 or more, got {retries}")
    if tolerance < 0:
        raise ConfigError(f"--mtime-tolerance must be 0 or more, got {tolerance:g}")
    if interval is not None and interval <= 0:
        raise ConfigError(f"--interval must be positive, got {interval:g}")
    if settle < 0:
        raise ConfigError(f"--settle must be 0 or more, got {settle:g}")

    excludes = args.exclude if args.exclude is not None else saved.get("exclude", [])
    if isinstance(excludes, str):
        excludes = [excludes]

    return SyncConfig(
        source=Path(source),
        replica=Path(replica),
        log_file=Path(log_file),
        verbose=flag(args.verbose, "verbose", False),
        retries=retries,
        throw_on_failure=throw_on_failure,
        dry_run=flag(args.dry_run, "dry_run", False),
        excludes=tuple(excludes),
        mtime_tolerance=tolerance,
        interval=interval,
        watch=flag(args.watch, "watch", False),
        settle=settle,
    )
