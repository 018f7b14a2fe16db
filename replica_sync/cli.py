"""Command-line entry point for replica-sync."""

from __future__ import annotations

import sys
from typing import Optional

from .config import build_effective_config, parse_args
from .engine import MirrorSync, validate_roots
from .errors import ConfigError, SetupError
from .fs import IgnoreMatcher, LocalFileSystem
from .logs import setup_logger
from .watch import repeat_sync

EXIT_SETUP = 2


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    try:
        cfg = build_effective_config(args)
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return EXIT_SETUP

    try:
        logger = setup_logger(cfg.log_file, verbose=cfg.verbose)
    except OSError as e:
        print(f"Cannot open log file {cfg.log_file}: {e}", file=sys.stderr)
        return EXIT_SETUP

    logger.info("Source : %s", cfg.source)
    logger.info("Replica: %s", cfg.replica)

    ignore = IgnoreMatcher(cfg.excludes) if cfg.excludes else None
    engine = MirrorSync(
        cfg.source,
        cfg.replica,
        logger,
        policy=cfg.removal_policy(),
        fs=LocalFileSystem(logger),
        ignore=ignore,
        mtime_tolerance=cfg.mtime_tolerance,
    )

    def run_once() -> int:
        try:
            return engine.run().status
        except SetupError as e:
            logger.error("Setup error: %s", e)
            return EXIT_SETUP

    if not cfg.repeat:
        return run_once()

    watch_root = None
    if cfg.watch:
        try:
            watch_root, _ = validate_roots(cfg.source, cfg.replica)
        except SetupError as e:
            logger.error("Setup error: %s", e)
            return EXIT_SETUP

    return repeat_sync(run_once, logger, interval=cfg.interval, watch_root=watch_root, settle=cfg.settle)


if __name__ == "__main__":
    raise SystemExit(main())
