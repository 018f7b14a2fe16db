"""Deletion with a bounded number of attempts and a fixed pause between them."""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from .errors import RemovalError
from .fs import LocalFileSystem
from .logs import log_action


@dataclass(frozen=True)
class RemovalPolicy:
    retries: int = 3
    throw_on_failure: bool = True
    dry_run: bool = False
    pause: float = 1.0

    def __post_init__(self):
        if self.retries < 0:
            raise ValueError(f"retries must be >= 0, got {self.retries}")

    @property
    def attempts(self) -> int:
        return max(1, self.retries)


class RemovalStatus(enum.Enum):
    REMOVED = "removed"
    SKIPPED = "skipped"
    FAILED = "failed"
    PLANNED = "planned"


class RetryDeleter:
    """Removes one path at a time according to a :class:`RemovalPolicy`.

    A path that is already gone is ``SKIPPED``. In a dry run nothing is touched
    and the result is ``PLANNED``. When every attempt fails the result is
    ``FAILED``, or :class:`RemovalError` is raised if the policy asks for it.
    """

    def __init__(
        self,
        fs: LocalFileSystem,
        policy: RemovalPolicy,
        logger: logging.Logger,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.fs = fs
        self.policy = policy
        self.logger = logger
        self.sleep = sleep

    def _action(self, recursive: bool) -> str:
        return "RMDIR" if recursive else "DELETE"

    def delete(self, path: Path, recursive: bool = False) -> RemovalStatus:
        action = self._action(recursive)
        dry = self.policy.dry_run

        if not self.fs.exists(path):
            log_action(self.logger, action, f"SKIP already gone (dry_run={dry}) {path}", path=path, is_dir=recursive)
            return RemovalStatus.SKIPPED

        if dry:
            log_action(self.logger, "DRY_RUN", f"would remove (dry_run={dry}) {path}", path=path, is_dir=recursive)
            return RemovalStatus.PLANNED

        attempts = self.policy.attempts
        last_error: Optional[OSError] = None
        for attempt in range(1, attempts + 1):
            log_action(
                self.logger, action, f"attempt {attempt}/{attempts} (dry_run={dry}) {path}",
                path=path, is_dir=recursive, level=logging.INFO,
            )
            try:
                self.fs.delete(path, recursive=recursive)
            except FileNotFoundError:
                log_action(self.logger, action, f"SKIP vanished (dry_run={dry}) {path}", path=path, is_dir=recursive)
                return RemovalStatus.SKIPPED
            except OSError as e:
                last_error = e
                log_action(
                    self.logger, action, f"attempt {attempt}/{attempts} failed (dry_run={dry}) {path} | {e}",
                    path=path, is_dir=recursive, level=logging.WARNING,
                )
                if attempt < attempts:
                    self.sleep(self.policy.pause)
                continue
            log_action(self.logger, action, f"removed (dry_run={dry}) {path}", path=path, is_dir=recursive)
            return RemovalStatus.REMOVED

        if self.policy.throw_on_failure:
            raise RemovalError(Path(path), attempts, last_error)
        log_action(
            self.logger, action, f"giving up after {attempts} attempt(s) (dry_run={dry}) {path} | {last_error}",
            path=path, is_dir=recursive, level=logging.WARNING,
        )
        return RemovalStatus.FAILED
