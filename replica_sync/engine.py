"""
One full synchronization pass from a source root onto a replica root.

The pass runs in a fixed order and each step finishes before the next starts:

1. validate both roots
2. create missing directories (empty ones included)
3. copy new and stale files
4. delete replica-only files
5. delete replica-only directories, deepest first, once they are empty
6. re-scan both trees and compare totals

Per-entry failures are logged and counted and never stop the pass. Only the
checks of step 1 are fatal; they raise :class:`SetupError` before anything is
compared or changed.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from .diff import TreeDiff, deepest_first, diff_snapshots
from .errors import RemovalError, SetupError
from .fs import Entry, IgnoreMatcher, LocalFileSystem, capture_snapshot
from .logs import log_action
from .remove import RemovalPolicy, RemovalStatus, RetryDeleter
from .verify import TreeTotals, VerificationResult, verify_snapshots


@dataclass(frozen=True)
class SyncCounts:
    items_copied: int = 0
    directories_copied: int = 0
    items_removed: int = 0
    failures: int = 0

    def __add__(self, other: "SyncCounts") -> "SyncCounts":
        if not isinstance(other, SyncCounts):
            return NotImplemented
        return SyncCounts(
            items_copied=self.items_copied + other.items_copied,
            directories_copied=self.directories_copied + other.directories_copied,
            items_removed=self.items_removed + other.items_removed,
            failures=self.failures + other.failures,
        )


COPIED_DIR = SyncCounts(items_copied=1, directories_copied=1)
COPIED_FILE = SyncCounts(items_copied=1)
REMOVED = SyncCounts(items_removed=1)
FAILED = SyncCounts(failures=1)


@dataclass(frozen=True)
class SyncOutcome:
    counts: SyncCounts = field(default_factory=SyncCounts)
    verification: VerificationResult = field(
        default_factory=lambda: VerificationResult(TreeTotals(), TreeTotals())
    )
    dry_run: bool = False

    @property
    def items_copied(self) -> int:
        return self.counts.items_copied

    @property
    def directories_copied(self) -> int:
        return self.counts.directories_copied

    @property
    def items_removed(self) -> int:
        return self.counts.items_removed

    @property
    def failures(self) -> int:
        return self.counts.failures

    @property
    def status(self) -> int:
        return 0 if self.counts.failures == 0 else 1

    def as_dict(self) -> dict:
        return {
            "items_copied": self.items_copied,
            "directories_copied": self.directories_copied,
            "items_removed": self.items_removed,
            "failures": self.failures,
            "dry_run": self.dry_run,
            "verification": self.verification.as_dict(),
            "status": self.status,
        }


def _is_subpath(child: Path, parent: Path) -> bool:
    try:
        child.relative_to(parent)
        return True
    except ValueError:
        return False


def validate_roots(source: Path, replica: Path) -> tuple[Path, Path]:
    source = Path(source).expanduser().resolve()
    replica = Path(replica).expanduser().resolve()

    if not source.exists() or not source.is_dir():
        raise SetupError(f"Source folder does not exist or is not a folder: {source}")
    if source == replica:
        raise SetupError("Source and replica folders must be different.")
    if _is_subpath(replica, source):
        raise SetupError("Replica folder must NOT be inside the source folder.")
    if _is_subpath(source, replica):
        raise SetupError("Source folder must NOT be inside the replica folder.")

    try:
        replica.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise SetupError(f"Replica folder cannot be created: {replica} | {e}") from e
    if not replica.is_dir():
        raise SetupError(f"Replica path is not a folder: {replica}")
    return source, replica


class MirrorSync:
    def __init__(
        self,
        source: Path,
        replica: Path,
        logger: logging.Logger,
        policy: Optional[RemovalPolicy] = None,
        fs: Optional[LocalFileSystem] = None,
        ignore: Optional[IgnoreMatcher] = None,
        mtime_tolerance: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.source = Path(source)
        self.replica = Path(replica)
        self.logger = logger
        self.policy = policy or RemovalPolicy()
        self.fs = fs or LocalFileSystem(logger)
        self.ignore = ignore
        self.mtime_tolerance = mtime_tolerance
        self.deleter = RetryDeleter(self.fs, self.policy, logger, sleep=sleep)
        # relative keys a dry run would have removed; lets parents count as empty
        self._planned: set[str] = set()
        self.case_sensitive = True

    # -------------------------
    # Pass
    # -------------------------

    def run(self) -> SyncOutcome:
        self.source, self.replica = validate_roots(self.source, self.replica)
        self._planned = set()
        self.case_sensitive = self.fs.is_case_sensitive(self.replica)
        dry = self.policy.dry_run
        self.logger.info("SYNC: start %s -> %s (dry_run=%s)", self.source, self.replica, dry)

        counts = self.create_directories(self._diff())
        file_diff = self._diff()
        counts += self.copy_files(file_diff)
        counts += self.delete_files(file_diff)
        counts += self.delete_directories(self._diff())

        verification = self.verify()
        if not verification.ok:
            detail = "; ".join(verification.mismatches())
            log_action(
                self.logger,
                "VERIFY",
                f"replica does not match source (dry_run={dry}): {detail}",
                level=logging.ERROR,
            )
            counts += FAILED
        else:
            log_action(self.logger, "VERIFY", f"ok ({verification.replica})")

        outcome = SyncOutcome(counts=counts, verification=verification, dry_run=dry)
        self.logger.info(
            "SYNC: done copied=%d (dirs=%d) removed=%d failures=%d status=%d",
            outcome.items_copied,
            outcome.directories_copied,
            outcome.items_removed,
            outcome.failures,
            outcome.status,
        )
        return outcome

    def _diff(self) -> TreeDiff:
        source = capture_snapshot(self.fs, self.source, self.ignore)
        replica = capture_snapshot(self.fs, self.replica, self.ignore)
        return diff_snapshots(source, replica, self.mtime_tolerance, case_sensitive=self.case_sensitive)

    def verify(self) -> VerificationResult:
        return verify_snapshots(
            capture_snapshot(self.fs, self.source, self.ignore),
            capture_snapshot(self.fs, self.replica, self.ignore),
        )

    # -------------------------
    # Forward pass
    # -------------------------

    def create_directories(self, diff: TreeDiff) -> SyncCounts:
        counts = SyncCounts()
        for entry in diff.replace:
            if not entry.is_dir:
                continue
            cleared, ok = self._clear_conflict(entry)
            counts += cleared
            if ok:
                counts += self._create_directory(self.replica / entry.relative_path)
        for entry in diff.create_dirs:
            counts += self._create_directory(self.replica / entry.relative_path)
        return counts

    def copy_files(self, diff: TreeDiff) -> SyncCounts:
        counts = SyncCounts()
        for entry in diff.replace:
            if entry.is_dir:
                continue
            cleared, ok = self._clear_conflict(entry)
            counts += cleared
            if ok:
                counts += self._copy_file(entry)
        for entry in diff.copy_files:
            counts += self._copy_file(entry)
        return counts

    def _create_directory(self, path: Path) -> SyncCounts:
        try:
            self.fs.create_directory(path)
        except OSError as e:
            log_action(self.logger, "MKDIR", f"ERROR mkdir: {path} | {e}", path=path, is_dir=True, level=logging.ERROR)
            return FAILED
        log_action(self.logger, "MKDIR", f"{path}", path=path, is_dir=True)
        return COPIED_DIR

    def _copy_file(self, entry: Entry) -> SyncCounts:
        src = self.source / entry.relative_path
        dst = self.replica / entry.relative_path

        counts = SyncCounts()
        if not self.fs.exists(dst.parent):
            created = self._create_directory(dst.parent)
            if created.failures:
                return created
            counts += created

        try:
            self.fs.copy_file(src, dst)
        except OSError as e:
            log_action(self.logger, "COPY", f"ERROR {src} -> {dst} | {e}", path=dst, is_dir=False, level=logging.ERROR)
            return counts + FAILED
        log_action(self.logger, "COPY", f"{src} -> {dst}", path=dst, is_dir=False)
        return counts + COPIED_FILE

    def _clear_conflict(self, entry: Entry) -> tuple[SyncCounts, bool]:
        """Remove the replica entry that has the other kind than ``entry``.

        Returns the counts and whether the way is now clear for the source entry.
        """
        path = self.replica / entry.relative_path
        log_action(
            self.logger,
            "REPLACE",
            f"{'file' if entry.is_dir else 'directory'} in replica where source has a "
            f"{'directory' if entry.is_dir else 'file'}: {path}",
            path=path,
            is_dir=not entry.is_dir,
        )
        counts, status = self._remove(path, recursive=not entry.is_dir)
        return counts, status in (RemovalStatus.REMOVED, RemovalStatus.SKIPPED)

    # -------------------------
    # Reverse pass
    # -------------------------

    def delete_files(self, diff: TreeDiff) -> SyncCounts:
        counts = SyncCounts()
        for entry in diff.delete_files:
            removed, status = self._remove(self.replica / entry.relative_path, recursive=False)
            counts += removed
            if status is RemovalStatus.PLANNED:
                self._planned.add(entry.key)
        return counts

    def delete_directories(self, diff: TreeDiff) -> SyncCounts:
        counts = SyncCounts()
        for entry in deepest_first(diff.delete_dirs):
            path = self.replica / entry.relative_path
            try:
                empty = self._is_empty(path)
            except FileNotFoundError:
                continue
            except OSError as e:
                log_action(self.logger, "RMDIR", f"ERROR listing {path} | {e}", path=path, is_dir=True, level=logging.ERROR)
                counts += FAILED
                continue
            if not empty:
                log_action(self.logger, "RMDIR", f"kept, not empty: {path}", path=path, is_dir=True, level=logging.DEBUG)
                continue
            removed, status = self._remove(path, recursive=True)
            counts += removed
            if status is RemovalStatus.PLANNED:
                self._planned.add(entry.key)
        return counts

    def _is_empty(self, path: Path) -> bool:
        if not self._planned:
            return self.fs.is_empty(path)
        return all(
            child.relative_to(self.replica).as_posix() in self._planned
            for child in self.fs.children(path)
        )

    def _remove(self, path: Path, recursive: bool) -> tuple[SyncCounts, Optional[RemovalStatus]]:
        action = "RMDIR" if recursive else "DELETE"
        try:
            status = self.deleter.delete(path, recursive=recursive)
        except RemovalError as e:
            log_action(self.logger, action, f"ERROR {e}", path=path, is_dir=recursive, level=logging.ERROR)
            return FAILED, None

        if status is RemovalStatus.REMOVED:
            return REMOVED, status
        if status is RemovalStatus.FAILED:
            log_action(self.logger, action, f"ERROR could not remove {path}", path=path, is_dir=recursive, level=logging.ERROR)
            return FAILED, status
        return SyncCounts(), status
