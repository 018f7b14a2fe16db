"""Pytest bootstrap and shared fixtures.

Ensures ``import replica_sync`` resolves to the local package when the
``pytest`` console script runs with a sys.path that excludes the repo root.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
PROJECT_ROOT_STR = str(PROJECT_ROOT)

if PROJECT_ROOT_STR not in sys.path:
    sys.path.insert(0, PROJECT_ROOT_STR)

from replica_sync.fs import LocalFileSystem  # noqa: E402


def write(path: Path, text: str, mtime: float = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


def tree_listing(root: Path) -> set[str]:
    return {p.relative_to(root).as_posix() + ("/" if p.is_dir() else "") for p in root.rglob("*")}


class FlakyFileSystem(LocalFileSystem):
    """Local filesystem whose primitives fail for chosen file names."""

    def __init__(self, logger=None, fail_delete=(), fail_copy=(), fail_mkdir=(), heal_after=None):
        super().__init__(logger)
        self.fail_delete = set(fail_delete)
        self.fail_copy = set(fail_copy)
        self.fail_mkdir = set(fail_mkdir)
        self.heal_after = heal_after
        self.delete_calls: list[Path] = []

    def delete(self, path, recursive=False):
        self.delete_calls.append(Path(path))
        if Path(path).name in self.fail_delete:
            if self.heal_after is None or len(self.delete_calls) <= self.heal_after:
                raise PermissionError(13, "Permission denied", str(path))
        super().delete(path, recursive=recursive)

    def copy_file(self, src, dst):
        if Path(src).name in self.fail_copy:
            raise OSError(28, "No space left on device", str(dst))
        super().copy_file(src, dst)

    def create_directory(self, path):
        if Path(path).name in self.fail_mkdir:
            raise PermissionError(13, "Permission denied", str(path))
        super().create_directory(path)


@pytest.fixture
def logger():
    log = logging.getLogger("replica_sync_test")
    log.setLevel(logging.DEBUG)
    log.propagate = True
    return log


@pytest.fixture
def roots(tmp_path):
    source = tmp_path / "source"
    replica = tmp_path / "replica"
    source.mkdir()
    replica.mkdir()
    return source, replica
