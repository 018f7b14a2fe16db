"""Filesystem access: entry snapshots of a tree and the copy/delete primitives."""

from __future__ import annotations

import enum
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from pathspec import PathSpec


class EntryKind(enum.Enum):
    FILE = "file"
    DIRECTORY = "directory"


@dataclass(frozen=True)
class Entry:
    relative_path: Path
    kind: EntryKind
    size: int = 0
    last_modified: float = 0.0

    @property
    def is_dir(self) -> bool:
        return self.kind is EntryKind.DIRECTORY

    @property
    def depth(self) -> int:
        return len(self.relative_path.parts)

    @property
    def key(self) -> str:
        return self.relative_path.as_posix()


@dataclass(frozen=True)
class TreeSnapshot:
    """Entries found under ``root`` at one point in time, sorted by path."""

    root: Path
    entries: tuple[Entry, ...] = ()

    def files(self) -> list[Entry]:
        return [e for e in self.entries if not e.is_dir]

    def directories(self) -> list[Entry]:
        return [e for e in self.entries if e.is_dir]

    def get(self, relative_path) -> Optional[Entry]:
        key = Path(relative_path).as_posix()
        for entry in self.entries:
            if entry.key == key:
                return entry
        return None

    def index(self) -> dict[str, Entry]:
        return {e.key: e for e in self.entries}

    @property
    def file_count(self) -> int:
        return len(self.files())

    @property
    def directory_count(self) -> int:
        return len(self.directories())

    @property
    def total_size(self) -> int:
        return sum(e.size for e in self.files())


class IgnoreMatcher:
    def __init__(self, patterns: Iterable[str]):
        self.patterns = list(patterns)
        self.spec = PathSpec.from_lines("gitwildmatch", self.patterns)

    def __bool__(self) -> bool:
        return bool(self.patterns)

    def is_ignored(self, relative_path: Path, is_dir: bool) -> bool:
        rel_posix = Path(relative_path).as_posix()
        if is_dir and not rel_posix.endswith("/"):
            rel_posix += "/"
        return self.spec.match_file(rel_posix)


class LocalFileSystem:
    """Primitive operations on the local disk. Every mutation raises ``OSError`` on failure."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def list_entries(self, root: Path, ignore: Optional[IgnoreMatcher] = None) -> list[Entry]:
        """List everything under ``root`` except excluded entries.

        A directory whose only contents are excluded entries is left out as
        well, so it is neither copied nor deleted nor counted.
        """
        root = Path(root)
        entries: list[Entry] = []
        # directories with an excluded entry somewhere below them
        hiding: set[Path] = set()
        for path in root.rglob("*"):
            rel = path.relative_to(root)
            try:
                if path.is_symlink() and not path.exists():
                    continue
                is_dir = path.is_dir()
                if not is_dir and not path.is_file():
                    continue
                if ignore and ignore.is_ignored(rel, is_dir=is_dir):
                    hiding.update(rel.parents)
                    continue
                if is_dir:
                    entries.append(Entry(rel, EntryKind.DIRECTORY))
                    continue
                st = path.stat()
            except FileNotFoundError:
                self.logger.debug("vanished during scan: %s", path)
                continue
            except OSError as e:
                self.logger.warning("cannot read %s, left out of snapshot | %s", path, e)
                continue
            entries.append(Entry(rel, EntryKind.FILE, size=st.st_size, last_modified=st.st_mtime))
        if hiding:
            entries = _drop_excluded_only_dirs(entries, hiding)
        entries.sort(key=lambda e: e.relative_path.parts)
        return entries

    def is_case_sensitive(self, root: Path) -> bool:
        """Whether names under ``root`` that differ only in case are distinct."""
        root = Path(root)
        flipped = root.name.swapcase()
        if flipped != root.name:
            twin = root.with_name(flipped)
            return not (twin.exists() and os.path.samefile(root, twin))
        try:
            with tempfile.NamedTemporaryFile(prefix=".replica-sync-case-", dir=root) as handle:
                marker = Path(handle.name)
                return not marker.with_name(marker.name.upper()).exists()
        except OSError as e:
            self.logger.warning("cannot tell letter case handling of %s, assuming case-sensitive | %s", root, e)
            return True

    def exists(self, path: Path) -> bool:
        return Path(path).exists() or Path(path).is_symlink()

    def is_dir(self, path: Path) -> bool:
        return Path(path).is_dir() and not Path(path).is_symlink()

    def children(self, path: Path) -> list[Path]:
        return list(Path(path).iterdir())

    def is_empty(self, path: Path) -> bool:
        """True when ``path`` holds no files and no subdirectories."""
        return not self.children(path)

    def create_directory(self, path: Path) -> None:
        Path(path).mkdir(parents=True, exist_ok=True)

    def copy_file(self, src: Path, dst: Path) -> None:
        shutil.copy2(src, dst)

    def delete(self, path: Path, recursive: bool = False) -> None:
        path = Path(path)
        if self.is_dir(path):
            if recursive:
                shutil.rmtree(path)
            else:
                path.rmdir()
        else:
            path.unlink()

    def last_modified(self, path: Path) -> float:
        return Path(path).stat().st_mtime


def _drop_excluded_only_dirs(entries: list[Entry], hiding: set[Path]) -> list[Entry]:
    # a directory survives if something kept lives below it, or if it is truly empty
    occupied = {parent for e in entries if not e.is_dir for parent in e.relative_path.parents}
    dropped: set[Path] = set()
    for entry in sorted((e for e in entries if e.is_dir), key=lambda e: -e.depth):
        rel = entry.relative_path
        if rel in hiding and rel not in occupied:
            dropped.add(rel)
        else:
            occupied.update(rel.parents)
    return [e for e in entries if e.relative_path not in dropped]


def capture_snapshot(
    fs: LocalFileSystem,
    root: Path,
    ignore: Optional[IgnoreMatcher] = None,
) -> TreeSnapshot:
    return TreeSnapshot(root=Path(root), entries=tuple(fs.list_entries(root, ignore=ignore)))
