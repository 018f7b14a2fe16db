"""Classify the entries of two snapshots into create, copy, delete and replace sets.

Entries are matched on their path relative to their own root, so the two trees
can live anywhere on disk. A replica file is stale only when the source copy is
strictly newer; equal or newer replica timestamps are left alone.
"""

from __future__ import annotations

from dataclasses import dataclass

from .fs import Entry, TreeSnapshot


@dataclass(frozen=True)
class TreeDiff:
    create_dirs: tuple[Entry, ...] = ()
    copy_files: tuple[Entry, ...] = ()
    delete_files: tuple[Entry, ...] = ()
    # deepest first
    delete_dirs: tuple[Entry, ...] = ()
    # source entries whose replica counterpart has the other kind
    replace: tuple[Entry, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.create_dirs or self.copy_files or self.delete_files or self.delete_dirs or self.replace)


def is_updated(source: Entry, replica: Entry, tolerance: float = 0.0) -> bool:
    return source.last_modified > replica.last_modified + tolerance


def deepest_first(entries) -> list[Entry]:
    return sorted(entries, key=lambda e: (-e.depth, e.key))


def _index(snapshot: TreeSnapshot, case_sensitive: bool) -> dict[str, Entry]:
    if case_sensitive:
        return snapshot.index()
    return {e.key.casefold(): e for e in snapshot.entries}


def diff_snapshots(
    source: TreeSnapshot,
    replica: TreeSnapshot,
    mtime_tolerance: float = 0.0,
    case_sensitive: bool = True,
) -> TreeDiff:
    """Compare two snapshots.

    With ``case_sensitive=False`` paths that differ only in letter case name the
    same entry, as they do on a case-insensitive replica volume. Such a rename
    in the source is not carried over; the replica keeps its spelling.
    """
    src_index = _index(source, case_sensitive)
    rep_index = _index(replica, case_sensitive)

    create_dirs: list[Entry] = []
    copy_files: list[Entry] = []
    replace: list[Entry] = []

    for key, entry in src_index.items():
        counterpart = rep_index.get(key)
        if counterpart is None:
            (create_dirs if entry.is_dir else copy_files).append(entry)
        elif counterpart.kind is not entry.kind:
            replace.append(entry)
        elif not entry.is_dir and is_updated(entry, counterpart, mtime_tolerance):
            copy_files.append(entry)

    delete_files: list[Entry] = []
    delete_dirs: list[Entry] = []
    for key, entry in rep_index.items():
        if key in src_index:
            continue
        (delete_dirs if entry.is_dir else delete_files).append(entry)

    return TreeDiff(
        create_dirs=tuple(create_dirs),
        copy_files=tuple(copy_files),
        delete_files=tuple(delete_files),
        delete_dirs=tuple(deepest_first(delete_dirs)),
        replace=tuple(replace),
    )
