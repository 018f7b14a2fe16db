"""One-way folder mirroring: make a replica tree an exact copy of a source tree."""

from .diff import TreeDiff, diff_snapshots, is_updated
from .engine import MirrorSync, SyncCounts, SyncOutcome, validate_roots
from .errors import ConfigError, RemovalError, ReplicaSyncError, SetupError
from .fs import Entry, EntryKind, IgnoreMatcher, LocalFileSystem, TreeSnapshot, capture_snapshot
from .remove import RemovalPolicy, RemovalStatus, RetryDeleter
from .verify import TreeTotals, VerificationResult, verify_snapshots

__version__ = "0.1.0"

__all__ = [
    "ConfigError",
    "Entry",
    "EntryKind",
    "IgnoreMatcher",
    "LocalFileSystem",
    "MirrorSync",
    "RemovalError",
    "RemovalPolicy",
    "RemovalStatus",
    "ReplicaSyncError",
    "RetryDeleter",
    "SetupError",
    "SyncCounts",
    "SyncOutcome",
    "TreeDiff",
    "TreeSnapshot",
    "TreeTotals",
    "VerificationResult",
    "capture_snapshot",
    "diff_snapshots",
    "is_updated",
    "validate_roots",
    "verify_snapshots",
]
