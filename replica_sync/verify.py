"""Post-run consistency check between the source and replica trees."""

from __future__ import annotations

from dataclasses import dataclass

from .fs import TreeSnapshot


@dataclass(frozen=True)
class TreeTotals:
    files: int = 0
    directories: int = 0
    bytes: int = 0

    @classmethod
    def of(cls, snapshot: TreeSnapshot) -> "TreeTotals":
        return cls(
            files=snapshot.file_count,
            directories=snapshot.directory_count,
            bytes=snapshot.total_size,
        )

    def __str__(self) -> str:
        return f"{self.files} files, {self.directories} dirs, {self.bytes} bytes"


@dataclass(frozen=True)
class VerificationResult:
    source: TreeTotals
    replica: TreeTotals

    @property
    def files_match(self) -> bool:
        return self.source.files == self.replica.files

    @property
    def directories_match(self) -> bool:
        return self.source.directories == self.replica.directories

    @property
    def size_match(self) -> bool:
        return self.source.bytes == self.replica.bytes

    @property
    def ok(self) -> bool:
        return self.files_match and self.directories_match and self.size_match

    def mismatches(self) -> list[str]:
        out = []
        if not self.files_match:
            out.append(f"file count {self.source.files} != {self.replica.files}")
        if not self.directories_match:
            out.append(f"directory count {self.source.directories} != {self.replica.directories}")
        if not self.size_match:
            out.append(f"total size {self.source.bytes} != {self.replica.bytes}")
        return out

    def as_dict(self) -> dict:
        return {
            "source": {"files": self.source.files, "directories": self.source.directories, "bytes": self.source.bytes},
            "replica": {"files": self.replica.files, "directories": self.replica.directories, "bytes": self.replica.bytes},
            "files_match": self.files_match,
            "directories_match": self.directories_match,
            "size_match": self.size_match,
        }


def verify_snapshots(source: TreeSnapshot, replica: TreeSnapshot) -> VerificationResult:
    return VerificationResult(source=TreeTotals.of(source), replica=TreeTotals.of(replica))
