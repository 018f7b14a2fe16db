"""Exception hierarchy for replica-sync."""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class ReplicaSyncError(Exception):
    """Base class for every error raised by replica-sync."""


class ConfigError(ReplicaSyncError):
    """Invalid or incomplete invocation parameters."""


class SetupError(ReplicaSyncError):
    """A run precondition failed; nothing was diffed or changed."""


class RemovalError(ReplicaSyncError):
    def __init__(self, path: Path, attempts: int, error: Optional[BaseException] = None):
        self.path = path
        self.attempts = attempts
        self.error = error
        super().__init__(f"could not remove {path} after {attempts} attempt(s): {error}")
