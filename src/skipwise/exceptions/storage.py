"""Content store exceptions."""

from pathlib import Path

from .base import SkipwiseError


class StoreError(SkipwiseError, OSError):
    """Raised when the content store cannot be read or written."""

    def __init__(self, path: Path, reason: str):
        SkipwiseError.__init__(
            self,
            f"Store access failed: {path}",
            details={"path": str(path), "reason": reason},
        )
        self.path = path
        self.reason = reason


class SnapshotFormatError(StoreError):
    """Raised when a stored snapshot body is not a valid analysis document."""

    pass


class ConsistencyError(StoreError):
    """Raised when different content is found under an identical content id.

    Never resolved automatically: the store is immutable-by-hash, so this
    signals corruption or a misbehaving concurrent writer.
    """

    def __init__(self, path: Path, key: str):
        super().__init__(path, f"divergent content stored under id {key}")
        self.key = key
