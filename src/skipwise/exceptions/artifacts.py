"""Exceptions raised while reading sources and compiled artifacts."""

from pathlib import Path

from .base import SkipwiseError


class UnreadableArtifactError(SkipwiseError, OSError):
    """Raised when a source file or compiled artifact cannot be read or parsed.

    Subclasses ``OSError`` so callers treating fingerprinting as plain I/O
    can catch it as ``IOError``.
    """

    def __init__(self, filepath: Path, reason: str):
        SkipwiseError.__init__(
            self,
            f"Cannot fingerprint file: {filepath}",
            details={"filepath": str(filepath), "reason": reason},
        )
        self.filepath = filepath
        self.reason = reason


class UnsupportedArtifactError(UnreadableArtifactError):
    """Raised when no canonicaliser exists for a compiled artifact's format."""

    def __init__(self, filepath: Path, supported_suffixes: list[str]):
        super().__init__(
            filepath, f"unsupported artifact type, expected one of {', '.join(supported_suffixes)}"
        )
        self.supported_suffixes = supported_suffixes
