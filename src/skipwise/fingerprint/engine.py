"""Fingerprint engine: source and debug-agnostic bytecode hashes per unit."""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Callable, Optional

from ..cache import FingerprintCache
from ..exceptions import UnreadableArtifactError, UnsupportedArtifactError
from ..logging_config import get_logger
from ..model.fingerprint import Fingerprint
from ..model.units import UnitLocation
from .classfile import ClassFileFormatError, canonicalize_class_file
from .pyc import PycFormatError, canonicalize_pyc

logger = get_logger(__name__)

Canonicalizer = Callable[[bytes], bytes]

CANONICALIZERS: dict[str, Canonicalizer] = {
    ".class": canonicalize_class_file,
    ".pyc": canonicalize_pyc,
}


def md5_hex(data: bytes) -> str:
    """128-bit digest rendered as 32 lowercase hex characters."""
    return hashlib.md5(data, usedforsecurity=False).hexdigest()


class FingerprintEngine:
    """Computes :class:`Fingerprint` records from files on disk.

    Every call reads both files; the optional cache only memoises the
    canonicalisation step, keyed by the raw artifact bytes.
    """

    def __init__(self, cache: Optional[FingerprintCache] = None) -> None:
        self.cache = cache

    def fingerprint(self, location: UnitLocation) -> Fingerprint:
        """Fingerprint one unit.

        Raises:
            UnreadableArtifactError: If the source or artifact is unreadable
                or the artifact cannot be parsed
        """
        return Fingerprint(
            unit_id=location.unit_id,
            source_hash=self.source_hash(location.source_path),
            bytecode_hash=self.bytecode_hash(location.compiled_path),
        )

    def source_hash(self, path: Path) -> str:
        return md5_hex(_read(path))

    def bytecode_hash(self, path: Path) -> str:
        path = Path(path)
        suffix = path.suffix.lower()
        canonicalize = CANONICALIZERS.get(suffix)
        if canonicalize is None:
            raise UnsupportedArtifactError(path, sorted(CANONICALIZERS))

        raw = _read(path)
        key = FingerprintCache.key_for(suffix, raw) if self.cache is not None else None
        if key is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        try:
            digest = md5_hex(canonicalize(raw))
        except (ClassFileFormatError, PycFormatError) as e:
            raise UnreadableArtifactError(path, str(e))

        if key is not None:
            self.cache.set(key, digest)
        return digest


def _read(path: Path) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as e:
        raise UnreadableArtifactError(Path(path), e.strerror or str(e))
