"""
Fingerprint cache for skipwise.

Uses diskcache for SQLite-based persistent caching of canonical bytecode
hashes. Keys are derived from the *raw* artifact bytes, so an artifact is
always read from disk and only the canonicalisation is skipped on a hit.
"""

import hashlib
from pathlib import Path
from typing import Any, Optional

from diskcache import Cache

from .logging_config import get_logger

logger = get_logger(__name__)

# Bump when a canonicaliser changes so stale hashes are never reused.
CANONICAL_FORM_VERSION = "2"


class FingerprintCache:
    """
    Persistent memo of ``raw artifact digest -> canonical bytecode hash``.

    Cache failures never fail a build; they are logged and treated as misses.
    """

    def __init__(self, cache_dir: Path, enabled: bool = True):
        """
        Initialize cache.

        Args:
            cache_dir: Directory for cache storage
            enabled: Whether caching is enabled
        """
        self.enabled = enabled
        self.directory = Path(cache_dir)
        self.cache: Optional[Cache] = None

        if self.enabled:
            try:
                self.cache = Cache(str(self.directory))
                logger.debug("Fingerprint cache initialized at %s", self.directory)
            except Exception as e:
                logger.warning("Fingerprint cache unavailable at %s: %s", self.directory, e)
                self.enabled = False
        else:
            logger.debug("Fingerprint cache disabled")

    @staticmethod
    def key_for(suffix: str, raw: bytes) -> str:
        """Cache key for an artifact of type ``suffix`` with content ``raw``."""
        digest = hashlib.sha256(raw).hexdigest()
        return f"{CANONICAL_FORM_VERSION}:{suffix}:{digest}"

    def get(self, key: str) -> Optional[str]:
        if not self.enabled or self.cache is None:
            return None

        try:
            value = self.cache.get(key)
            if value is not None:
                logger.debug("Fingerprint cache hit: %s...", key[:24])
            return value
        except Exception as e:
            logger.warning("Fingerprint cache get failed: %s", e)
            return None

    def set(self, key: str, value: str) -> None:
        if not self.enabled or self.cache is None:
            return

        try:
            self.cache.set(key, value)
        except Exception as e:
            logger.warning("Fingerprint cache set failed: %s", e)

    def clear(self) -> None:
        """Clear all cache entries."""
        if not self.enabled or self.cache is None:
            return

        try:
            self.cache.clear()
            logger.info("Fingerprint cache cleared")
        except Exception as e:
            logger.warning("Fingerprint cache clear failed: %s", e)

    def stats(self) -> dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dictionary with cache stats
        """
        if not self.enabled or self.cache is None:
            return {"enabled": False}

        try:
            return {
                "enabled": True,
                "size": len(self.cache),
                "directory": self.cache.directory,
                "volume": self.cache.volume(),
            }
        except Exception as e:
            logger.warning("Fingerprint cache stats failed: %s", e)
            return {"enabled": True, "error": str(e)}

    def close(self) -> None:
        """Close cache (cleanup)."""
        if self.cache is not None:
            self.cache.close()
