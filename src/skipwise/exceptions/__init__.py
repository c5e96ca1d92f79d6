"""Exception hierarchy for skipwise."""

from .artifacts import UnreadableArtifactError, UnsupportedArtifactError
from .base import SkipwiseError
from .config import ConfigurationError, InvalidConfigError
from .coverage import MalformedCoverageData
from .storage import ConsistencyError, SnapshotFormatError, StoreError

__all__ = [
    "SkipwiseError",
    "ConfigurationError",
    "InvalidConfigError",
    "UnreadableArtifactError",
    "UnsupportedArtifactError",
    "MalformedCoverageData",
    "StoreError",
    "SnapshotFormatError",
    "ConsistencyError",
]
