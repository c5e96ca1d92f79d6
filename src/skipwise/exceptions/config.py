"""Configuration-related exceptions."""

from pathlib import Path
from typing import Optional

from .base import SkipwiseError


class ConfigurationError(SkipwiseError):
    """Base class for configuration errors."""

    pass


class InvalidConfigError(ConfigurationError):
    """Raised when a configuration source holds an invalid value."""

    def __init__(self, reason: str, source: Optional[Path] = None):
        details = {"reason": reason}
        if source is not None:
            details["source"] = str(source)
        super().__init__("Invalid configuration", details=details)
        self.reason = reason
        self.source = source
