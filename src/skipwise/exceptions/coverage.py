"""Coverage data exceptions."""

from typing import Optional

from .base import SkipwiseError


class MalformedCoverageData(SkipwiseError):
    """Raised when a coverage blob cannot be decoded.

    A corrupt blob is never fatal to a build: the test it belongs to simply
    loses its coverage and is executed next time.
    """

    def __init__(self, reason: str, offset: Optional[int] = None):
        details = {"reason": reason}
        if offset is not None:
            details["offset"] = str(offset)
        super().__init__("Malformed coverage data", details=details)
        self.reason = reason
        self.offset = offset
