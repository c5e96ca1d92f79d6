"""Data model: unit ids, fingerprints, coverage records and the analysis snapshot."""

from .analysis import SCHEMA_VERSION, TestImpactAnalysis, merge
from .coverage import CoverageRecord, TestTag
from .fingerprint import Fingerprint
from .lookup import NOT_FOUND, UNAVAILABLE, Found, Lookup, NotFound, Unavailable
from .units import CompiledUnitId, UnitLocation

__all__ = [
    "CompiledUnitId",
    "UnitLocation",
    "Fingerprint",
    "CoverageRecord",
    "TestTag",
    "TestImpactAnalysis",
    "SCHEMA_VERSION",
    "merge",
    "Found",
    "NotFound",
    "Unavailable",
    "Lookup",
    "NOT_FOUND",
    "UNAVAILABLE",
]
