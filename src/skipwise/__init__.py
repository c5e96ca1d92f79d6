"""
skipwise - predictive test selection

Fingerprints compiled units while ignoring debug-only changes, records which
units every test covers, and skips a test when neither it nor anything it
covered changed since the last build.
"""

__version__ = "0.1.0"

from .config import SkipwiseConfig, load_config
from .decision import Decision, Outcome, Reason
from .discovery import ManifestDiscovery, StaticDiscovery, UnitDiscovery
from .lifecycle import Build, create_build
from .model import CompiledUnitId, TestImpactAnalysis, UnitLocation

__all__ = [
    "create_build",  # Main entry point
    "Build",
    "ManifestDiscovery",
    "StaticDiscovery",
    "UnitDiscovery",
    "SkipwiseConfig",
    "load_config",
    "Decision",
    "Outcome",
    "Reason",
    "CompiledUnitId",
    "UnitLocation",
    "TestImpactAnalysis",
]
