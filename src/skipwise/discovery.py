"""Unit discovery: where the build tool tells us which units exist.

Walking output directories is the build tool's job. It writes a manifest,
and skipwise reads the ``(unit, source, compiled)`` triples from it.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Protocol

from .exceptions import InvalidConfigError
from .logging_config import get_logger
from .model.units import CompiledUnitId, UnitLocation

logger = get_logger(__name__)


class UnitDiscovery(Protocol):
    def discover(self) -> list[UnitLocation]: ...


class StaticDiscovery:
    """Discovery over a fixed list of locations (embedding and tests)."""

    def __init__(self, locations: list[UnitLocation]) -> None:
        self.locations = list(locations)

    def discover(self) -> list[UnitLocation]:
        return list(self.locations)


class ManifestDiscovery:
    """Reads a JSON manifest of compiled units.

    Format::

        [
          {"unit": "com.example.Foo",
           "source": "src/main/java/com/example/Foo.java",
           "compiled": "build/classes/com/example/Foo.class"}
        ]

    Relative paths are resolved against the manifest's directory.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def discover(self) -> list[UnitLocation]:
        """
        Raises:
            InvalidConfigError: If the manifest is missing or malformed
        """
        try:
            entries = json.loads(self.path.read_text(encoding="utf-8"))
        except OSError as e:
            raise InvalidConfigError(f"cannot read unit manifest: {e.strerror or e}", source=self.path)
        except json.JSONDecodeError as e:
            raise InvalidConfigError(f"unit manifest is not valid JSON: {e}", source=self.path)

        if not isinstance(entries, list):
            raise InvalidConfigError("unit manifest must be a JSON array", source=self.path)

        base = self.path.parent
        locations = []
        for position, entry in enumerate(entries):
            try:
                locations.append(
                    UnitLocation(
                        unit_id=CompiledUnitId(entry["unit"]),
                        source_path=base / entry["source"],
                        compiled_path=base / entry["compiled"],
                    )
                )
            except (KeyError, TypeError, ValueError) as e:
                raise InvalidConfigError(f"invalid manifest entry #{position}: {e!r}", source=self.path)
        logger.debug("Discovered %d units from %s", len(locations), self.path)
        return locations
