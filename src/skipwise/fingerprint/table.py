"""Per-build fingerprint table over the units reported by discovery."""

from __future__ import annotations

import threading
from typing import Iterable

from ..exceptions import UnreadableArtifactError
from ..logging_config import get_logger
from ..model.fingerprint import Fingerprint
from ..model.lookup import NOT_FOUND, Found, Lookup
from ..model.units import CompiledUnitId, UnitLocation
from .engine import FingerprintEngine

logger = get_logger(__name__)


class FingerprintTable:
    """Lazily computed, memoised fingerprints for one build.

    Safe to query from several test worker threads. The table lives only as
    long as the build context that owns it.
    """

    def __init__(self, locations: Iterable[UnitLocation], engine: FingerprintEngine) -> None:
        self._locations: dict[CompiledUnitId, UnitLocation] = {}
        for location in locations:
            if location.unit_id in self._locations:
                logger.warning("Unit %s reported more than once; keeping the first", location.unit_id)
                continue
            self._locations[location.unit_id] = location
        self._engine = engine
        self._lock = threading.Lock()
        self._computed: dict[CompiledUnitId, Fingerprint] = {}

    def __contains__(self, unit_id: object) -> bool:
        return unit_id in self._locations

    def __len__(self) -> int:
        return len(self._locations)

    @property
    def unit_ids(self) -> frozenset[CompiledUnitId]:
        return frozenset(self._locations)

    def get(self, unit_id: CompiledUnitId) -> Lookup[Fingerprint]:
        """Fingerprint of ``unit_id``, or ``NOT_FOUND`` if discovery did not report it.

        Raises:
            UnreadableArtifactError: If the unit's files cannot be read
        """
        location = self._locations.get(unit_id)
        if location is None:
            return NOT_FOUND
        with self._lock:
            known = self._computed.get(unit_id)
        if known is not None:
            return Found(known)
        fingerprint = self._engine.fingerprint(location)
        with self._lock:
            return Found(self._computed.setdefault(unit_id, fingerprint))

    def all(self) -> dict[CompiledUnitId, Fingerprint]:
        """Fingerprints of every readable unit.

        Unreadable units are left out and logged; a missing fingerprint makes
        every test that covers the unit execute next build.
        """
        result: dict[CompiledUnitId, Fingerprint] = {}
        for unit_id in sorted(self._locations):
            try:
                found = self.get(unit_id)
            except UnreadableArtifactError as e:
                logger.warning("Leaving %s out of the analysis: %s", unit_id, e)
                continue
            if isinstance(found, Found):
                result[unit_id] = found.value
        return result
