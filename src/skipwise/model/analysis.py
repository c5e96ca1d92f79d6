"""The persisted Test Impact Analysis: fingerprints plus per-test coverage.

The canonical serialisation is compact JSON with sorted keys and sorted
lists, so equal models always produce byte-identical bodies and therefore the
same content id.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping

from ..exceptions import SnapshotFormatError
from .coverage import CoverageRecord
from .fingerprint import Fingerprint
from .lookup import NOT_FOUND, Found, Lookup, NotFound, Unavailable
from .units import CompiledUnitId

SCHEMA_VERSION = 1

# Reported as the path of format errors raised before a file is involved.
_SNAPSHOT_PATH = Path("<snapshot>")


@dataclass(frozen=True)
class TestImpactAnalysis:
    """Immutable snapshot of what every analysed test covers."""

    __test__ = False

    fingerprints: Mapping[CompiledUnitId, Fingerprint] = field(default_factory=dict)
    coverage: Mapping[CompiledUnitId, CoverageRecord] = field(default_factory=dict)

    # ── queries ───────────────────────────────────────────────────

    def coverage_for(self, test_id: CompiledUnitId) -> Lookup[CoverageRecord]:
        record = self.coverage.get(test_id)
        return NOT_FOUND if record is None else Found(record)

    def fingerprint_for(self, unit_id: CompiledUnitId) -> Lookup[Fingerprint]:
        fingerprint = self.fingerprints.get(unit_id)
        return NOT_FOUND if fingerprint is None else Found(fingerprint)

    def blob_ids(self) -> set[str]:
        """Content ids of every coverage blob this snapshot references."""
        return {record.blob_id for record in self.coverage.values() if record.blob_id}

    # ── identity & serialisation ──────────────────────────────────

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": SCHEMA_VERSION,
            "fingerprints": {
                unit.name: fp.to_dict() for unit, fp in sorted(self.fingerprints.items())
            },
            "coverage": {
                test.name: record.to_dict() for test, record in sorted(self.coverage.items())
            },
        }

    def to_json(self) -> bytes:
        """Canonical UTF-8 body used both for storage and for the content id."""
        return json.dumps(
            self.to_dict(), sort_keys=True, separators=(",", ":"), ensure_ascii=False
        ).encode("utf-8")

    @property
    def content_id(self) -> str:
        return hashlib.sha256(self.to_json()).hexdigest()

    @classmethod
    def from_json(cls, body: bytes) -> TestImpactAnalysis:
        """Parse a stored body.

        Raises:
            SnapshotFormatError: If the body is not a valid analysis document
        """
        try:
            data = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise SnapshotFormatError(_SNAPSHOT_PATH, f"invalid JSON: {e}")
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Any) -> TestImpactAnalysis:
        if not isinstance(data, dict):
            raise SnapshotFormatError(_SNAPSHOT_PATH, "top-level value must be an object")
        version = data.get("schema_version")
        if version != SCHEMA_VERSION:
            raise SnapshotFormatError(_SNAPSHOT_PATH, f"unsupported schema_version {version!r}")
        try:
            fingerprints = {}
            for name, entry in data["fingerprints"].items():
                unit = CompiledUnitId(name)
                fingerprints[unit] = Fingerprint.from_dict(unit, entry)
            coverage = {}
            for name, entry in data["coverage"].items():
                test = CompiledUnitId(name)
                coverage[test] = CoverageRecord.from_dict(test, entry)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise SnapshotFormatError(_SNAPSHOT_PATH, f"malformed entry: {e!r}")
        return cls(fingerprints=fingerprints, coverage=coverage)


def merge(
    previous: TestImpactAnalysis | Unavailable | NotFound,
    fresh_fingerprints: Mapping[CompiledUnitId, Fingerprint],
    new_coverage: Mapping[CompiledUnitId, CoverageRecord],
    invalidated: Iterable[CompiledUnitId] = (),
) -> TestImpactAnalysis:
    """Fold one build's observations into the previous analysis.

    - the fingerprint table is replaced by ``fresh_fingerprints``;
    - executed tests (keys of ``new_coverage``) get their record replaced;
    - skipped tests keep their previous record;
    - tests in ``invalidated`` executed without usable coverage and lose
      their record, which forces them to run next build;
    - tests that unit discovery no longer reports are dropped.
    """
    base = previous.coverage if isinstance(previous, TestImpactAnalysis) else {}
    dropped = set(invalidated)

    coverage: dict[CompiledUnitId, CoverageRecord] = {
        test: record for test, record in base.items() if test not in dropped
    }
    coverage.update(new_coverage)
    coverage = {test: record for test, record in coverage.items() if test in fresh_fingerprints}

    return TestImpactAnalysis(fingerprints=dict(fresh_fingerprints), coverage=coverage)
