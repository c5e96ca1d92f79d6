"""Per-test coverage records."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Optional

from .units import CompiledUnitId


class TestTag(Enum):
    """Outcome markers attached to a test's coverage record."""

    __test__ = False

    PASSED = "PASSED"
    FAILED = "FAILED"
    ALWAYS_EXECUTE = "ALWAYS_EXECUTE"


@dataclass(frozen=True)
class CoverageRecord:
    """The units one test execution was observed to reach.

    The test's own unit is always part of ``covered_units``.
    """

    __test__ = False

    test_id: CompiledUnitId
    covered_units: frozenset[CompiledUnitId]
    tags: frozenset[TestTag] = frozenset({TestTag.PASSED})
    blob_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.test_id not in self.covered_units:
            object.__setattr__(self, "covered_units", self.covered_units | {self.test_id})

    @classmethod
    def of(
        cls,
        test_id: CompiledUnitId,
        covered: Iterable[CompiledUnitId],
        tags: Iterable[TestTag] = (TestTag.PASSED,),
        blob_id: Optional[str] = None,
    ) -> CoverageRecord:
        return cls(test_id, frozenset(covered), frozenset(tags), blob_id)

    def with_tags(self, tags: Iterable[TestTag]) -> CoverageRecord:
        return CoverageRecord(self.test_id, self.covered_units, frozenset(tags), self.blob_id)

    def restricted_to(self, known: Iterable[CompiledUnitId]) -> CoverageRecord:
        """Drop covered units outside ``known`` (the test itself always stays)."""
        keep = self.covered_units.intersection(known) | {self.test_id}
        return CoverageRecord(self.test_id, frozenset(keep), self.tags, self.blob_id)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "covered": sorted(unit.name for unit in self.covered_units),
            "tags": sorted(tag.value for tag in self.tags),
        }
        if self.blob_id is not None:
            data["blob"] = self.blob_id
        return data

    @classmethod
    def from_dict(cls, test_id: CompiledUnitId, data: dict[str, Any]) -> CoverageRecord:
        return cls(
            test_id=test_id,
            covered_units=frozenset(CompiledUnitId(name) for name in data["covered"]),
            tags=frozenset(TestTag(tag) for tag in data.get("tags", [TestTag.PASSED.value])),
            blob_id=data.get("blob"),
        )
