"""Fingerprint record."""

from __future__ import annotations

from dataclasses import dataclass

from .units import CompiledUnitId


@dataclass(frozen=True)
class Fingerprint:
    """Content hashes describing one compiled unit's current state.

    ``bytecode_hash`` is computed over the debug-stripped artifact and is the
    only hash the decision engine compares. ``source_hash`` is kept for
    diagnostics (a source edit that leaves the bytecode untouched).
    """

    unit_id: CompiledUnitId
    source_hash: str
    bytecode_hash: str

    def to_dict(self) -> dict[str, str]:
        return {"source": self.source_hash, "bytecode": self.bytecode_hash}

    @classmethod
    def from_dict(cls, unit_id: CompiledUnitId, data: dict[str, str]) -> Fingerprint:
        return cls(unit_id=unit_id, source_hash=data["source"], bytecode_hash=data["bytecode"])
