"""Identity of compiled units and their on-disk locations."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True, order=True)
class CompiledUnitId:
    """Fully-qualified name of a compiled unit (e.g. ``com.example.Foo``).

    Internal-form names (``com/example/Foo``) are normalised on construction
    so ids coming from class files, coverage data and manifests compare equal.
    """

    name: str

    def __post_init__(self) -> None:
        normalised = self.name.replace("/", ".").strip()
        if not normalised:
            raise ValueError("compiled unit id must not be empty")
        object.__setattr__(self, "name", normalised)

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class UnitLocation:
    """One entry reported by unit discovery: a unit, its source and its artifact."""

    unit_id: CompiledUnitId
    source_path: Path
    compiled_path: Path
