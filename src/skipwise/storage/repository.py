"""Repository capability consumed by the build lifecycle and decision engine."""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Protocol

from ..model.analysis import TestImpactAnalysis
from ..model.lookup import Lookup
from ..model.units import CompiledUnitId


class Repository(Protocol):
    """Persistence for snapshots, coverage blobs and per-build staging data.

    Durable content is addressed by the hash of its bytes and never
    overwritten; staging data is keyed by test id and discarded per build.
    """

    # ── durable, content-addressed ────────────────────────────────

    def initialize(self) -> None: ...

    def save_snapshot(self, analysis: TestImpactAnalysis) -> str: ...

    def load_latest_snapshot(self) -> Lookup[TestImpactAnalysis]: ...

    def latest_snapshot_id(self) -> str | None: ...

    def save_coverage_blob(self, blob: bytes) -> str: ...

    def load_coverage_blob(self, blob_id: str) -> Lookup[bytes]: ...

    def has_coverage_blob(self, blob_id: str) -> bool: ...

    def collect_garbage(self, keep_snapshots: int) -> None: ...

    def write_lock(self) -> AbstractContextManager[None]: ...

    # ── per-build staging ─────────────────────────────────────────

    def stage_temporary_blob(self, test_id: CompiledUnitId, blob: bytes) -> None: ...

    def collect_staged_blobs_for_current_build(self) -> list[tuple[CompiledUnitId, bytes]]: ...

    def record_test_failure(self, test_id: CompiledUnitId) -> None: ...

    def collect_failed_tests(self) -> set[CompiledUnitId]: ...

    def clear_staged(self) -> None: ...

    # ── decision audit log ────────────────────────────────────────

    def append_decision(self, line: str) -> None: ...

    def read_decisions(self) -> list[str]: ...

    def clear_decisions(self) -> None: ...

    def write_artifact(self, name: str, payload: bytes) -> None: ...

    def delete_all(self) -> None: ...

    def close(self) -> None: ...
