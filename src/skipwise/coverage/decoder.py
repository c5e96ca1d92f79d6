"""Turn raw coverage blobs into coverage records.

Only reachability matters to the decision engine: a unit is covered when at
least one of its probes was hit. Session metadata is discarded before any
comparison or hashing so two runs with identical coverage but different
session ids or timestamps are indistinguishable.
"""

from __future__ import annotations

from typing import Iterable

import numpy as np

from ..exceptions import MalformedCoverageData
from ..model.coverage import CoverageRecord, TestTag
from ..model.units import CompiledUnitId
from .exec_format import ExecutionData, ExecWriter, read_blocks


def execution_records(blob: bytes) -> dict[str, ExecutionData]:
    """Execution records of ``blob`` keyed by normalised unit name.

    Records repeated under one name (concatenated dumps) are merged by
    or-ing their probes; when the probe counts disagree the class was
    recompiled in between and the later record wins.

    Raises:
        MalformedCoverageData: If ``blob`` cannot be decoded
    """
    merged: dict[str, ExecutionData] = {}
    for block in read_blocks(blob):
        if not isinstance(block, ExecutionData):
            continue
        name = block.name.replace("/", ".").strip()
        if not name:
            raise MalformedCoverageData("execution record without a class name")
        previous = merged.get(name)
        if previous is not None and previous.probes.shape == block.probes.shape:
            probes = np.logical_or(previous.probes, block.probes)
        else:
            probes = block.probes
        merged[name] = ExecutionData(block.class_id, name, probes)
    return merged


def covered_unit_names(blob: bytes) -> set[str]:
    """Names of units with at least one hit probe."""
    return {name for name, record in execution_records(blob).items() if record.has_hits}


def decode(blob: bytes, test_id: CompiledUnitId) -> CoverageRecord:
    """Decode the blob one test execution produced.

    The blob does not name the test, so the caller supplies ``test_id``;
    the resulting record always includes the test itself.

    Raises:
        MalformedCoverageData: If ``blob`` cannot be decoded
    """
    covered = {CompiledUnitId(name) for name in covered_unit_names(blob)}
    return CoverageRecord.of(test_id, covered, tags=(TestTag.PASSED,))


def canonicalize(blob: bytes) -> bytes:
    """Re-encode ``blob`` as header plus merged records sorted by name.

    Session info is dropped, so the result is stable across runs and
    suitable as content-store input.
    """
    return _render(execution_records(blob).values())


def merge_blobs(blobs: Iterable[bytes]) -> bytes:
    """Union of several blobs, in canonical form."""
    combined: dict[str, ExecutionData] = {}
    for blob in blobs:
        for name, record in execution_records(blob).items():
            previous = combined.get(name)
            if previous is not None and previous.probes.shape == record.probes.shape:
                record = ExecutionData(
                    record.class_id, name, np.logical_or(previous.probes, record.probes)
                )
            combined[name] = record
    return _render(combined.values())


def _render(records: Iterable[ExecutionData]) -> bytes:
    writer = ExecWriter()
    for record in sorted(records, key=lambda r: r.name):
        writer.execution(record.class_id, record.name, record.probes)
    return writer.to_bytes()
