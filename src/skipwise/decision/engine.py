"""The skip/execute decision algorithm.

Rules are evaluated in order and the first match supplies the reason.
Anything uncertain resolves to EXECUTE; only a test whose own bytecode and
the bytecode of every unit it covered are unchanged is skipped.
"""

from __future__ import annotations

import threading
from typing import Optional

from ..fingerprint.table import FingerprintTable
from ..logging_config import get_logger
from ..model.analysis import TestImpactAnalysis
from ..model.coverage import CoverageRecord, TestTag
from ..model.fingerprint import Fingerprint
from ..model.lookup import Found, Lookup
from ..model.units import CompiledUnitId
from ..storage.repository import Repository
from .policy import DecisionPolicy, PassThroughPolicy
from .reasons import Decision, Reason

logger = get_logger(__name__)


class DecisionEngine:
    """Answers ``should_execute`` once per test for the lifetime of a build.

    Decisions are memoised, so asking again for the same test returns the
    first answer without touching the filesystem or the audit log.
    """

    def __init__(
        self,
        snapshot: Lookup[TestImpactAnalysis],
        fingerprints: FingerprintTable,
        repository: Optional[Repository] = None,
        policy: Optional[DecisionPolicy] = None,
        coverage_for_skipped_tests: bool = False,
    ) -> None:
        self.snapshot = snapshot
        self.fingerprints = fingerprints
        self.repository = repository
        self.policy = policy or PassThroughPolicy()
        self.coverage_for_skipped_tests = coverage_for_skipped_tests
        self._lock = threading.Lock()
        self._decisions: dict[CompiledUnitId, Decision] = {}

    @property
    def decisions(self) -> dict[CompiledUnitId, Decision]:
        """Copy of every decision made so far."""
        with self._lock:
            return dict(self._decisions)

    def should_execute(self, test_id: CompiledUnitId) -> bool:
        return self.decide(test_id).should_execute

    def decide(self, test_id: CompiledUnitId) -> Decision:
        with self._lock:
            known = self._decisions.get(test_id)
        if known is not None:
            return known

        try:
            decision = self._evaluate(test_id)
        except OSError as e:
            logger.warning("Executing %s, decision failed: %s", test_id, e)
            decision = Decision.execute(test_id, Reason.INTERNAL_ERROR, str(e))
        decision = self.policy.apply(decision)

        with self._lock:
            first = test_id not in self._decisions
            decision = self._decisions.setdefault(test_id, decision)
        if first:
            logger.debug("%s: %s (%s)", test_id, decision.outcome.value, decision.reason.value)
            self._audit(decision)
        return decision

    def _evaluate(self, test_id: CompiledUnitId) -> Decision:
        if not isinstance(self.snapshot, Found):
            return Decision.execute(test_id, Reason.NO_PRIOR_ANALYSIS)
        analysis = self.snapshot.value

        record = analysis.coverage_for(test_id)
        if not isinstance(record, Found):
            return Decision.execute(test_id, Reason.NO_COVERAGE_FOR_TEST)
        coverage = record.value

        if TestTag.FAILED in coverage.tags:
            return Decision.execute(test_id, Reason.TEST_FAILED_PREVIOUSLY)
        if TestTag.ALWAYS_EXECUTE in coverage.tags:
            return Decision.execute(test_id, Reason.TEST_TAGGED_AS_ALWAYS_EXECUTE)

        covered = sorted(coverage.covered_units - {test_id})
        # Nested tests cover their enclosing test, so its tags carry over.
        covered_tests = []
        for unit in covered:
            found = analysis.coverage_for(unit)
            if isinstance(found, Found):
                covered_tests.append((unit, found.value.tags))
        for tag, reason in _COVERED_TEST_TAGS:
            for unit, tags in covered_tests:
                if tag in tags:
                    return Decision.execute(test_id, reason, f"covered test: {unit.name}")

        pair = self._fingerprint_pair(analysis, test_id)
        if pair is None:
            return Decision.execute(test_id, Reason.NO_FINGERPRINT_FOR_TEST)
        if _changed(*pair):
            return Decision.execute(test_id, Reason.TEST_BYTECODE_CHANGED)

        pairs = {}
        for unit in covered:
            pair = self._fingerprint_pair(analysis, unit)
            if pair is None:
                return Decision.execute(test_id, Reason.NO_FINGERPRINT_FOR_COVERED_UNIT, unit.name)
            pairs[unit] = pair
        for unit in covered:
            if _changed(*pairs[unit]):
                return Decision.execute(test_id, Reason.COVERED_UNIT_BYTECODE_CHANGED, unit.name)

        if self.coverage_for_skipped_tests and not self._has_blob(coverage):
            return Decision.execute(test_id, Reason.MISSING_COVERAGE_BLOB)

        return Decision.skip(test_id)

    def _fingerprint_pair(
        self, analysis: TestImpactAnalysis, unit: CompiledUnitId
    ) -> Optional[tuple[Fingerprint, Fingerprint]]:
        stored = analysis.fingerprint_for(unit)
        if not isinstance(stored, Found):
            return None
        current = self.fingerprints.get(unit)
        if not isinstance(current, Found):
            return None
        return stored.value, current.value

    def _has_blob(self, coverage: CoverageRecord) -> bool:
        if coverage.blob_id is None or self.repository is None:
            return False
        return self.repository.has_coverage_blob(coverage.blob_id)

    def _audit(self, decision: Decision) -> None:
        if self.repository is None:
            return
        try:
            self.repository.append_decision(decision.to_log_line())
        except OSError as e:
            logger.debug("Could not record decision for %s: %s", decision.test_id, e)


_COVERED_TEST_TAGS = (
    (TestTag.FAILED, Reason.COVERED_TEST_TAGGED_AS_FAILED),
    (TestTag.ALWAYS_EXECUTE, Reason.COVERED_TEST_TAGGED_AS_ALWAYS_EXECUTE),
)


def _changed(stored: Fingerprint, current: Fingerprint) -> bool:
    return stored.bytecode_hash != current.bytecode_hash
