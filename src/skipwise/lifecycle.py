"""Build lifecycle: the explicit context object one build runs against.

Typical use from a test-runner integration::

    build = create_build(project_dir, ManifestDiscovery(manifest))
    build.on_build_started()
    for test in tests:
        if build.should_execute(test):
            run(test)
            build.record_coverage(test, coverage_bytes)
    snapshot_id = build.on_build_finished()

Every hook only touches state reachable from the ``Build`` instance or the
store directory, so separate processes (e.g. CLI invocations) can drive the
same build.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from .cache import FingerprintCache
from .config import SkipwiseConfig, load_config
from .coverage import canonicalize, decode, merge_blobs
from .decision import Decision, DecisionEngine, DecisionPolicy, Outcome, Reason, resolve_policy
from .discovery import UnitDiscovery
from .exceptions import ConsistencyError, MalformedCoverageData, SnapshotFormatError, StoreError
from .fingerprint import FingerprintEngine, FingerprintTable
from .logging_config import get_logger
from .model import (
    UNAVAILABLE,
    CompiledUnitId,
    CoverageRecord,
    Found,
    Lookup,
    TestImpactAnalysis,
    TestTag,
    merge,
)
from .storage import FileSystemRepository, Repository

logger = get_logger(__name__)

# Written into the store when coverage for skipped tests is enabled.
SKIPPED_COVERAGE_FILE = "skipped-tests.exec"


class Build:
    """State of one build, from ``on_build_started`` to ``on_build_finished``."""

    def __init__(
        self,
        project_dir: Path,
        discovery: UnitDiscovery,
        config: SkipwiseConfig,
        repository: Repository,
        policy: DecisionPolicy,
    ) -> None:
        self.project_dir = Path(project_dir)
        self.discovery = discovery
        self.config = config
        self.repository = repository
        self.policy = policy
        self._cache: Optional[FingerprintCache] = None
        self._fingerprints: Optional[FingerprintTable] = None
        self._snapshot: Lookup[TestImpactAnalysis] = UNAVAILABLE
        self._snapshot_id: Optional[str] = None
        self._decisions: Optional[DecisionEngine] = None

    # ── hooks ─────────────────────────────────────────────────────

    def on_build_started(self) -> None:
        """Reset per-build staging and load the previous analysis."""
        self.repository.clear_staged()
        self.repository.clear_decisions()
        self._load()

    def should_execute(self, test_id: CompiledUnitId | str) -> bool:
        return self.decide(test_id).should_execute

    def decide(self, test_id: CompiledUnitId | str) -> Decision:
        """Decision for one test; store or discovery I/O failures mean EXECUTE.

        Raises:
            ConsistencyError: If the store holds divergent content for an id
        """
        unit_id = _as_unit_id(test_id)
        try:
            return self._engine().decide(unit_id)
        except ConsistencyError:
            raise
        except OSError as e:
            logger.warning("Executing %s, build context unavailable: %s", unit_id, e)
            return Decision.execute(unit_id, Reason.INTERNAL_ERROR, str(e))

    def record_coverage(self, test_id: CompiledUnitId | str, blob: bytes) -> None:
        """Stage the coverage one test execution produced."""
        self.repository.stage_temporary_blob(_as_unit_id(test_id), blob)

    def record_test_failure(self, test_id: CompiledUnitId | str) -> None:
        """Mark a test as failed; it will be executed again next build."""
        self.repository.record_test_failure(_as_unit_id(test_id))

    def on_build_finished(self) -> str:
        """Merge this build's coverage into a new snapshot and persist it.

        Returns:
            Content id of the saved snapshot

        Raises:
            ConsistencyError: If the store holds divergent content for an id
            StoreError: If the store cannot be written
        """
        self._engine()
        fingerprints = self._fingerprints
        assert fingerprints is not None

        fresh = fingerprints.all()
        staged = self.repository.collect_staged_blobs_for_current_build()
        failed = self.repository.collect_failed_tests()
        decisions = self._logged_decisions()

        new_coverage: dict[CompiledUnitId, CoverageRecord] = {}
        canonical_blobs: dict[CompiledUnitId, bytes] = {}
        invalidated: set[CompiledUnitId] = set()

        for test_id, blob in staged:
            try:
                record = decode(blob, test_id)
                if self.config.coverage_for_skipped_tests:
                    canonical_blobs[test_id] = canonicalize(blob)
            except MalformedCoverageData as e:
                logger.warning("Discarding coverage of %s: %s", test_id, e)
                invalidated.add(test_id)
                continue
            if self.config.restrict_coverage_to_project_units:
                record = record.restricted_to(fingerprints.unit_ids)
            new_coverage[test_id] = record

        executed_without_coverage = {
            test_id
            for test_id, decision in decisions.items()
            if decision.outcome is Outcome.EXECUTE and test_id not in new_coverage
        }
        invalidated |= (failed | executed_without_coverage) - new_coverage.keys()

        for test_id, record in list(new_coverage.items()):
            tags = {TestTag.FAILED} if test_id in failed else {TestTag.PASSED}
            if self.policy.always_executes(test_id):
                tags.add(TestTag.ALWAYS_EXECUTE)
            new_coverage[test_id] = record.with_tags(tags)

        with self.repository.write_lock():
            latest = self.repository.latest_snapshot_id()
            if latest != self._snapshot_id:
                logger.warning(
                    "Snapshot changed during the build (%s -> %s); this build's result replaces it",
                    self._snapshot_id,
                    latest,
                )

            for test_id, canonical in canonical_blobs.items():
                blob_id = self.repository.save_coverage_blob(canonical)
                record = new_coverage.get(test_id)
                if record is not None:
                    new_coverage[test_id] = CoverageRecord(
                        record.test_id, record.covered_units, record.tags, blob_id
                    )

            previous = self._snapshot.value if isinstance(self._snapshot, Found) else UNAVAILABLE
            analysis = merge(previous, fresh, new_coverage, invalidated)
            snapshot_id = self.repository.save_snapshot(analysis)
            self.repository.collect_garbage(self.config.keep_snapshots)

        if self.config.coverage_for_skipped_tests:
            self._write_skipped_coverage(analysis, decisions)

        self.repository.clear_staged()
        logger.info(
            "Saved snapshot %s: %d tests recorded, %d invalidated",
            snapshot_id[:12],
            len(new_coverage),
            len(invalidated),
        )
        self._snapshot = Found(analysis)
        self._snapshot_id = snapshot_id
        return snapshot_id

    def clean(self) -> None:
        """Delete the whole store, including the fingerprint cache."""
        self.close()
        self.repository.delete_all()

    def close(self) -> None:
        if self._cache is not None:
            self._cache.close()
            self._cache = None
        self.repository.close()

    # ── internals ─────────────────────────────────────────────────

    @property
    def snapshot(self) -> Lookup[TestImpactAnalysis]:
        self._engine()
        return self._snapshot

    @property
    def fingerprints(self) -> FingerprintTable:
        self._engine()
        assert self._fingerprints is not None
        return self._fingerprints

    def _engine(self) -> DecisionEngine:
        if self._decisions is None:
            self._load()
        assert self._decisions is not None
        return self._decisions

    def _load(self) -> None:
        if self._cache is None:
            self._cache = FingerprintCache(
                self.config.cache_path(self.project_dir), enabled=self.config.cache_enabled
            )
        self._fingerprints = FingerprintTable(
            self.discovery.discover(), FingerprintEngine(self._cache)
        )
        self._snapshot_id = None
        try:
            self.repository.initialize()
            self._snapshot_id = self.repository.latest_snapshot_id()
            self._snapshot = self.repository.load_latest_snapshot()
        except ConsistencyError:
            raise
        except SnapshotFormatError as e:
            logger.warning("Ignoring unreadable snapshot %s: %s", self._snapshot_id, e)
            self._snapshot = UNAVAILABLE
        except StoreError as e:
            logger.warning("Store unavailable, every test will run: %s", e)
            self._snapshot = UNAVAILABLE
        self._decisions = DecisionEngine(
            snapshot=self._snapshot,
            fingerprints=self._fingerprints,
            repository=self.repository,
            policy=self.policy,
            coverage_for_skipped_tests=self.config.coverage_for_skipped_tests,
        )

    def _logged_decisions(self) -> dict[CompiledUnitId, Decision]:
        """Decisions of this build, including those made by other processes."""
        decisions: dict[CompiledUnitId, Decision] = {}
        for line in self.repository.read_decisions():
            try:
                decision = Decision.from_log_line(line)
            except ValueError:
                logger.debug("Ignoring audit log line %r", line)
                continue
            decisions.setdefault(decision.test_id, decision)
        if self._decisions is not None:
            decisions.update(self._decisions.decisions)
        return decisions

    def _write_skipped_coverage(
        self, analysis: TestImpactAnalysis, decisions: dict[CompiledUnitId, Decision]
    ) -> None:
        """Combine the stored blobs of skipped tests into one coverage file."""
        blobs = []
        for test_id, decision in sorted(decisions.items()):
            if decision.should_execute:
                continue
            record = analysis.coverage_for(test_id)
            if not isinstance(record, Found) or record.value.blob_id is None:
                continue
            blob = self.repository.load_coverage_blob(record.value.blob_id)
            if isinstance(blob, Found):
                blobs.append(blob.value)
            else:
                logger.warning("Coverage blob of skipped test %s is missing", test_id)
        self.repository.write_artifact(SKIPPED_COVERAGE_FILE, merge_blobs(blobs))


def create_build(
    project_dir: Path,
    discovery: UnitDiscovery,
    config: Optional[SkipwiseConfig] = None,
) -> Build:
    """Wire a :class:`Build` from configuration.

    Raises:
        InvalidConfigError: If configuration is invalid
    """
    project_dir = Path(project_dir)
    if config is None:
        config = load_config(project_dir=project_dir)
    repository = FileSystemRepository(
        config.store_path(project_dir), lock_expire_seconds=config.lock_expire_seconds
    )
    return Build(project_dir, discovery, config, repository, resolve_policy(config))


def _as_unit_id(test_id: CompiledUnitId | str) -> CompiledUnitId:
    return test_id if isinstance(test_id, CompiledUnitId) else CompiledUnitId(test_id)
