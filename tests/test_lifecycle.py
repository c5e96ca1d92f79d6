"""End-to-end build scenarios against a fake project on disk."""

import pytest

from skipwise.config import SkipwiseConfig
from skipwise.coverage import execution_records
from skipwise.decision import Reason
from skipwise.lifecycle import SKIPPED_COVERAGE_FILE, create_build
from skipwise.model import CompiledUnitId, Found, TestTag
from skipwise.storage import FileSystemRepository, content_id

FOO = CompiledUnitId("com.example.Foo")
BAR = CompiledUnitId("com.example.Bar")
FOO_TEST = CompiledUnitId("com.example.FooTest")
BAR_TEST = CompiledUnitId("com.example.BarTest")


class UnreadableDiscovery:
    """Discovery whose unit list cannot be read."""

    def discover(self):
        raise PermissionError("manifest locked")


@pytest.fixture
def sample(project):
    """Two production classes, each with one test."""
    for name in ("com.example.Foo", "com.example.Bar", "com.example.FooTest", "com.example.BarTest"):
        project.add_unit(name)
    return project


def coverage(exec_blob):
    return {
        FOO_TEST: exec_blob(
            {
                "com/example/FooTest": [True],
                "com/example/Foo": [True, False],
                "org/junit/Assert": [True],
            }
        ),
        BAR_TEST: exec_blob({"com/example/BarTest": [True], "com/example/Bar": [True]}),
    }


def run_build(project, blobs, failed=(), **config):
    """Drive one build like a test runner would; return the decisions."""
    build = project.build(**config)
    try:
        build.on_build_started()
        decisions = {}
        for test, blob in blobs.items():
            decision = build.decide(test)
            decisions[test] = decision
            if decision.should_execute:
                if blob is not None:
                    build.record_coverage(test, blob)
                if test in failed:
                    build.record_test_failure(test)
        build.on_build_finished()
    finally:
        build.close()
    return decisions


def latest(project):
    repository = FileSystemRepository(project.store)
    try:
        snapshot = repository.load_latest_snapshot()
    finally:
        repository.close()
    assert isinstance(snapshot, Found)
    return snapshot.value


def reasons(decisions):
    return {test: decision.reason for test, decision in decisions.items()}


class TestBasicScenarios:
    """First build, unchanged rebuild and a change to a covered unit."""

    def test_first_build_executes_everything(self, sample, exec_blob):
        """Without a snapshot every test runs and a snapshot is written."""
        decisions = run_build(sample, coverage(exec_blob))
        assert set(reasons(decisions).values()) == {Reason.NO_PRIOR_ANALYSIS}
        analysis = latest(sample)
        assert analysis.coverage[FOO_TEST].covered_units == {FOO, FOO_TEST}
        assert set(analysis.fingerprints) == {FOO, BAR, FOO_TEST, BAR_TEST}

    def test_unchanged_rebuild_skips_everything(self, sample, exec_blob):
        """A second build without changes skips every test and rewrites the same snapshot."""
        run_build(sample, coverage(exec_blob))
        first = (sample.store / "LATEST").read_text()
        decisions = run_build(sample, coverage(exec_blob))
        assert reasons(decisions) == {FOO_TEST: Reason.NO_CHANGE, BAR_TEST: Reason.NO_CHANGE}
        assert (sample.store / "LATEST").read_text() == first

    def test_changed_unit_runs_its_tests_only(self, sample, exec_blob):
        """Only tests covering the changed unit run."""
        run_build(sample, coverage(exec_blob))
        sample.add_unit("com.example.Foo", code=b"\x03\x57\xb1")
        decisions = run_build(sample, coverage(exec_blob))
        assert decisions[FOO_TEST].reason is Reason.COVERED_UNIT_BYTECODE_CHANGED
        assert decisions[FOO_TEST].detail == "com.example.Foo"
        assert decisions[BAR_TEST].reason is Reason.NO_CHANGE

    def test_debug_only_change_skips(self, sample, exec_blob):
        """Comment edits that only move line numbers do not force execution."""
        run_build(sample, coverage(exec_blob))
        sample.edit_source("com.example.Foo", "// a comment\nclass Foo {}\n")
        sample.add_unit("com.example.Foo", line=11)
        decisions = run_build(sample, coverage(exec_blob))
        assert decisions[FOO_TEST].reason is Reason.NO_CHANGE

    def test_skipped_tests_keep_their_coverage(self, sample, exec_blob):
        """The record of a skipped test survives the merge unchanged."""
        run_build(sample, coverage(exec_blob))
        before = latest(sample).coverage[BAR_TEST]
        sample.add_unit("com.example.Foo", code=b"\x03\x57\xb1")
        run_build(sample, coverage(exec_blob))
        assert latest(sample).coverage[BAR_TEST] == before

    def test_new_test_runs(self, sample, exec_blob):
        """A test added after the last snapshot has no coverage yet."""
        run_build(sample, coverage(exec_blob))
        sample.add_unit("com.example.NewTest")
        blobs = {CompiledUnitId("com.example.NewTest"): exec_blob({"com/example/Foo": [True]})}
        decisions = run_build(sample, blobs)
        assert decisions[CompiledUnitId("com.example.NewTest")].reason is Reason.NO_COVERAGE_FOR_TEST

    def test_removed_test_is_dropped(self, sample, exec_blob):
        """Tests no longer discovered disappear from the snapshot."""
        run_build(sample, coverage(exec_blob))
        sample.remove_unit("com.example.BarTest")
        run_build(sample, {FOO_TEST: None})
        assert set(latest(sample).coverage) == {FOO_TEST}


class TestCoverageIngestion:
    """Restriction, failures and unusable coverage."""

    def test_third_party_units_are_dropped(self, sample, exec_blob):
        """Covered units outside the project are not recorded by default."""
        run_build(sample, coverage(exec_blob))
        covered = latest(sample).coverage[FOO_TEST].covered_units
        assert CompiledUnitId("org.junit.Assert") not in covered

    def test_third_party_units_kept_when_unrestricted(self, sample, exec_blob):
        """Without restriction they are kept, and force execution as unfingerprinted."""
        run_build(sample, coverage(exec_blob), restrict_coverage_to_project_units=False)
        assert CompiledUnitId("org.junit.Assert") in latest(sample).coverage[FOO_TEST].covered_units
        decisions = run_build(
            sample, coverage(exec_blob), restrict_coverage_to_project_units=False
        )
        assert decisions[FOO_TEST].reason is Reason.NO_FINGERPRINT_FOR_COVERED_UNIT

    def test_failed_test_runs_again(self, sample, exec_blob):
        """A failed test is tagged and executed in the next build."""
        run_build(sample, coverage(exec_blob), failed={FOO_TEST})
        assert TestTag.FAILED in latest(sample).coverage[FOO_TEST].tags
        decisions = run_build(sample, coverage(exec_blob))
        assert decisions[FOO_TEST].reason is Reason.TEST_FAILED_PREVIOUSLY
        assert decisions[BAR_TEST].reason is Reason.NO_CHANGE
        decisions = run_build(sample, coverage(exec_blob))
        assert decisions[FOO_TEST].reason is Reason.NO_CHANGE

    def test_malformed_coverage_invalidates(self, sample, exec_blob):
        """A corrupt blob does not fail the build; the test runs next time."""
        run_build(sample, coverage(exec_blob))
        sample.add_unit("com.example.Foo", code=b"\x03\x57\xb1")
        blobs = coverage(exec_blob)
        blobs[FOO_TEST] = b"\x01\xc0\xc0\x10"
        run_build(sample, blobs)
        assert FOO_TEST not in latest(sample).coverage
        decisions = run_build(sample, coverage(exec_blob))
        assert decisions[FOO_TEST].reason is Reason.NO_COVERAGE_FOR_TEST

    def test_executed_without_coverage_invalidates(self, sample, exec_blob):
        """A test that ran but staged nothing loses its stale record."""
        run_build(sample, coverage(exec_blob))
        sample.add_unit("com.example.Foo", code=b"\x03\x57\xb1")
        blobs = coverage(exec_blob)
        blobs[FOO_TEST] = None
        run_build(sample, blobs)
        assert FOO_TEST not in latest(sample).coverage
        assert BAR_TEST in latest(sample).coverage


class TestStoreHandling:
    """Snapshot corruption, cancelled builds, cleanup and retention."""

    def test_unparseable_snapshot_means_no_prior_analysis(self, sample, exec_blob):
        """A snapshot that cannot be parsed is ignored, not fatal."""
        run_build(sample, coverage(exec_blob))
        body = b'{"schema_version": 0}'
        snapshot_id = content_id(body)
        (sample.store / "snapshots" / f"{snapshot_id}.json").write_bytes(body)
        (sample.store / "LATEST").write_text(snapshot_id)
        decisions = run_build(sample, coverage(exec_blob))
        assert set(reasons(decisions).values()) == {Reason.NO_PRIOR_ANALYSIS}

    def test_blocked_store_executes(self, sample):
        """A store path that cannot be opened makes tests run instead of failing."""
        sample.store.write_text("not a directory")
        build = sample.build()
        try:
            assert build.should_execute(FOO_TEST)
            assert build.decide(FOO_TEST).reason is Reason.NO_PRIOR_ANALYSIS
        finally:
            build.close()

    def test_io_error_while_loading_executes(self, sample):
        """I/O failures outside the store also resolve to EXECUTE."""
        build = create_build(sample.root, UnreadableDiscovery(), SkipwiseConfig(cache_enabled=False))
        try:
            decision = build.decide(FOO_TEST)
        finally:
            build.close()
        assert decision.should_execute
        assert decision.reason is Reason.INTERNAL_ERROR
        assert "manifest locked" in decision.detail

    def test_cancelled_build_leaves_no_trace(self, sample, exec_blob):
        """Staged data of an unfinished build is discarded by the next start."""
        run_build(sample, coverage(exec_blob))
        build = sample.build()
        build.on_build_started()
        build.record_coverage(FOO_TEST, b"garbage")
        build.record_test_failure(FOO_TEST)
        build.close()

        decisions = run_build(sample, coverage(exec_blob))
        assert decisions[FOO_TEST].reason is Reason.NO_CHANGE

    def test_separate_processes_share_a_build(self, sample, exec_blob):
        """Hooks called on separate Build objects behave like one build."""
        blobs = coverage(exec_blob)
        run_build(sample, blobs)
        sample.add_unit("com.example.Bar", code=b"\x03\x57\xb1")

        start = sample.build()
        start.on_build_started()
        start.close()
        for test, blob in blobs.items():
            step = sample.build()
            if step.should_execute(test):
                step.record_coverage(test, blob)
            step.close()
        finish = sample.build()
        finish.on_build_finished()
        finish.close()

        repository = FileSystemRepository(sample.store)
        lines = repository.read_decisions()
        repository.close()
        assert lines == [
            "com.example.FooTest,SKIP,NO_CHANGE",
            "com.example.BarTest,EXECUTE,COVERED_UNIT_BYTECODE_CHANGED,com.example.Bar",
        ]

    def test_clean_removes_store(self, sample, exec_blob):
        """clean() deletes everything; the next build starts from scratch."""
        run_build(sample, coverage(exec_blob))
        build = sample.build()
        build.clean()
        assert not sample.store.exists()
        decisions = run_build(sample, coverage(exec_blob))
        assert set(reasons(decisions).values()) == {Reason.NO_PRIOR_ANALYSIS}

    def test_snapshot_retention(self, sample, exec_blob):
        """Garbage collection keeps keep_snapshots snapshots."""
        for i in range(4):
            sample.add_unit("com.example.Foo", constant=i)
            run_build(sample, coverage(exec_blob), keep_snapshots=2)
        assert len(list((sample.store / "snapshots").iterdir())) == 2


class TestCoverageForSkippedTests:
    """Per-test blobs and merged coverage for skipped tests."""

    def test_blobs_are_stored_and_skipped_coverage_written(self, sample, exec_blob):
        """Skipped tests contribute their stored coverage to the merged file."""
        run_build(sample, coverage(exec_blob), coverage_for_skipped_tests=True)
        analysis = latest(sample)
        assert all(record.blob_id for record in analysis.coverage.values())

        sample.add_unit("com.example.Foo", code=b"\x03\x57\xb1")
        decisions = run_build(sample, coverage(exec_blob), coverage_for_skipped_tests=True)
        assert decisions[BAR_TEST].reason is Reason.NO_CHANGE

        merged = execution_records((sample.store / SKIPPED_COVERAGE_FILE).read_bytes())
        assert set(merged) == {"com.example.Bar", "com.example.BarTest"}

    def test_enabling_later_forces_one_execution(self, sample, exec_blob):
        """Records without blobs must run once to produce one."""
        run_build(sample, coverage(exec_blob))
        decisions = run_build(sample, coverage(exec_blob), coverage_for_skipped_tests=True)
        assert set(reasons(decisions).values()) == {Reason.MISSING_COVERAGE_BLOB}
        decisions = run_build(sample, coverage(exec_blob), coverage_for_skipped_tests=True)
        assert set(reasons(decisions).values()) == {Reason.NO_CHANGE}


class TestAlwaysExecute:
    """Policy-driven tagging."""

    def test_policy_tags_and_tag_expires(self, sample, exec_blob):
        """Forced tests are tagged; without the policy the tag lapses after one run."""
        policy = {"decision_policy": "always-execute", "always_execute": ["*.FooTest"]}
        run_build(sample, coverage(exec_blob), **policy)
        decisions = run_build(sample, coverage(exec_blob), **policy)
        assert decisions[FOO_TEST].reason is Reason.TEST_TAGGED_AS_ALWAYS_EXECUTE
        assert TestTag.ALWAYS_EXECUTE in latest(sample).coverage[FOO_TEST].tags

        decisions = run_build(sample, coverage(exec_blob))
        assert decisions[FOO_TEST].reason is Reason.TEST_TAGGED_AS_ALWAYS_EXECUTE
        decisions = run_build(sample, coverage(exec_blob))
        assert decisions[FOO_TEST].reason is Reason.NO_CHANGE
