"""Tests for decision policies and their configuration."""

import pytest

from skipwise.config import SkipwiseConfig
from skipwise.decision import (
    AlwaysExecutePolicy,
    Decision,
    Outcome,
    PassThroughPolicy,
    Reason,
    resolve_policy,
)
from skipwise.exceptions import InvalidConfigError
from skipwise.model import CompiledUnitId

SMOKE = CompiledUnitId("com.example.SmokeIT")
UNIT = CompiledUnitId("com.example.FooTest")


class TestPolicies:
    """Test the built-in policies."""

    def test_pass_through(self):
        """Decisions pass unchanged."""
        decision = Decision.skip(UNIT)
        policy = PassThroughPolicy()
        assert policy.apply(decision) is decision
        assert not policy.always_executes(UNIT)

    def test_always_execute_matches_globs(self):
        """Only matching tests are forced."""
        policy = AlwaysExecutePolicy(["*IT", "org.other.*"])
        assert policy.apply(Decision.skip(SMOKE)).outcome is Outcome.EXECUTE
        assert policy.apply(Decision.skip(UNIT)).outcome is Outcome.SKIP
        assert policy.always_executes(SMOKE)
        assert not policy.always_executes(UNIT)

    def test_never_turns_execute_into_skip(self):
        """An execute decision is returned as-is."""
        decision = Decision.execute(SMOKE, Reason.NO_PRIOR_ANALYSIS)
        assert AlwaysExecutePolicy(["*"]).apply(decision) is decision


class TestResolvePolicy:
    """Test resolve_policy."""

    def test_default(self):
        """The default configuration passes decisions through."""
        assert isinstance(resolve_policy(SkipwiseConfig()), PassThroughPolicy)

    def test_always_execute(self):
        """Patterns are taken from the configuration."""
        policy = resolve_policy(
            SkipwiseConfig(decision_policy="always-execute", always_execute=["*IT"])
        )
        assert isinstance(policy, AlwaysExecutePolicy)
        assert policy.patterns == ("*IT",)

    def test_always_execute_without_patterns(self):
        """The always-execute policy needs at least one pattern."""
        with pytest.raises(InvalidConfigError):
            resolve_policy(SkipwiseConfig(decision_policy="always-execute"))
