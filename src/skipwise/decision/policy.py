"""Decision policies applied after the core algorithm.

A policy sees the core decision and may turn a SKIP into an EXECUTE. It can
never make a test skip, so no policy can compromise correctness.
"""

from __future__ import annotations

from fnmatch import fnmatchcase
from typing import Iterable, Protocol

from ..config import SkipwiseConfig
from ..exceptions import InvalidConfigError
from ..model.units import CompiledUnitId
from .reasons import Decision, Reason


class DecisionPolicy(Protocol):
    name: str

    def apply(self, decision: Decision) -> Decision: ...

    def always_executes(self, test_id: CompiledUnitId) -> bool:
        """Whether coverage recorded for ``test_id`` is tagged ALWAYS_EXECUTE."""
        ...


class PassThroughPolicy:
    """Leaves every decision as the core algorithm made it."""

    name = "pass-through"

    def apply(self, decision: Decision) -> Decision:
        return decision

    def always_executes(self, test_id: CompiledUnitId) -> bool:
        return False


class AlwaysExecutePolicy:
    """Forces execution of tests whose id matches one of the glob patterns."""

    name = "always-execute"

    def __init__(self, patterns: Iterable[str]) -> None:
        self.patterns = tuple(patterns)

    def matches(self, test_name: str) -> bool:
        return any(fnmatchcase(test_name, pattern) for pattern in self.patterns)

    def always_executes(self, test_id: CompiledUnitId) -> bool:
        return self.matches(test_id.name)

    def apply(self, decision: Decision) -> Decision:
        if decision.should_execute or not self.matches(decision.test_id.name):
            return decision
        return Decision.execute(decision.test_id, Reason.OVERRIDDEN_BY_POLICY, self.name)


def resolve_policy(config: SkipwiseConfig) -> DecisionPolicy:
    """Build the policy named by ``config.decision_policy``.

    Raises:
        InvalidConfigError: If the name is unknown
    """
    if config.decision_policy == PassThroughPolicy.name:
        return PassThroughPolicy()
    if config.decision_policy == AlwaysExecutePolicy.name:
        if not config.always_execute:
            raise InvalidConfigError("decision_policy 'always-execute' needs always_execute patterns")
        return AlwaysExecutePolicy(config.always_execute)
    raise InvalidConfigError(f"unknown decision_policy '{config.decision_policy}'")
