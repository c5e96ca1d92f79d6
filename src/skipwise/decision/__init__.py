"""Decision engine: should a test run in this build?"""

from .engine import DecisionEngine
from .policy import AlwaysExecutePolicy, DecisionPolicy, PassThroughPolicy, resolve_policy
from .reasons import Decision, Outcome, Reason

__all__ = [
    "DecisionEngine",
    "Decision",
    "Outcome",
    "Reason",
    "DecisionPolicy",
    "PassThroughPolicy",
    "AlwaysExecutePolicy",
    "resolve_policy",
]
