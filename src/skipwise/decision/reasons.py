"""Decision outcomes and the reasons behind them."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional
from urllib.parse import quote, unquote

from ..model.units import CompiledUnitId

# Characters left readable in logged test ids; commas, percent signs and line
# breaks are always escaped.
_ID_SAFE = "$[]()#:<>=@ "


class Outcome(Enum):
    EXECUTE = "EXECUTE"
    SKIP = "SKIP"


class Reason(Enum):
    """Why a test was executed or skipped.

    Values are written to the audit log and must stay stable.
    """

    NO_PRIOR_ANALYSIS = "NO_PRIOR_ANALYSIS"
    NO_COVERAGE_FOR_TEST = "NO_COVERAGE_FOR_TEST"
    TEST_FAILED_PREVIOUSLY = "TEST_FAILED_PREVIOUSLY"
    TEST_TAGGED_AS_ALWAYS_EXECUTE = "TEST_TAGGED_AS_ALWAYS_EXECUTE"
    COVERED_TEST_TAGGED_AS_FAILED = "COVERED_TEST_TAGGED_AS_FAILED"
    COVERED_TEST_TAGGED_AS_ALWAYS_EXECUTE = "COVERED_TEST_TAGGED_AS_ALWAYS_EXECUTE"
    NO_FINGERPRINT_FOR_TEST = "NO_FINGERPRINT_FOR_TEST"
    TEST_BYTECODE_CHANGED = "TEST_BYTECODE_CHANGED"
    NO_FINGERPRINT_FOR_COVERED_UNIT = "NO_FINGERPRINT_FOR_COVERED_UNIT"
    COVERED_UNIT_BYTECODE_CHANGED = "COVERED_UNIT_BYTECODE_CHANGED"
    MISSING_COVERAGE_BLOB = "MISSING_COVERAGE_BLOB"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    OVERRIDDEN_BY_POLICY = "OVERRIDDEN_BY_POLICY"
    NO_CHANGE = "NO_CHANGE"


@dataclass(frozen=True)
class Decision:
    """Outcome for one test, with the reason and an optional detail.

    ``detail`` names the offending covered unit for the covered-unit
    reasons, and carries the error or policy name otherwise.
    """

    test_id: CompiledUnitId
    outcome: Outcome
    reason: Reason
    detail: Optional[str] = None

    @classmethod
    def execute(
        cls, test_id: CompiledUnitId, reason: Reason, detail: Optional[str] = None
    ) -> Decision:
        return cls(test_id, Outcome.EXECUTE, reason, detail)

    @classmethod
    def skip(cls, test_id: CompiledUnitId) -> Decision:
        return cls(test_id, Outcome.SKIP, Reason.NO_CHANGE)

    @property
    def should_execute(self) -> bool:
        return self.outcome is Outcome.EXECUTE

    def to_log_line(self) -> str:
        """``test_id,OUTCOME,REASON[,detail]``.

        The test id is percent-escaped; newlines and commas are removed from detail.
        """
        fields = [quote(self.test_id.name, safe=_ID_SAFE), self.outcome.value, self.reason.value]
        if self.detail:
            fields.append(" ".join(self.detail.replace(",", ";").split()))
        return ",".join(fields)

    @classmethod
    def from_log_line(cls, line: str) -> Decision:
        """Parse a line written by :meth:`to_log_line`.

        Raises:
            ValueError: If the line is not a decision record
        """
        fields = line.rstrip("\n").split(",", 3)
        if len(fields) < 3:
            raise ValueError(f"not a decision record: {line!r}")
        detail = fields[3] if len(fields) == 4 else None
        return cls(CompiledUnitId(unquote(fields[0])), Outcome(fields[1]), Reason(fields[2]), detail)
