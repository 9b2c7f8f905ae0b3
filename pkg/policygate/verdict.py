"""Verdict aggregation: classified findings in, pass/fail out. No I/O."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from .retriever import Analysis, Finding


class Outcome(str, Enum):
    PASSED = "passed"
    NO_FINDINGS = "no_findings"
    VIOLATIONS = "violations"
    NO_ANALYSIS = "no_analysis"
    STALE_ANALYSIS = "stale_analysis"
    MISSING_PROPERTY = "missing_property"
    INVALID_PROPERTY = "invalid_property"


FAILING_OUTCOMES = frozenset(
    {
        Outcome.VIOLATIONS,
        Outcome.NO_ANALYSIS,
        Outcome.STALE_ANALYSIS,
        Outcome.MISSING_PROPERTY,
        Outcome.INVALID_PROPERTY,
    }
)


@dataclass(frozen=True)
class Verdict:
    findings: tuple[Finding, ...]
    violations: tuple[Finding, ...]

    @property
    def passed(self) -> bool:
        return not self.violations

    @property
    def outcome(self) -> Outcome:
        if not self.findings:
            return Outcome.NO_FINDINGS
        return Outcome.PASSED if self.passed else Outcome.VIOLATIONS


def decide(findings: Iterable[Finding]) -> Verdict:
    """Violations are the findings that exceed the age threshold, in input order."""
    ordered = tuple(findings)
    return Verdict(
        findings=ordered,
        violations=tuple(f for f in ordered if f.exceeds_threshold),
    )


@dataclass(frozen=True)
class GateResult:
    """Terminal state of one gate run."""
    gate: str
    outcome: Outcome
    reason: str
    verdict: Verdict | None = None
    analysis: Analysis | None = None
    report_posted: bool = False

    @property
    def passed(self) -> bool:
        return self.outcome not in FAILING_OUTCOMES

    @property
    def exit_code(self) -> int:
        return 0 if self.passed else 1
