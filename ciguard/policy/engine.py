"""
ciguard Policy Evaluation Engine

Aggregates the findings of a secret scan into a ScanResult and decides:
- Which findings block the run (severity at or above the threshold)
- Which are warnings
- Which were suppressed by the allowlist
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from ciguard.core.errors import ScanIOError, ValidationError
from ciguard.core.finding import Finding, Severity


@dataclass
class ScanResult:
    """Outcome of one secret scan."""

    findings: list[Finding] = field(default_factory=list)
    failed: list[Finding] = field(default_factory=list)
    warned: list[Finding] = field(default_factory=list)
    suppressed: list[Finding] = field(default_factory=list)
    errors: list[ScanIOError] = field(default_factory=list)
    fail_on: Severity = Severity.MEDIUM
    strict: bool = False
    files_scanned: int = 0

    @property
    def should_fail(self) -> bool:
        if self.failed:
            return True
        return self.strict and bool(self.errors)

    @property
    def passed(self) -> bool:
        return not self.should_fail

    @property
    def suppressed_count(self) -> int:
        return len(self.suppressed)

    @property
    def highest_severity(self) -> Optional[Severity]:
        if not self.findings:
            return None
        return max(self.findings, key=lambda f: f.severity.rank).severity

    def violations(self) -> list[ValidationError]:
        """One ValidationError per blocking finding."""
        return [
            ValidationError(
                f.location.file_path if f.location else Path("<input>"),
                f.location.start_line if f.location else 0,
                f"{f.rule_id} {f.title} ({f.severity.value})",
            )
            for f in self.failed
        ]


class PolicyEngine:
    """
    Evaluates findings against a blocking severity threshold.
    """

    def __init__(self, fail_on: Severity = Severity.MEDIUM, strict: bool = False) -> None:
        self.fail_on = fail_on
        self.strict = strict

    def evaluate(
        self,
        findings: list[Finding],
        suppressed: Optional[list[Finding]] = None,
        errors: Optional[list[ScanIOError]] = None,
        files_scanned: int = 0,
    ) -> ScanResult:
        """
        Evaluate a list of unsuppressed findings.

        Args:
            findings: Findings that survived the allowlist, in scan order.
            suppressed: Findings dropped by the allowlist (counted only).
            errors: Per-file read errors.
            files_scanned: Number of input units processed.

        Returns:
            ScanResult with categorized findings.
        """
        result = ScanResult(
            findings=list(findings),
            suppressed=list(suppressed or []),
            errors=list(errors or []),
            fail_on=self.fail_on,
            strict=self.strict,
            files_scanned=files_scanned,
        )

        for finding in findings:
            if finding.severity >= self.fail_on:
                result.failed.append(finding)
            else:
                result.warned.append(finding)

        return result
