"""
ciguard Secrets Scanner

Detects hardcoded credentials line by line using the built-in rule table,
backed by a Shannon-entropy heuristic for random-looking strings that no
named rule recognises. Findings matching the allowlist are suppressed and
counted. The scanner only reads; it never modifies input files.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from ciguard.core.config import CiguardConfig
from ciguard.core.errors import ScanIOError
from ciguard.core.finding import Finding, Location, Severity
from ciguard.core.scanner import BaseScanner, RunState
from ciguard.core.textio import decode, index_lines, is_binary, is_excluded, read_bytes_bounded
from ciguard.policy.allowlist import AllowlistEntry, is_allowed
from ciguard.policy.engine import PolicyEngine, ScanResult
from ciguard.scanners.diff import parse_unified_diff
from ciguard.scanners.entropy import high_entropy_tokens
from ciguard.scanners.rules import HIGH_ENTROPY_RULE, RuleSet, SecretRule, is_placeholder

logger = logging.getLogger(__name__)

REDACTED = "***REDACTED***"
MAX_SNIPPET = 160


@dataclass
class _Candidate:
    rule: SecretRule
    start: int
    end: int
    entropy: Optional[float] = None

    def overlaps(self, start: int, end: int) -> bool:
        return self.start < end and start < self.end


@dataclass
class _UnitOutcome:
    """What one worker produced for one input unit."""

    findings: list[Finding] = field(default_factory=list)
    suppressed: list[Finding] = field(default_factory=list)
    error: Optional[ScanIOError] = None
    scanned: bool = False


class SecretsScanner(BaseScanner):
    """
    Secret detection over files, directories or a unified diff.

    The rule set and allowlist are built once by the caller and shared
    read-only by all worker threads.
    """

    name = "secrets"

    def __init__(
        self,
        config: CiguardConfig,
        rules: RuleSet,
        allowlist: Optional[list[AllowlistEntry]] = None,
        fail_on: Optional[Severity] = None,
        strict: Optional[bool] = None,
    ) -> None:
        super().__init__(config)
        self._advance(RunState.LOADING)
        self.rules = rules
        self.allowlist = list(allowlist or [])
        self.settings = config.secrets
        self.policy = PolicyEngine(
            fail_on=fail_on or Severity.from_string(self.settings.fail_on),
            strict=self.settings.strict if strict is None else strict,
        )

    # ── entry points ──

    def scan(self, paths: Iterable[Path]) -> ScanResult:
        files = self._iter_files(paths)
        logger.info("scanning %d file(s) with %d rule(s)", len(files), len(self.rules))

        self._advance(RunState.PROCESSING)
        outcomes = self.run_parallel(self._scan_file, files, self.settings.workers)
        return self._aggregate(outcomes)

    def scan_diff(self, diff_text: str) -> ScanResult:
        """Scan only the lines a unified diff adds."""
        self._advance(RunState.PROCESSING)
        outcomes = []
        diff_files = parse_unified_diff(diff_text)
        for index, diff_file in enumerate(diff_files):
            self.check_deadline(pending=len(diff_files) - index)
            if is_excluded(diff_file.path, self.exclude):
                logger.debug("skipping excluded path %s", diff_file.path)
                continue
            outcomes.append(self._scan_lines(diff_file.path, diff_file.added))
        return self._aggregate(outcomes)

    def scan_text(self, text: str, path: Path) -> tuple[list[Finding], list[Finding]]:
        """Scan an in-memory buffer; returns (findings, suppressed)."""
        lines = [(line.number, line.text) for line in index_lines(text)]
        outcome = self._scan_lines(path, lines)
        return outcome.findings, outcome.suppressed

    # ── workers ──

    def _scan_file(self, path: Path) -> _UnitOutcome:
        try:
            data = read_bytes_bounded(path, self.settings.max_file_size)
        except ScanIOError as exc:
            logger.warning("skipping %s", exc)
            return _UnitOutcome(error=exc)

        if is_binary(data):
            logger.debug("skipping binary file %s", path)
            return _UnitOutcome()

        lines = [(line.number, line.text) for line in index_lines(decode(data))]
        return self._scan_lines(path, lines)

    def _scan_lines(self, path: Path, lines: Iterable[tuple[int, str]]) -> _UnitOutcome:
        outcome = _UnitOutcome(scanned=True)
        for line_no, line in lines:
            candidates = self._detect(line)
            if not candidates:
                continue
            snippet = redact(line, [(c.start, c.end) for c in candidates])
            for candidate in candidates:
                finding = self._to_finding(candidate, path, line_no, snippet)
                secret = line[candidate.start:candidate.end]
                if is_allowed(finding, self.allowlist, secret=secret, excerpt=mask(secret)):
                    logger.debug("suppressed %s at %s:%d", finding.rule_id, path, line_no)
                    outcome.suppressed.append(finding)
                else:
                    outcome.findings.append(finding)
        return outcome

    def _detect(self, line: str) -> list[_Candidate]:
        """Named rules first, then entropy on whatever they left uncovered."""
        raw: list[tuple[int, _Candidate]] = []
        for order, rule in enumerate(self.rules):
            for start, end in rule.finditer(line):
                if is_placeholder(line[start:end]):
                    continue
                raw.append((order, _Candidate(rule, start, end)))

        # Overlapping matches collapse onto the most severe rule
        raw.sort(key=lambda item: (-item[1].rule.severity.rank, item[0], item[1].start))
        accepted: list[_Candidate] = []
        for _, candidate in raw:
            if not any(a.overlaps(candidate.start, candidate.end) for a in accepted):
                accepted.append(candidate)

        for start, end, entropy in high_entropy_tokens(
            line, self.settings.entropy_threshold, self.settings.min_token_length
        ):
            if any(a.overlaps(start, end) for a in accepted):
                continue
            if is_placeholder(line[start:end]):
                continue
            accepted.append(_Candidate(HIGH_ENTROPY_RULE, start, end, entropy=entropy))

        accepted.sort(key=lambda c: c.start)
        return accepted

    def _to_finding(self, candidate: _Candidate, path: Path, line_no: int, snippet: str) -> Finding:
        rule = candidate.rule
        metadata = {}
        if candidate.entropy is not None:
            metadata["entropy"] = round(candidate.entropy, 2)
        return Finding(
            rule_id=rule.id,
            title=rule.title,
            description=rule.description,
            severity=rule.severity,
            category=rule.category,
            scanner=self.name,
            location=Location(
                file_path=path,
                start_line=line_no,
                start_column=candidate.start + 1,
                end_column=candidate.end + 1,
                snippet=snippet,
            ),
            fix=rule.fix,
            metadata=metadata,
            tags=["secret", rule.category],
        )

    # ── aggregation ──

    def _aggregate(self, outcomes: list[_UnitOutcome]) -> ScanResult:
        self._advance(RunState.AGGREGATING)
        findings: list[Finding] = []
        suppressed: list[Finding] = []
        errors: list[ScanIOError] = []
        scanned = 0
        for outcome in outcomes:
            findings.extend(outcome.findings)
            suppressed.extend(outcome.suppressed)
            if outcome.error is not None:
                errors.append(outcome.error)
            if outcome.scanned:
                scanned += 1

        if suppressed:
            logger.info("%d finding(s) suppressed by allowlist", len(suppressed))
        return self.policy.evaluate(findings, suppressed=suppressed, errors=errors, files_scanned=scanned)


def redact(line: str, spans: list[tuple[int, int]]) -> str:
    """Mask every secret span on a line, keeping a short prefix of each."""
    parts: list[str] = []
    cursor = 0
    for start, end in sorted(spans):
        if start < cursor:
            continue
        parts.append(line[cursor:start])
        parts.append(mask(line[start:end]))
        cursor = end
    parts.append(line[cursor:])
    masked = "".join(parts).strip()
    if len(masked) > MAX_SNIPPET:
        masked = masked[:MAX_SNIPPET] + "..."
    return masked


def mask(secret: str) -> str:
    """Redact one secret, keeping at most four leading characters."""
    keep = min(4, len(secret) // 4)
    return secret[:keep] + REDACTED
