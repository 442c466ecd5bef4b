"""
ciguard SARIF Reporter

Generates SARIF 2.1.0 (Static Analysis Results Interchange Format) output
for GitHub Code Scanning and other SARIF consumers. Secret findings and
unpinned action references both become results.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from ciguard import __version__
from ciguard.core.finding import Finding, Severity
from ciguard.pinning.engine import PinResult
from ciguard.policy.engine import ScanResult


SARIF_SCHEMA = "https://raw.githubusercontent.com/oasis-tcs/sarif-spec/main/sarif-2.1/schema/sarif-schema-2.1.0.json"

# SARIF severity level mapping
SARIF_LEVEL_MAP = {
    Severity.CRITICAL: "error",
    Severity.HIGH: "error",
    Severity.MEDIUM: "warning",
    Severity.LOW: "note",
    Severity.INFO: "note",
}

UNPINNED_RULE_ID = "CG-PIN-001"


class SARIFReporter:
    """Generates SARIF 2.1.0-formatted reports."""

    def __init__(self, target: str) -> None:
        self.target = target

    def report_scan(self, result: ScanResult, output_file: Optional[str] = None) -> str:
        """
        Generate SARIF for a secret scan.

        Args:
            result: Aggregated scan result.
            output_file: Optional file path to write the report to.

        Returns:
            The SARIF JSON string.
        """
        rules_map: dict[str, dict] = {}
        results: list[dict] = []

        for finding in result.findings:
            if finding.rule_id not in rules_map:
                rules_map[finding.rule_id] = self._rule(finding)
            results.append(self._finding_result(finding, list(rules_map).index(finding.rule_id)))

        return self._emit(rules_map, results, output_file)

    def report_pins(self, result: PinResult, output_file: Optional[str] = None) -> str:
        """Generate SARIF for unpinned references."""
        rules_map: dict[str, dict] = {}
        results: list[dict] = []
        unpinned = result.unpinned
        if unpinned:
            rules_map[UNPINNED_RULE_ID] = {
                "id": UNPINNED_RULE_ID,
                "name": "Unpinned Action Reference",
                "shortDescription": {"text": "Action or image not pinned to an immutable id"},
                "fullDescription": {
                    "text": "Mutable tags and branches can be moved to point at different code.",
                },
                "defaultConfiguration": {"level": "error"},
                "help": {"text": "Run 'ciguard pin fix' to pin actions to full commit SHAs."},
                "properties": {"security-severity": "7.5", "tags": ["supply-chain"]},
            }
        for ref in unpinned:
            results.append({
                "ruleId": UNPINNED_RULE_ID,
                "ruleIndex": 0,
                "level": "error",
                "message": {"text": f"{ref.kind.value} not pinned: {ref.value}"},
                "locations": [self._location(ref.path, ref.line)],
            })
        return self._emit(rules_map, results, output_file)

    def _rule(self, finding: Finding) -> dict:
        rule = {
            "id": finding.rule_id,
            "name": finding.title,
            "shortDescription": {"text": finding.title},
            "fullDescription": {"text": finding.description},
            "defaultConfiguration": {
                "level": SARIF_LEVEL_MAP.get(finding.severity, "warning")
            },
            "properties": {
                "security-severity": self._severity_score(finding.severity),
                "tags": finding.tags,
            },
        }
        if finding.fix:
            rule["help"] = {
                "text": finding.fix,
                "markdown": f"**Fix:** {finding.fix}",
            }
        return rule

    def _finding_result(self, finding: Finding, rule_index: int) -> dict:
        result: dict = {
            "ruleId": finding.rule_id,
            "ruleIndex": rule_index,
            "level": SARIF_LEVEL_MAP.get(finding.severity, "warning"),
            "message": {"text": finding.description},
        }
        if finding.location:
            location = self._location(finding.location.file_path, finding.location.start_line)
            region = location["physicalLocation"]["region"]
            if finding.location.start_column:
                region["startColumn"] = finding.location.start_column
            if finding.location.end_column:
                region["endColumn"] = finding.location.end_column
            if finding.location.snippet:
                region["snippet"] = {"text": finding.location.snippet}
            result["locations"] = [location]
        return result

    @staticmethod
    def _location(path: Path, line: int) -> dict:
        return {
            "physicalLocation": {
                "artifactLocation": {
                    "uri": str(path).replace("\\", "/"),
                    "uriBaseId": "%SRCROOT%",
                },
                "region": {
                    "startLine": max(1, line),
                    "startColumn": 1,
                },
            }
        }

    @staticmethod
    def _emit(rules_map: dict[str, dict], results: list[dict], output_file: Optional[str]) -> str:
        sarif = {
            "$schema": SARIF_SCHEMA,
            "version": "2.1.0",
            "runs": [
                {
                    "tool": {
                        "driver": {
                            "name": "ciguard",
                            "version": __version__,
                            "rules": list(rules_map.values()),
                        }
                    },
                    "results": results,
                    "columnKind": "utf16CodeUnits",
                }
            ],
        }

        sarif_str = json.dumps(sarif, indent=2, default=str)

        if output_file:
            Path(output_file).write_text(sarif_str, encoding="utf-8")

        return sarif_str

    @staticmethod
    def _severity_score(severity: Severity) -> str:
        """Map severity to a numeric score string for SARIF properties."""
        scores = {
            Severity.CRITICAL: "9.5",
            Severity.HIGH: "7.5",
            Severity.MEDIUM: "5.0",
            Severity.LOW: "2.5",
            Severity.INFO: "1.0",
        }
        return scores.get(severity, "5.0")
