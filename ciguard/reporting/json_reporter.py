"""
ciguard JSON Reporter

Generates machine-readable JSON output for CI consumption:
{
    "version": "1.0",
    "status": "pass" | "fail",
    "summary": {...},
    "findings": [...]          (secret scan)
    "references": [...]        (pinning)
}
"""

from __future__ import annotations

import json
from collections import Counter
from pathlib import Path
from typing import Any, Optional

from ciguard import __version__
from ciguard.core.finding import SEVERITY_NAMES
from ciguard.pinning.engine import PinResult
from ciguard.policy.engine import ScanResult
from ciguard.reporting.verdict import decide_exit_status


class JSONReporter:
    """Generates JSON-formatted reports."""

    def __init__(self, target: str) -> None:
        self.target = target

    def report_scan(self, result: ScanResult, output_file: Optional[str] = None) -> str:
        """
        Generate the JSON report of a secret scan.

        Args:
            result: Aggregated scan result.
            output_file: Optional file path to write the report to.

        Returns:
            The JSON string.
        """
        counter = Counter(f.severity.value for f in result.findings)
        highest = result.highest_severity

        data = self._envelope("secrets", result)
        data["summary"] = {
            "files_scanned": result.files_scanned,
            "total_findings": len(result.findings),
            "blocking_findings": len(result.failed),
            "suppressed": result.suppressed_count,
            "highest_severity": highest.value if highest else None,
            "fail_on": result.fail_on.value,
            "by_severity": {sev: counter.get(sev, 0) for sev in SEVERITY_NAMES},
            "by_category": dict(Counter(f.category for f in result.findings)),
        }
        data["findings"] = [f.to_dict() for f in result.findings]
        data["errors"] = [e.to_dict() for e in result.errors]
        return self._emit(data, output_file)

    def report_pins(self, result: PinResult, output_file: Optional[str] = None) -> str:
        """Generate the JSON report of a pin check or fix run."""
        data = self._envelope("pinning", result)
        data["mode"] = result.mode
        data["strict"] = result.strict
        data["summary"] = {
            "files_scanned": result.files_scanned,
            "references": len(result.references),
            "unpinned": len(result.unpinned),
            "resolved": len(result.pins),
            "resolution_errors": len(result.resolution_errors),
            "files_rewritten": len(result.rewrites),
        }
        references = []
        for ref in result.references:
            entry = ref.to_dict()
            pin = result.pins.get(ref.key) if ref.resolvable else None
            if pin is not None:
                entry["sha"] = pin.commit_sha
            references.append(entry)
        data["references"] = references
        data["violations"] = [v.to_dict() for v in result.violations()]
        data["resolution_errors"] = [e.to_dict() for e in result.resolution_errors]
        data["parse_errors"] = [e.to_dict() for e in result.parse_errors]
        data["errors"] = [e.to_dict() for e in result.errors]
        data["rewrites"] = [r.to_dict() for r in result.rewrites]
        return self._emit(data, output_file)

    def _envelope(self, engine: str, result: Any) -> dict[str, Any]:
        return {
            "version": "1.0",
            "tool": {
                "name": "ciguard",
                "version": __version__,
            },
            "engine": engine,
            "target": self.target,
            "status": "pass" if result.passed else "fail",
            "exit_code": int(decide_exit_status(result)),
        }

    @staticmethod
    def _emit(data: dict[str, Any], output_file: Optional[str]) -> str:
        json_str = json.dumps(data, indent=2, default=str)

        if output_file:
            Path(output_file).write_text(json_str, encoding="utf-8")

        return json_str
