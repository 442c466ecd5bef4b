"""
ciguard GitHub Actions Integration

Provides helpers for running ciguard in GitHub Actions:
- Workflow annotations (errors/warnings) for findings and unpinned actions
- Step summary output
- Environment detection and API token discovery
"""

from __future__ import annotations

import logging
import os
from collections import Counter

from ciguard.core.finding import SEVERITY_NAMES, Finding, Severity
from ciguard.pinning.engine import PinResult, describe
from ciguard.policy.engine import ScanResult

logger = logging.getLogger(__name__)

TOKEN_ENV_VARS = ("GITHUB_TOKEN", "GH_TOKEN")


def is_github_actions() -> bool:
    """Check if currently running inside GitHub Actions."""
    return os.environ.get("GITHUB_ACTIONS") == "true"


def get_token() -> str:
    """API token for resolving refs; empty when none is configured."""
    for name in TOKEN_ENV_VARS:
        value = os.environ.get(name, "").strip()
        if value:
            return value
    return ""


def _annotation(level: str, message: str, file_path: str = "", line: int = 0, title: str = "") -> str:
    # GitHub annotation format:
    # ::error file={name},line={line},title={title}::{message}
    params = []
    if file_path:
        params.append(f"file={file_path}")
    if line:
        params.append(f"line={line}")
    if title:
        params.append(f"title={title}")
    return f"::{level} {','.join(params)}::{message}"


def emit_annotations(findings: list[Finding]) -> None:
    """
    Emit GitHub Actions workflow annotations for each finding.
    Errors show as red annotations, warnings as yellow.
    """
    if not is_github_actions():
        return

    for finding in findings:
        level = "error" if finding.severity in (Severity.CRITICAL, Severity.HIGH) else "warning"
        line = finding.location.start_line if finding.location else 0
        msg = f"{finding.title}: {finding.description}"
        if finding.fix:
            msg += f" Fix: {finding.fix}"
        print(_annotation(level, msg, finding.path_str, line, f"{finding.rule_id} - {finding.title}"))


def emit_pin_annotations(result: PinResult) -> None:
    """Annotate unpinned references (errors) and resolution problems (warnings)."""
    if not is_github_actions():
        return

    level = "error" if result.mode == "check" or result.strict else "warning"
    for ref in result.unpinned:
        print(
            _annotation(
                level,
                f"{describe(ref)} is not pinned to an immutable id",
                str(ref.path).replace("\\", "/"),
                ref.line,
                "Unpinned action",
            )
        )
    for error in result.resolution_errors:
        print(_annotation("warning", f"cannot resolve {error}", title="Pin resolution"))


def write_step_summary(result: ScanResult, target: str) -> None:
    """
    Write a secret scan summary to the GitHub Actions step summary.
    This appears on the workflow run page.
    """
    counter = Counter(f.severity.value for f in result.findings)
    lines = [
        "## 🔒 ciguard Secret Scan\n",
        f"**Target:** `{target}`\n",
        "| Severity | Count |",
        "|----------|-------|",
    ]
    for sev in SEVERITY_NAMES:
        lines.append(f"| {sev} | {counter.get(sev, 0)} |")
    lines.append("")
    if result.suppressed_count:
        lines.append(f"{result.suppressed_count} finding(s) suppressed by allowlist.\n")

    if result.should_fail:
        lines.append("### ❌ Status: FAILED")
        lines.append("Secrets must be removed before merging.")
    elif result.findings:
        lines.append("### ⚠️ Status: WARNINGS")
    else:
        lines.append("### ✅ Status: PASSED")

    if result.findings:
        lines.append("\n<details><summary>Findings</summary>\n")
        ordered = sorted(result.findings, key=lambda f: -f.severity.rank)
        for i, f in enumerate(ordered[:20], start=1):
            loc = f"`{f.path_str}:{f.location.start_line}`" if f.location else ""
            lines.append(f"{i}. **{f.severity.value}** - {f.title} ({f.rule_id}) {loc}")
        lines.append("\n</details>")

    _append_summary(lines)


def write_pin_summary(result: PinResult, target: str) -> None:
    """Write a pinning summary to the GitHub Actions step summary."""
    lines = [
        f"## 📌 ciguard Action Pinning ({result.mode})\n",
        f"**Target:** `{target}`\n",
        f"- References: {len(result.references)}",
        f"- Unpinned: {len(result.unpinned)}",
        f"- Resolution errors: {len(result.resolution_errors)}",
        f"- Files rewritten: {len(result.rewrites)}",
        "",
        "### ❌ Status: FAILED" if result.should_fail else "### ✅ Status: PASSED",
    ]
    _append_summary(lines)


def _append_summary(lines: list[str]) -> None:
    if not is_github_actions():
        return

    summary_file = os.environ.get("GITHUB_STEP_SUMMARY")
    if not summary_file:
        return

    try:
        with open(summary_file, "a", encoding="utf-8") as fh:
            fh.write("\n".join(lines) + "\n")
    except OSError as exc:
        logger.warning("cannot write step summary: %s", exc)
