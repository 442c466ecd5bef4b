"""
ciguard Console Reporter

Generates human-readable colored console output for secret scans and
pinning runs.
"""

from __future__ import annotations

import sys
from collections import Counter
from typing import Optional

import click

from ciguard import __version__
from ciguard.core.finding import SEVERITY_NAMES, Finding
from ciguard.pinning.engine import FIX, PinResult, describe
from ciguard.policy.engine import ScanResult


def _safe_echo(text: str = "", **kwargs) -> None:
    """Echo text, handling Unicode issues on Windows consoles."""
    try:
        click.echo(text, **kwargs)
    except UnicodeEncodeError:
        safe = text.encode(sys.stdout.encoding or "utf-8", errors="replace").decode(
            sys.stdout.encoding or "utf-8", errors="replace"
        )
        click.echo(safe, **kwargs)


# Severity colors
SEVERITY_COLORS = {
    "CRITICAL": "bright_red",
    "HIGH": "red",
    "MEDIUM": "yellow",
    "LOW": "cyan",
    "INFO": "white",
}


class ConsoleReporter:
    """Prints a formatted report to the console."""

    def __init__(self, target: str, quiet: bool = False) -> None:
        self.target = target
        self.quiet = quiet

    # ── secret scan ──

    def report_scan(self, result: ScanResult, elapsed: Optional[float] = None) -> None:
        """
        Print the full secret scan report.

        Args:
            result: Aggregated scan result.
            elapsed: Wall time of the scan in seconds.
        """
        if not self.quiet:
            self._print_header("Secret Scan Report")
            self._print_scan_stats(result, elapsed)
            self._print_severity_summary(result.findings)

        if result.findings:
            self._print_detailed_findings(result)
        self._print_warnings([str(e) for e in result.errors])

        if result.should_fail:
            self._print_footer("fail", "SECRETS DETECTED - remove them or add safe patterns to the allowlist")
        elif result.findings or result.errors:
            self._print_footer("warn", "WARNINGS - review the findings above")
        else:
            self._print_footer("ok", "PASSED - no secrets found")

    def _print_scan_stats(self, result: ScanResult, elapsed: Optional[float]) -> None:
        _safe_echo("")
        line = f"  Scanned {result.files_scanned} file(s)"
        if elapsed is not None:
            line += f" in {elapsed:.2f}s"
        _safe_echo(click.style(line, fg="white"))
        if result.suppressed_count:
            _safe_echo(click.style(f"  {result.suppressed_count} suppressed by allowlist", fg="bright_black"))
        if result.errors:
            _safe_echo(click.style(f"  {len(result.errors)} file(s) could not be scanned", fg="yellow"))

    def _print_severity_summary(self, findings: list[Finding]) -> None:
        _safe_echo("")
        _safe_echo(click.style("  Findings Summary:", fg="bright_white", bold=True))
        counter = Counter(f.severity.value for f in findings)
        for sev in SEVERITY_NAMES:
            count = counter.get(sev, 0)
            color = SEVERITY_COLORS.get(sev, "white")
            _safe_echo(
                click.style(f"     {sev:10s}: ", fg=color) + click.style(str(count), fg="white")
            )
        categories = Counter(f.category for f in findings)
        if categories:
            _safe_echo(click.style("  By Category:", fg="bright_white", bold=True))
            for category, count in sorted(categories.items()):
                _safe_echo(f"     {category:22s}: {count}")

    def _print_detailed_findings(self, result: ScanResult) -> None:
        _safe_echo("")
        _safe_echo(click.style("  Detailed Findings:", fg="bright_white", bold=True))
        _safe_echo(click.style("-" * 55, fg="bright_black"))

        # Sort by severity (CRITICAL first), keeping scan order within a level
        sorted_findings = sorted(result.findings, key=lambda f: -f.severity.rank)
        blocking = {id(f) for f in result.failed}

        for idx, finding in enumerate(sorted_findings, start=1):
            sev = finding.severity.value
            color = SEVERITY_COLORS.get(sev, "white")
            marker = "" if id(finding) in blocking else " (warning)"

            _safe_echo("")
            _safe_echo(
                click.style(f"  {idx}. ", fg="white")
                + click.style(f" {sev} ", fg=color, bold=True)
                + click.style(f" {finding.title}{marker}", fg="bright_white")
            )
            _safe_echo(click.style(f"      Rule: {finding.rule_id} ({finding.category})", fg="bright_black"))
            if finding.location:
                _safe_echo(
                    click.style(
                        f"      Location: {finding.path_str}:{finding.location.start_line}",
                        fg="bright_black",
                    )
                )
                if finding.location.snippet:
                    _safe_echo(click.style(f"      Line: {finding.location.snippet}", fg="white"))
            if finding.fix:
                _safe_echo(click.style(f"      Fix: {finding.fix}", fg="green"))

    # ── pinning ──

    def report_pins(self, result: PinResult, elapsed: Optional[float] = None) -> None:
        """Print the pin check / fix report."""
        if not self.quiet:
            title = "Action Pinning Fix" if result.mode == FIX else "Action Pinning Check"
            self._print_header(title)
            _safe_echo("")
            line = f"  {result.files_scanned} workflow file(s), {len(result.references)} reference(s)"
            if elapsed is not None:
                line += f" in {elapsed:.2f}s"
            _safe_echo(click.style(line, fg="white"))

        if result.rewrites:
            _safe_echo("")
            verb = "Pinned" if all(r.written for r in result.rewrites) else "Would pin"
            _safe_echo(click.style(f"  {verb}:", fg="bright_white", bold=True))
            for rewrite in result.rewrites:
                _safe_echo(click.style(f"    [+] {rewrite.path}: {rewrite.replaced} reference(s)", fg="green"))
                if not self.quiet:
                    for diff_line in rewrite.diff.splitlines():
                        if diff_line.startswith("+") and not diff_line.startswith("+++"):
                            _safe_echo(click.style(f"        {diff_line}", fg="green"))
                        elif diff_line.startswith("-") and not diff_line.startswith("---"):
                            _safe_echo(click.style(f"        {diff_line}", fg="red"))

        unpinned = result.unpinned
        if unpinned and result.mode != FIX:
            _safe_echo("")
            _safe_echo(click.style("  Unpinned references:", fg="bright_white", bold=True))
            for ref in unpinned:
                _safe_echo(
                    click.style(f"    [X] {ref.path}:{ref.line}: ", fg="red")
                    + click.style(describe(ref), fg="white")
                )

        self._print_warnings(result.warnings)

        if result.should_fail:
            if result.mode == FIX:
                self._print_footer("fail", "PINNING FAILED - references could not be resolved (strict mode)")
            else:
                self._print_footer("fail", "UNPINNED ACTIONS - run 'ciguard pin fix' to pin them")
        elif result.warnings:
            self._print_footer("warn", "WARNINGS - review the messages above")
        else:
            self._print_footer("ok", "PASSED - all actions pinned to commit SHAs")

    # ── shared ──

    def report_error(self, message: str) -> None:
        _safe_echo(click.style(f"  [X] {message}", fg="red"), err=True)

    def _print_header(self, title: str) -> None:
        _safe_echo("")
        _safe_echo(click.style("=" * 55, fg="bright_blue"))
        _safe_echo(click.style(f"  ciguard {title}", fg="bright_white", bold=True))
        _safe_echo(click.style(f"  Version: {__version__}", fg="white"))
        _safe_echo(click.style(f"  Target: {self.target}", fg="white"))
        _safe_echo(click.style("=" * 55, fg="bright_blue"))

    def _print_warnings(self, warnings: list[str]) -> None:
        if not warnings:
            return
        _safe_echo("")
        _safe_echo(click.style("  Warnings:", fg="yellow", bold=True))
        for warning in warnings:
            _safe_echo(click.style(f"    [!] {warning}", fg="yellow"))

    def _print_footer(self, status: str, message: str) -> None:
        styles = {
            "fail": ("[X]", "bright_red"),
            "warn": ("[!]", "yellow"),
            "ok": ("[OK]", "green"),
        }
        mark, color = styles[status]
        _safe_echo("")
        _safe_echo(click.style("=" * 55, fg="bright_blue"))
        _safe_echo(click.style(f"  {mark} {message}", fg=color, bold=True))
        _safe_echo(click.style("=" * 55, fg="bright_blue"))
        _safe_echo("")
