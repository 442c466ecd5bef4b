"""
ciguard CLI

Command-line interface for the verification engines.

Commands:
    ciguard scan [PATH...]          - Scan files, directories or staged changes for secrets
    ciguard pin check [PATH...]     - Verify workflow actions are pinned to commit SHAs
    ciguard pin fix [PATH...]       - Pin workflow actions in place
    ciguard init                    - Create default config & allowlist files
    ciguard rules                   - List the built-in secret rules

Exit codes: 0 pass, 1 fail, 2 tool error.
"""

from __future__ import annotations

import sys
import time
from pathlib import Path
from typing import Optional

import click

from ciguard import __version__
from ciguard.core.config import (
    CONFIG_FILENAME,
    DEFAULT_WORKFLOW_DIR,
    CiguardConfig,
    generate_default_allowlist,
    generate_default_config,
)
from ciguard.core.errors import CiguardError
from ciguard.core.logs import setup_logging
from ciguard.integrations.github import (
    emit_annotations,
    emit_pin_annotations,
    get_token,
    is_github_actions,
    write_pin_summary,
    write_step_summary,
)
from ciguard.pinning.engine import PinEngine, PinResult
from ciguard.pinning.resolver import GitHubResolver
from ciguard.policy.allowlist import load_allowlist
from ciguard.policy.engine import ScanResult
from ciguard.reporting.console import SEVERITY_COLORS, ConsoleReporter, _safe_echo
from ciguard.reporting.json_reporter import JSONReporter
from ciguard.reporting.sarif import SARIFReporter
from ciguard.reporting.verdict import decide_exit_status
from ciguard.scanners.diff import staged_diff
from ciguard.scanners.rules import load_rules
from ciguard.scanners.secrets import SecretsScanner

SEVERITY_CHOICES = click.Choice(["critical", "high", "medium", "low", "info"], case_sensitive=False)
FORMAT_CHOICES = click.Choice(["text", "json", "sarif"])


@click.group()
@click.version_option(version=__version__, prog_name="ciguard")
@click.option("--verbose", "-v", count=True, help="Increase log verbosity (-vv for debug).")
@click.option("--quiet", "-q", is_flag=True, help="Only print problems.")
@click.pass_context
def cli(ctx: click.Context, verbose: int, quiet: bool) -> None:
    """
    ciguard - secret detection and action pinning for CI/CD

    Block hardcoded credentials before they are committed and keep
    workflow actions pinned to immutable commit SHAs.
    """
    ctx.ensure_object(dict)
    ctx.obj["quiet"] = quiet
    setup_logging(-1 if quiet else verbose)


# ═══════════════════════════════════════════════════════
#  ciguard scan
# ═══════════════════════════════════════════════════════
@cli.command()
@click.argument("paths", nargs=-1, type=click.Path(exists=True, path_type=Path))
@click.option("--allowlist", "allowlist_path", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              default=None, help="Secret allowlist file (one pattern per line).")
@click.option("--fail-on", type=SEVERITY_CHOICES, default=None,
              help="Minimum severity that causes a non-zero exit code (default: medium).")
@click.option("--format", "-f", "output_format", type=FORMAT_CHOICES, default=None,
              help="Output format (default: text).")
@click.option("--output", "-o", "output_file", type=click.Path(dir_okay=False), default=None,
              help="Write the report to a file.")
@click.option("--diff", "diff_file", type=click.File("r", encoding="utf-8", errors="surrogateescape"),
              default=None, help="Scan only the lines added by a unified diff ('-' for stdin).")
@click.option("--staged", is_flag=True, help="Scan only lines added in staged git changes.")
@click.option("--strict/--no-strict", default=None, help="Fail when a file cannot be scanned.")
@click.option("--config", "config_path", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help=f"Path to {CONFIG_FILENAME} configuration file.")
@click.option("--ci", is_flag=True, help="Emit GitHub Actions annotations and step summary.")
@click.pass_context
def scan(
    ctx: click.Context,
    paths: tuple[Path, ...],
    allowlist_path: Optional[Path],
    fail_on: Optional[str],
    output_format: Optional[str],
    output_file: Optional[str],
    diff_file,
    staged: bool,
    strict: Optional[bool],
    config_path: Optional[Path],
    ci: bool,
) -> None:
    """Scan for hardcoded secrets.

    Examples:

        ciguard scan

        ciguard scan src config --format json --output secrets.json

        git diff origin/main | ciguard scan --diff -

        ciguard scan --staged --allowlist .security-controls/secret-allowlist.txt
    """
    target = ", ".join(str(p) for p in paths) or ("staged changes" if staged else ".")
    quiet = ctx.obj.get("quiet", False)
    console = ConsoleReporter(target=target, quiet=quiet)
    t0 = time.time()

    try:
        config = _load_config(config_path)
        config = config.override(
            "secrets",
            fail_on=fail_on.upper() if fail_on else None,
            strict=strict,
            allowlist=str(allowlist_path) if allowlist_path else None,
        )
        allowlist = load_allowlist(Path(config.secrets.allowlist))
        scanner = SecretsScanner(config, load_rules(), allowlist)

        if staged:
            result = scanner.scan_diff(staged_diff())
        elif diff_file is not None:
            result = scanner.scan_diff(diff_file.read())
        else:
            result = scanner.scan(list(paths) or [Path(".")])
    except (CiguardError, KeyboardInterrupt) as exc:
        _abort(console, exc)

    elapsed = time.time() - t0
    fmt = output_format or config.output.format
    out_file = output_file or config.output.file
    try:
        _render_scan(result, fmt, out_file, target, console, elapsed)
        if ci or is_github_actions():
            emit_annotations(result.findings)
            write_step_summary(result, target)
    except OSError as exc:
        _abort(console, CiguardError(f"cannot write report: {exc}"))

    scanner.mark_reported()
    sys.exit(decide_exit_status(result))


# ═══════════════════════════════════════════════════════
#  ciguard pin check / fix
# ═══════════════════════════════════════════════════════
@cli.group()
def pin() -> None:
    """Verify or fix pinning of workflow action references."""


def _pin_options(func):
    options = [
        click.argument("paths", nargs=-1, type=click.Path(exists=True, path_type=Path)),
        click.option("--strict/--no-strict", default=None,
                     help="Treat resolution and parse problems as failures."),
        click.option("--reverify", is_flag=True,
                     help="Include references that are already pinned."),
        click.option("--images", is_flag=True,
                     help="Also require container and service images to be pinned by digest."),
        click.option("--format", "-f", "output_format", type=FORMAT_CHOICES, default=None,
                     help="Output format (default: text)."),
        click.option("--output", "-o", "output_file", type=click.Path(dir_okay=False), default=None,
                     help="Write the report to a file."),
        click.option("--config", "config_path", type=click.Path(dir_okay=False, path_type=Path),
                     default=None, help=f"Path to {CONFIG_FILENAME} configuration file."),
        click.option("--ci", is_flag=True, help="Emit GitHub Actions annotations and step summary."),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@pin.command("check")
@_pin_options
@click.pass_context
def pin_check(
    ctx: click.Context,
    paths: tuple[Path, ...],
    strict: Optional[bool],
    reverify: bool,
    images: bool,
    output_format: Optional[str],
    output_file: Optional[str],
    config_path: Optional[Path],
    ci: bool,
) -> None:
    """Check that every action reference is pinned to a full commit SHA.

    Example:

        ciguard pin check .github/workflows
    """
    targets = _workflow_targets(paths)
    console = ConsoleReporter(target=", ".join(str(p) for p in targets), quiet=ctx.obj.get("quiet", False))
    t0 = time.time()

    try:
        config = _load_config(config_path).override("pinning", strict=strict)
        engine = PinEngine(config, strict=strict, reverify=reverify, images=images)
        result = engine.check(targets)
    except (CiguardError, KeyboardInterrupt) as exc:
        _abort(console, exc)

    _finish_pins(engine, result, config, output_format, output_file, console, time.time() - t0, ci)


@pin.command("fix")
@_pin_options
@click.option("--dry-run", is_flag=True, help="Show what would change without writing files.")
@click.option("--export-cache", "export_cache", type=click.Path(dir_okay=False, path_type=Path),
              default=None, help="Write the resolved ref -> SHA table to a JSON file.")
@click.pass_context
def pin_fix(
    ctx: click.Context,
    paths: tuple[Path, ...],
    strict: Optional[bool],
    reverify: bool,
    images: bool,
    output_format: Optional[str],
    output_file: Optional[str],
    config_path: Optional[Path],
    ci: bool,
    dry_run: bool,
    export_cache: Optional[Path],
) -> None:
    """Pin action references to commit SHAs in place.

    Each rewritten reference keeps its original ref as a trailing comment:

        uses: actions/checkout@<sha> # v4

    Example:

        ciguard pin fix .github/workflows --strict
    """
    targets = _workflow_targets(paths)
    console = ConsoleReporter(target=", ".join(str(p) for p in targets), quiet=ctx.obj.get("quiet", False))
    t0 = time.time()

    try:
        config = _load_config(config_path).override("pinning", strict=strict)
        with GitHubResolver(config.pinning, token=get_token()) as resolver:
            engine = PinEngine(config, resolver=resolver, strict=strict, reverify=reverify, images=images)
            result = engine.fix(targets, dry_run=dry_run)
            if export_cache is not None:
                resolver.cache.export(export_cache)
    except (CiguardError, KeyboardInterrupt) as exc:
        _abort(console, exc)
    except OSError as exc:
        _abort(console, CiguardError(f"cannot export cache: {exc}"))

    _finish_pins(engine, result, config, output_format, output_file, console, time.time() - t0, ci)


# ═══════════════════════════════════════════════════════
#  ciguard init / rules
# ═══════════════════════════════════════════════════════
@cli.command()
@click.option("--path", "-p", "target_path", type=click.Path(), default=".",
              help="Directory to create config files in.")
def init(target_path: str) -> None:
    """Create default .ciguard.yaml and secret allowlist."""
    target = Path(target_path).resolve()
    target.mkdir(parents=True, exist_ok=True)

    config_file = target / CONFIG_FILENAME
    allowlist_file = target / CiguardConfig().secrets.allowlist

    for path, content in ((config_file, generate_default_config()),
                          (allowlist_file, generate_default_allowlist())):
        if path.exists():
            _safe_echo(click.style(f"  [!] {path} already exists, skipping.", fg="yellow"))
            continue
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        _safe_echo(click.style(f"  [+] Created {path}", fg="green"))

    _safe_echo("")
    _safe_echo("  Run 'ciguard scan' to look for secrets.")
    _safe_echo("  Run 'ciguard pin check' to verify workflow pinning.")


@cli.command()
def rules() -> None:
    """List the built-in secret detection rules."""
    for rule in load_rules():
        color = SEVERITY_COLORS.get(rule.severity.value, "white")
        _safe_echo(
            click.style(f"  {rule.id}  ", fg="bright_black")
            + click.style(f"{rule.severity.value:9s}", fg=color)
            + f"{rule.category:20s} {rule.title}"
        )


# ── Helpers ──

def _load_config(config_path: Optional[Path]) -> CiguardConfig:
    return CiguardConfig.load(config_path or Path.cwd() / CONFIG_FILENAME)


def _workflow_targets(paths: tuple[Path, ...]) -> list[Path]:
    if paths:
        return list(paths)
    return [Path(DEFAULT_WORKFLOW_DIR)]


def _abort(console: ConsoleReporter, exc: BaseException) -> None:
    if isinstance(exc, KeyboardInterrupt):
        console.report_error("interrupted")
    else:
        console.report_error(str(exc))
    sys.exit(decide_exit_status(exc))


def _render_scan(
    result: ScanResult,
    fmt: str,
    out_file: Optional[str],
    target: str,
    console: ConsoleReporter,
    elapsed: float,
) -> None:
    if fmt == "json":
        json_str = JSONReporter(target=target).report_scan(result, output_file=out_file)
        if not out_file:
            _safe_echo(json_str)
    elif fmt == "sarif":
        sarif_str = SARIFReporter(target=target).report_scan(result, output_file=out_file)
        if not out_file:
            _safe_echo(sarif_str)
    else:
        console.report_scan(result, elapsed)
        if out_file:
            # Also write JSON when text + output file
            JSONReporter(target=target).report_scan(result, output_file=out_file)


def _finish_pins(
    engine: PinEngine,
    result: PinResult,
    config: CiguardConfig,
    output_format: Optional[str],
    output_file: Optional[str],
    console: ConsoleReporter,
    elapsed: float,
    ci: bool,
) -> None:
    fmt = output_format or config.output.format
    out_file = output_file or config.output.file
    target = console.target

    try:
        if fmt == "json":
            json_str = JSONReporter(target=target).report_pins(result, output_file=out_file)
            if not out_file:
                _safe_echo(json_str)
        elif fmt == "sarif":
            sarif_str = SARIFReporter(target=target).report_pins(result, output_file=out_file)
            if not out_file:
                _safe_echo(sarif_str)
        else:
            console.report_pins(result, elapsed)
            if out_file:
                JSONReporter(target=target).report_pins(result, output_file=out_file)

        if ci or is_github_actions():
            emit_pin_annotations(result)
            write_pin_summary(result, target)
    except OSError as exc:
        _abort(console, CiguardError(f"cannot write report: {exc}"))

    engine.mark_reported()
    sys.exit(decide_exit_status(result))


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
