"""
Tests for Pin Rewriter and Pinning Engine
"""

import time
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import requests

from ciguard.core.config import CiguardConfig, PinningConfig
from ciguard.core.errors import CiguardError, DeadlineExceeded, ResolutionKind
from ciguard.pinning.engine import CHECK, FIX, PinEngine
from ciguard.pinning.parser import parse_references
from ciguard.pinning.resolver import GitHubResolver, ResolvedPin
from ciguard.pinning.rewriter import rewrite, unified_diff

SHA_V4 = "b4ffde65f46336ab88eb53be808477a3936bae11"
SHA_MAIN = "8e5e7e5ab8b370d6c329ec480221332ada57f0ab"


def pin_for(ref, sha: str) -> ResolvedPin:
    return ResolvedPin(ref.owner, ref.repo, ref.ref, sha, datetime.now(timezone.utc))


def resolver_for(session) -> GitHubResolver:
    return GitHubResolver(PinningConfig(), session=session, sleep=lambda _: None)


class TestRewrite:
    """Tests for the span-based rewriter."""

    def test_rewrite_keeps_ref_as_comment(self):
        """The ref is replaced by the SHA and kept as a comment."""
        content = "steps:\n  - uses: exampleorg/exampleaction@v4\n"
        (ref,) = parse_references(content, Path("ci.yml")).references

        updated = rewrite(content, [(ref, pin_for(ref, SHA_V4))])

        assert updated == f"steps:\n  - uses: exampleorg/exampleaction@{SHA_V4} # v4\n"

    def test_rewrite_is_idempotent(self):
        """A second parse/rewrite pass changes nothing."""
        content = "  - uses: exampleorg/exampleaction@v4\n"
        (ref,) = parse_references(content, Path("ci.yml")).references
        once = rewrite(content, [(ref, pin_for(ref, SHA_V4))])

        refs = parse_references(once, Path("ci.yml")).references
        assert refs == []
        assert rewrite(once, []) == once

        pinned = parse_references(once, Path("ci.yml"), include_pinned=True).references
        assert rewrite(once, [(r, pin_for(r, SHA_V4)) for r in pinned]) == once

    def test_quotes_and_existing_comment_preserved(self):
        """Closing quotes and existing comments survive."""
        content = '      - uses: "actions/setup-python@main"  # python\r\n'
        (ref,) = parse_references(content, Path("ci.yml")).references

        updated = rewrite(content, [(ref, pin_for(ref, SHA_MAIN))])

        assert updated == f'      - uses: "actions/setup-python@{SHA_MAIN}" # main  # python\r\n'

    def test_line_count_unchanged(self, workflow_file: Path):
        """Rewriting never adds or removes lines."""
        content = workflow_file.read_text()
        refs = parse_references(content, workflow_file).references

        updated = rewrite(content, [(r, pin_for(r, SHA_MAIN)) for r in refs])

        assert updated.count("\n") == content.count("\n")
        assert updated.splitlines()[0] == "name: CI"

    def test_stale_reference_rejected(self):
        """A reference that no longer matches the content is an error."""
        content = "- uses: actions/checkout@v4\n"
        (ref,) = parse_references(content, Path("ci.yml")).references

        with pytest.raises(CiguardError):
            rewrite("- uses: actions/checkout@v3\n", [(ref, pin_for(ref, SHA_V4))])

    def test_unified_diff(self):
        """The diff shows only changed lines."""
        diff = unified_diff("a\nb\n", "a\nc\n", "ci.yml")
        assert "-b" in diff
        assert "+c" in diff
        assert "a/ci.yml" in diff


class TestPinCheck:
    """Tests for pin check."""

    def test_unpinned_references_fail(self, config: CiguardConfig, workflow_file: Path):
        """Any unpinned action fails a check."""
        result = PinEngine(config).check([workflow_file.parent])

        assert result.mode == CHECK
        assert [r.ref for r in result.unpinned] == ["v4", "main"]
        assert result.should_fail
        assert len(result.violations()) == 2

    def test_all_pinned_passes(self, config: CiguardConfig, temp_dir: Path):
        """A fully pinned workflow passes."""
        wf = temp_dir / "ok.yml"
        wf.write_text(f"steps:\n  - uses: actions/checkout@{SHA_V4} # v4\n  - uses: ./local\n")

        result = PinEngine(config).check([wf])

        assert result.references == []
        assert result.passed

    def test_reverify_includes_pinned(self, config: CiguardConfig, workflow_file: Path):
        """Re-verify mode lists pinned references too."""
        result = PinEngine(config, reverify=True).check([workflow_file])

        assert len(result.references) == 3
        assert len(result.unpinned) == 2

    def test_check_never_writes(self, config: CiguardConfig, workflow_file: Path):
        """Check mode is read-only."""
        before = workflow_file.read_bytes()
        PinEngine(config).check([workflow_file])
        assert workflow_file.read_bytes() == before

    def test_non_workflow_files_ignored(self, config: CiguardConfig, temp_dir: Path):
        """Only YAML files are read when walking a directory."""
        (temp_dir / "notes.md").write_text("- uses: actions/checkout@v4\n")
        assert PinEngine(config).check([temp_dir]).files_scanned == 0

    def test_check_respects_deadline(self, workflow_file: Path):
        """A check started after the deadline raises DeadlineExceeded."""
        engine = PinEngine(CiguardConfig(deadline_seconds=0.01))
        time.sleep(0.05)

        with pytest.raises(DeadlineExceeded) as excinfo:
            engine.check([workflow_file])
        assert excinfo.value.pending == 1

    def test_parse_errors_are_warnings(self, config: CiguardConfig, temp_dir: Path):
        """Malformed lines warn in lenient mode and fail in strict mode."""
        wf = temp_dir / "ci.yml"
        wf.write_text("- uses: org/action@${{ inputs.ref }}\n")

        lenient = PinEngine(config).check([wf])
        strict = PinEngine(config, strict=True).check([wf])

        assert lenient.passed
        assert lenient.warnings
        assert strict.should_fail


class TestPinFix:
    """Tests for pin fix."""

    def test_fix_rewrites_in_place(self, config: CiguardConfig, temp_dir: Path, make_session):
        """Unpinned actions are pinned; the ref stays as a comment."""
        wf = temp_dir / "ci.yml"
        wf.write_text("steps:\n  - uses: exampleorg/exampleaction@v4\n")
        resolver = resolver_for(make_session({"v4": SHA_V4}))

        result = PinEngine(config, resolver=resolver).fix([wf])

        assert wf.read_text() == f"steps:\n  - uses: exampleorg/exampleaction@{SHA_V4} # v4\n"
        assert result.mode == FIX
        assert result.passed
        assert result.rewrites[0].replaced == 1
        assert result.rewrites[0].written

    def test_second_fix_is_noop(self, config: CiguardConfig, temp_dir: Path, make_session):
        """Running fix twice leaves the file unchanged the second time."""
        wf = temp_dir / "ci.yml"
        wf.write_text("steps:\n  - uses: exampleorg/exampleaction@v4\n")
        session = make_session({"v4": SHA_V4})

        PinEngine(config, resolver=resolver_for(session)).fix([wf])
        first = wf.read_bytes()
        result = PinEngine(config, resolver=resolver_for(session)).fix([wf])

        assert wf.read_bytes() == first
        assert result.rewrites == []
        assert session.get.call_count == 1

    def test_shared_refs_resolved_once(self, config: CiguardConfig, temp_dir: Path, make_session):
        """The same action@ref across files costs one request."""
        for name in ("a.yml", "b.yml", "c.yml"):
            (temp_dir / name).write_text("- uses: actions/checkout@v4\n")
        session = make_session({"v4": SHA_V4})

        result = PinEngine(config, resolver=resolver_for(session)).fix([temp_dir])

        assert session.get.call_count == 1
        assert len(result.rewrites) == 3

    def test_dry_run_does_not_write(self, config: CiguardConfig, workflow_file: Path, make_session):
        """Dry runs report the diff without touching files."""
        before = workflow_file.read_bytes()
        resolver = resolver_for(make_session({"v4": SHA_V4, "main": SHA_MAIN}))

        result = PinEngine(config, resolver=resolver).fix([workflow_file], dry_run=True)

        assert workflow_file.read_bytes() == before
        assert result.rewrites[0].replaced == 2
        assert not result.rewrites[0].written
        assert SHA_MAIN in result.rewrites[0].diff

    def test_undecodable_bytes_round_trip(self, config: CiguardConfig, temp_dir: Path, make_session):
        """Bytes outside the changed span are preserved exactly."""
        wf = temp_dir / "ci.yml"
        wf.write_bytes(b"# caf\xe9\r\n- uses: actions/checkout@v4\r\n")
        resolver = resolver_for(make_session({"v4": SHA_V4}))

        PinEngine(config, resolver=resolver).fix([wf])

        assert wf.read_bytes() == b"# caf\xe9\r\n- uses: actions/checkout@" + SHA_V4.encode() + b" # v4\r\n"

    def test_unresolvable_lenient(self, config: CiguardConfig, temp_dir: Path):
        """Timeouts leave the reference alone and only warn in lenient mode."""
        wf = temp_dir / "ci.yml"
        wf.write_text("- uses: exampleorg/exampleaction@v4\n")
        before = wf.read_bytes()
        session = MagicMock(spec=requests.Session)
        session.get.side_effect = requests.Timeout("timed out")

        result = PinEngine(config, resolver=resolver_for(session)).fix([wf])

        assert wf.read_bytes() == before
        assert result.resolution_errors[0].kind is ResolutionKind.NETWORK
        assert result.passed
        assert any("cannot resolve" in w for w in result.warnings)

    def test_unresolvable_strict(self, config: CiguardConfig, temp_dir: Path):
        """The same timeouts fail the run in strict mode."""
        wf = temp_dir / "ci.yml"
        wf.write_text("- uses: exampleorg/exampleaction@v4\n")
        session = MagicMock(spec=requests.Session)
        session.get.side_effect = requests.Timeout("timed out")

        result = PinEngine(config, resolver=resolver_for(session), strict=True).fix([wf])

        assert result.should_fail

    def test_fix_needs_resolver(self, config: CiguardConfig, workflow_file: Path):
        """Fix mode cannot run without a resolver."""
        with pytest.raises(ValueError):
            PinEngine(config).fix([workflow_file])
