"""
Tests for Unified Diff Input
"""

import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from ciguard.core.errors import ConfigError
from ciguard.scanners.diff import parse_unified_diff, staged_diff


class TestParseUnifiedDiff:
    """Tests for parse_unified_diff."""

    def test_added_lines_with_numbers(self):
        """Added lines carry their new-side line numbers."""
        diff = (
            "diff --git a/a.py b/a.py\n"
            "index 1111111..2222222 100644\n"
            "--- a/a.py\n"
            "+++ b/a.py\n"
            "@@ -10,3 +10,4 @@ def f():\n"
            " one\n"
            "-two\n"
            "+TWO\n"
            "+three\n"
            " four\n"
        )
        (diff_file,) = parse_unified_diff(diff)

        assert diff_file.path == Path("a.py")
        assert diff_file.added == [(11, "TWO"), (12, "three")]

    def test_multiple_files_and_hunks(self):
        """Each file collects lines from all of its hunks."""
        diff = (
            "--- a/a.py\n+++ b/a.py\n"
            "@@ -1 +1 @@\n-x\n+y\n"
            "@@ -20,0 +21,1 @@\n+z\n"
            "--- /dev/null\n+++ b/new.txt\n"
            "@@ -0,0 +1,2 @@\n+first\n+second\n"
        )
        files = parse_unified_diff(diff)

        assert [f.path for f in files] == [Path("a.py"), Path("new.txt")]
        assert files[0].added == [(1, "y"), (21, "z")]
        assert files[1].added == [(1, "first"), (2, "second")]

    def test_added_line_that_looks_like_header(self):
        """Content lines inside a hunk are never read as headers."""
        diff = "--- a/a.txt\n+++ b/a.txt\n@@ -0,0 +1,2 @@\n+++ not a header\n+--- nor this\n"
        (diff_file,) = parse_unified_diff(diff)

        assert diff_file.added == [(1, "++ not a header"), (2, "--- nor this")]

    def test_deleted_file_skipped(self):
        """Deletions add nothing."""
        diff = "--- a/gone.py\n+++ /dev/null\n@@ -1,2 +0,0 @@\n-a\n-b\n"
        assert parse_unified_diff(diff) == []

    def test_no_newline_marker(self):
        """The no-newline marker is metadata."""
        diff = "--- a/a\n+++ b/a\n@@ -1 +1 @@\n-a\n\\ No newline at end of file\n+b\n\\ No newline at end of file\n"
        (diff_file,) = parse_unified_diff(diff)
        assert diff_file.added == [(1, "b")]


class TestStagedDiff:
    """Tests for reading staged changes from git."""

    @patch("ciguard.scanners.diff.subprocess.run")
    def test_runs_git(self, mock_run):
        """The staged diff comes from git diff --cached."""
        mock_run.return_value = subprocess.CompletedProcess(args=[], returncode=0, stdout="diff", stderr="")

        assert staged_diff() == "diff"
        cmd = mock_run.call_args[0][0]
        assert cmd[:3] == ["git", "diff", "--cached"]
        assert "-U0" in cmd

    @patch("ciguard.scanners.diff.subprocess.run")
    def test_git_failure(self, mock_run):
        """A failing git command is a configuration error."""
        mock_run.return_value = subprocess.CompletedProcess(
            args=[], returncode=128, stdout="", stderr="fatal: not a git repository"
        )
        with pytest.raises(ConfigError, match="not a git repository"):
            staged_diff()

    @patch("ciguard.scanners.diff.subprocess.run", side_effect=FileNotFoundError("git"))
    def test_git_missing(self, mock_run):
        """A missing git binary is a configuration error."""
        with pytest.raises(ConfigError):
            staged_diff()
