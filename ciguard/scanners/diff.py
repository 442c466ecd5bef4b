"""
Unified diff input for pre-commit / pre-push style scans.

Only added lines are scanned; line numbers refer to the new side of the
diff so findings point at the working-tree file.
"""

from __future__ import annotations

import logging
import re
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from ciguard.core.errors import ConfigError
from ciguard.core.textio import split_lines

logger = logging.getLogger(__name__)

_HUNK_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")
_NEW_FILE_RE = re.compile(r"^\+\+\+ (?:b/)?(.+?)\t?$")


@dataclass
class DiffFile:
    path: Path
    added: list[tuple[int, str]] = field(default_factory=list)


def parse_unified_diff(text: str) -> list[DiffFile]:
    """Collect added lines per file from a unified diff."""
    files: list[DiffFile] = []
    current: Optional[DiffFile] = None
    new_line = 0
    old_left = new_left = 0

    for raw, _ in split_lines(text):
        # Inside a hunk every line is content, even one that looks like a header
        if current is not None and (old_left > 0 or new_left > 0):
            if raw.startswith("+"):
                current.added.append((new_line, raw[1:]))
                new_line += 1
                new_left -= 1
            elif raw.startswith("-"):
                old_left -= 1
            elif raw.startswith(" "):
                new_line += 1
                new_left -= 1
                old_left -= 1
            continue

        if raw.startswith("+++ "):
            match = _NEW_FILE_RE.match(raw)
            target = match.group(1) if match else ""
            if not target or target == "/dev/null":
                current = None
            else:
                current = DiffFile(path=Path(target))
                files.append(current)
            continue
        if raw.startswith("--- ") or raw.startswith("diff --git"):
            continue
        hunk = _HUNK_RE.match(raw)
        if hunk:
            old_left = int(hunk.group(2)) if hunk.group(2) is not None else 1
            new_line = int(hunk.group(3))
            new_left = int(hunk.group(4)) if hunk.group(4) is not None else 1
        # anything else ("\ No newline", index lines) is metadata

    return [f for f in files if f.added]


def staged_diff(cwd: Optional[Path] = None) -> str:
    """Return the staged diff of added/copied/modified files."""
    cmd = ["git", "diff", "--cached", "-U0", "--no-color", "--diff-filter=ACM"]
    try:
        proc = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="surrogateescape",
            timeout=60,
        )
    except FileNotFoundError as exc:
        raise ConfigError("git is not installed; cannot read staged changes") from exc
    except subprocess.TimeoutExpired as exc:
        raise ConfigError("git diff timed out") from exc

    if proc.returncode != 0:
        raise ConfigError(f"git diff failed: {proc.stderr.strip()}")
    logger.debug("staged diff: %d bytes", len(proc.stdout))
    return proc.stdout
