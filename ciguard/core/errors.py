"""
ciguard Error Types

Configuration errors abort a run before any work starts. Per-file and
per-line errors (IO, parse, resolution) are recorded on the result objects
and never abort the run on their own.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Optional


class CiguardError(Exception):
    """Base class for all ciguard errors."""


class ConfigError(CiguardError):
    """Invalid configuration, rule or allowlist file."""

    def __init__(self, message: str, path: Optional[Path] = None, line: Optional[int] = None):
        self.path = path
        self.line = line
        where = ""
        if path is not None:
            where = f"{path}:{line}: " if line is not None else f"{path}: "
        super().__init__(f"{where}{message}")


class ScanIOError(CiguardError):
    """A file could not be read. The file is skipped, the run continues."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")

    def to_dict(self) -> dict:
        return {"file": str(self.path), "error": self.reason}


class FileTooLargeError(ScanIOError):
    def __init__(self, path: Path, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(path, f"file size {size} bytes exceeds limit of {limit} bytes")


class ParseError(CiguardError):
    """A malformed reference line. The line is skipped with a warning."""

    def __init__(self, path: Path, line: int, text: str, reason: str):
        self.path = path
        self.line = line
        self.text = text
        self.reason = reason
        super().__init__(f"{path}:{line}: {reason}: {text.strip()}")

    def to_dict(self) -> dict:
        return {
            "file": str(self.path),
            "line": self.line,
            "text": self.text.strip(),
            "error": self.reason,
        }


class ResolutionKind(Enum):
    NETWORK = "network"
    NOT_FOUND = "not-found"
    RATE_LIMITED = "rate-limited"


class ResolutionError(CiguardError):
    """A mutable reference could not be resolved to a commit SHA."""

    def __init__(self, owner: str, repo: str, ref: str, kind: ResolutionKind, detail: str = ""):
        self.owner = owner
        self.repo = repo
        self.ref = ref
        self.kind = kind
        self.detail = detail
        msg = f"{owner}/{repo}@{ref}: {kind.value}"
        if detail:
            msg += f" ({detail})"
        super().__init__(msg)

    def to_dict(self) -> dict:
        return {
            "action": f"{self.owner}/{self.repo}",
            "ref": self.ref,
            "kind": self.kind.value,
            "detail": self.detail,
        }


class ValidationError(CiguardError):
    """A blocking finding or an unpinned reference present at the end of a run."""

    def __init__(self, path: Path, line: int, message: str):
        self.path = path
        self.line = line
        self.message = message
        super().__init__(f"{path}:{line}: {message}")

    def to_dict(self) -> dict:
        return {"file": str(self.path), "line": self.line, "message": self.message}


class DeadlineExceeded(CiguardError):
    """The run did not finish within the configured deadline."""

    def __init__(self, seconds: float, pending: int = 0):
        self.seconds = seconds
        self.pending = pending
        super().__init__(
            f"run exceeded deadline of {seconds:g}s with {pending} unit(s) of work pending"
        )
