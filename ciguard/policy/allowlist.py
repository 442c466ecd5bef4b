"""
ciguard Secret Allowlist

Loads suppression patterns from a plain-text allowlist file:

    # comment
    test-token-[0-9]+             regular expression
    literal:sk_test_              literal text
    tests/fixtures/*::.*          pattern scoped to files matching a glob

Entries only ever suppress findings; they never disable a rule. Every
pattern is compiled at load time so a bad line fails the run before any
scanning starts.
"""

from __future__ import annotations

import fnmatch
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from ciguard.core.errors import ConfigError
from ciguard.core.finding import Finding

LITERAL_PREFIX = "literal:"
SCOPE_SEPARATOR = "::"


@dataclass(frozen=True)
class AllowlistEntry:
    """A single suppression pattern."""

    raw: str
    pattern: re.Pattern
    path_glob: Optional[str] = None
    literal: bool = False
    source_line: Optional[int] = None

    @classmethod
    def parse(cls, text: str, source: Optional[Path] = None, line: Optional[int] = None) -> "AllowlistEntry":
        path_glob = None
        body = text
        if SCOPE_SEPARATOR in text:
            scope, _, rest = text.partition(SCOPE_SEPARATOR)
            if scope and rest:
                path_glob = normalize_path(scope)
                body = rest

        literal = body.startswith(LITERAL_PREFIX)
        if literal:
            body = body[len(LITERAL_PREFIX):]
            if not body:
                raise ConfigError("empty literal allowlist entry", path=source, line=line)
            expr = re.escape(body)
        else:
            expr = body

        try:
            compiled = re.compile(expr)
        except re.error as exc:
            raise ConfigError(f"invalid allowlist pattern {body!r}: {exc}", path=source, line=line) from exc

        return cls(raw=text, pattern=compiled, path_glob=path_glob, literal=literal, source_line=line)

    def in_scope(self, path: str) -> bool:
        if self.path_glob is None:
            return True
        # Relative globs also match below an absolute scan root
        return fnmatch.fnmatchcase(path, self.path_glob) or fnmatch.fnmatchcase(
            path, "*/" + self.path_glob
        )

    def matches(self, *texts: Optional[str]) -> bool:
        return any(text is not None and self.pattern.search(text) for text in texts)


def normalize_path(path: str) -> str:
    return path.replace("\\", "/")


def load_allowlist(path: Optional[Path]) -> list[AllowlistEntry]:
    """Load allowlist entries; a missing file means no entries."""
    if path is None or not path.exists():
        return []

    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"cannot read allowlist: {exc}", path=path) from exc

    entries = []
    for line_no, line in enumerate(content.splitlines(), start=1):
        text = line.strip()
        if not text or text.startswith("#"):
            continue
        entries.append(AllowlistEntry.parse(text, source=path, line=line_no))
    return entries


def is_allowed(
    finding: Finding,
    entries: Iterable[AllowlistEntry],
    secret: Optional[str] = None,
    excerpt: Optional[str] = None,
) -> bool:
    """
    True if any entry suppresses the finding.

    An entry matches the finding's file path, its own redacted span
    (``excerpt``) or its raw secret text (``secret``, only available
    transiently while the scan runs). Neither the excerpt nor the secret
    covers the rest of the line, so an entry written for one token never
    hides another finding beside it. Path-scoped entries only apply to
    files inside their scope. Matching is case-sensitive.
    """
    path = normalize_path(finding.path_str)
    for entry in entries:
        if not entry.in_scope(path):
            continue
        if entry.matches(excerpt, path, secret):
            return True
    return False
