"""
ciguard Action Reference Parser

Finds ``uses: owner/repo@ref`` references in workflow and composite-action
files without a YAML parse. Each reference records the exact offsets of
its ref inside the file so the rewriter can touch that span and nothing
else.

Optionally also reports container images (``container:`` / ``services:``
blocks), which count as pinned only when they carry an ``@sha256:`` digest.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from ciguard.core.errors import ParseError
from ciguard.core.textio import Line, index_lines

FULL_SHA_RE = re.compile(r"[0-9a-fA-F]{40}")
DIGEST_MARKER = "@sha256:"

_USES_RE = re.compile(
    r"""^(?P<prefix>\s*(?:-\s+)?uses\s*:\s*)"""
    r"""(?P<open>["']?)(?P<value>[^\s"'#]+)(?P<close>(?P=open))"""
    r"""(?P<rest>.*)$"""
)
_KEY_RE = re.compile(r"^\s*(?:-\s+)?(?P<key>[A-Za-z_][\w-]*)\s*:\s*(?P<value>.*)$")


class RefKind(Enum):
    ACTION = "action"
    DOCKER = "docker"
    IMAGE = "image"


@dataclass(frozen=True)
class ActionReference:
    """One reference occurrence in a workflow file."""

    path: Path
    line: int
    kind: RefKind
    value: str
    owner: str
    repo: str
    subpath: str
    ref: str
    ref_start: int
    value_end: int
    quote: str = ""
    comment: Optional[str] = None

    @property
    def action(self) -> str:
        if self.kind is not RefKind.ACTION:
            return self.value.split("@", 1)[0]
        name = f"{self.owner}/{self.repo}"
        return f"{name}/{self.subpath}" if self.subpath else name

    @property
    def ref_end(self) -> int:
        return self.ref_start + len(self.ref)

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.owner, self.repo, self.ref)

    @property
    def is_pinned(self) -> bool:
        if self.kind is RefKind.ACTION:
            return is_full_sha(self.ref)
        return DIGEST_MARKER in self.value

    @property
    def resolvable(self) -> bool:
        return self.kind is RefKind.ACTION

    def to_dict(self) -> dict:
        return {
            "file": str(self.path).replace("\\", "/"),
            "line": self.line,
            "kind": self.kind.value,
            "action": self.action,
            "ref": self.ref,
            "pinned": self.is_pinned,
        }


@dataclass
class ParseOutcome:
    references: list[ActionReference] = field(default_factory=list)
    errors: list[ParseError] = field(default_factory=list)


def is_full_sha(ref: str) -> bool:
    return FULL_SHA_RE.fullmatch(ref) is not None


def parse_references(
    content: str,
    path: Path,
    include_pinned: bool = False,
    include_images: bool = False,
) -> ParseOutcome:
    """
    Extract references from workflow text.

    Args:
        content: Decoded file content.
        path: File the content came from (recorded on each reference).
        include_pinned: "Re-verify all" mode. When False, references that
            are already pinned are left out.
        include_images: Also report container and service images.

    Returns:
        ParseOutcome with references in file order and per-line ParseErrors.
    """
    outcome = ParseOutcome()
    image_scope = _ImageScope() if include_images else None

    for line in index_lines(content):
        stripped = line.text.lstrip()
        if not stripped or stripped.startswith("#"):
            continue

        ref = _parse_uses_line(line, path, outcome)
        if image_scope is not None:
            # The scope must see every line to track block indentation
            image = image_scope.feed(line, path, outcome)
            ref = ref or image
        if ref is None:
            continue
        if ref.is_pinned and not include_pinned:
            continue
        outcome.references.append(ref)

    return outcome


def _parse_uses_line(line: Line, path: Path, outcome: ParseOutcome) -> Optional[ActionReference]:
    match = _USES_RE.match(line.text)
    if not match:
        if re.match(r"^\s*(?:-\s+)?uses\s*:", line.text):
            outcome.errors.append(ParseError(path, line.number, line.text, "unrecognised uses value"))
        return None

    rest = match.group("rest").strip()
    comment = None
    if rest:
        if not rest.startswith("#"):
            outcome.errors.append(ParseError(path, line.number, line.text, "unexpected text after reference"))
            return None
        comment = rest

    value = match.group("value")
    quote = match.group("open")
    value_start = line.offset + match.start("value")
    value_end = line.offset + match.end("close")

    # Local actions live in the repository itself
    if value.startswith("./") or value.startswith(".github/") or value.startswith("../"):
        return None

    if value.startswith("docker://"):
        image, _, digest = value.partition(DIGEST_MARKER)
        return ActionReference(
            path=path, line=line.number, kind=RefKind.DOCKER, value=value,
            owner="", repo="", subpath="", ref=digest or _image_tag(value[len("docker://"):]),
            ref_start=value_start, value_end=value_end, quote=quote, comment=comment,
        )

    if "${{" in value:
        outcome.errors.append(ParseError(path, line.number, line.text, "expression in reference; pin status unknown"))
        return None

    target, at, ref = value.rpartition("@")
    if not at:
        outcome.errors.append(ParseError(path, line.number, line.text, "missing @<ref>"))
        return None
    parts = target.split("/")
    if len(parts) < 2 or not all(parts) or not ref:
        outcome.errors.append(ParseError(path, line.number, line.text, "expected owner/repo@ref"))
        return None

    return ActionReference(
        path=path,
        line=line.number,
        kind=RefKind.ACTION,
        value=value,
        owner=parts[0],
        repo=parts[1],
        subpath="/".join(parts[2:]),
        ref=ref,
        ref_start=value_start + len(target) + 1,
        value_end=value_end,
        quote=quote,
        comment=comment,
    )


def _image_tag(image: str) -> str:
    name = image.rsplit("/", 1)[-1]
    return name.split(":", 1)[1] if ":" in name else "latest"


class _ImageScope:
    """Tracks container/services blocks by indentation."""

    def __init__(self) -> None:
        self.container_indent: Optional[int] = None
        self.services_indent: Optional[int] = None

    def feed(self, line: Line, path: Path, outcome: ParseOutcome) -> Optional[ActionReference]:
        indent = len(line.text) - len(line.text.lstrip(" "))
        if self.container_indent is not None and indent <= self.container_indent:
            self.container_indent = None
        if self.services_indent is not None and indent <= self.services_indent:
            self.services_indent = None

        match = _KEY_RE.match(line.text)
        if not match:
            return None
        key = match.group("key")
        raw_value = match.group("value")

        if key == "container":
            value = _strip_comment(raw_value)
            if value and value[0] not in "{[|>":
                return self._image_ref(line, path, match.start("value"), raw_value, outcome)
            if not value:
                self.container_indent = indent
            return None
        if key == "services":
            self.services_indent = indent
            return None
        if key == "image" and (self.container_indent is not None or self.services_indent is not None):
            return self._image_ref(line, path, match.start("value"), raw_value, outcome)
        return None

    @staticmethod
    def _image_ref(
        line: Line, path: Path, start: int, raw_value: str, outcome: ParseOutcome
    ) -> Optional[ActionReference]:
        text = _strip_comment(raw_value)
        quote = text[0] if text[:1] in ("'", '"') else ""
        image = text.strip("'\"")
        if not image:
            return None
        if "${{" in image:
            outcome.errors.append(ParseError(path, line.number, line.text, "expression in image; pin status unknown"))
            return None
        _, _, digest = image.partition(DIGEST_MARKER)
        value_start = line.offset + start + len(quote)
        return ActionReference(
            path=path, line=line.number, kind=RefKind.IMAGE, value=image,
            owner="", repo="", subpath="", ref=digest or _image_tag(image),
            ref_start=value_start, value_end=value_start + len(image) + len(quote), quote=quote,
        )


def _strip_comment(value: str) -> str:
    if " #" in value:
        value = value.split(" #", 1)[0]
    return value.strip()
