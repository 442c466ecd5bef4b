"""
ciguard Pinning Engine

Drives parse -> resolve -> rewrite over a set of workflow files.

    check: report every eligible reference that is not pinned to a SHA
    fix:   resolve and rewrite those references in place

Resolution failures are warnings in lenient mode and failures in strict
mode. In check mode, unpinned references always fail the run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Union

from ciguard.core.config import CiguardConfig
from ciguard.core.errors import ParseError, ResolutionError, ScanIOError, ValidationError
from ciguard.core.scanner import BaseScanner, RunState
from ciguard.core.textio import read_text_bounded, write_text
from ciguard.pinning.parser import ActionReference, RefKind, parse_references
from ciguard.pinning.resolver import CacheKey, GitHubResolver, ResolvedPin
from ciguard.pinning.rewriter import rewrite, unified_diff

logger = logging.getLogger(__name__)

CHECK = "check"
FIX = "fix"


@dataclass
class FileRewrite:
    path: Path
    replaced: int
    diff: str
    written: bool

    def to_dict(self) -> dict:
        return {
            "file": str(self.path).replace("\\", "/"),
            "replaced": self.replaced,
            "written": self.written,
            "diff": self.diff,
        }


@dataclass
class PinResult:
    """Outcome of one pin check or fix run."""

    mode: str = CHECK
    strict: bool = False
    references: list[ActionReference] = field(default_factory=list)
    pins: dict[CacheKey, ResolvedPin] = field(default_factory=dict)
    resolution_errors: list[ResolutionError] = field(default_factory=list)
    parse_errors: list[ParseError] = field(default_factory=list)
    errors: list[ScanIOError] = field(default_factory=list)
    rewrites: list[FileRewrite] = field(default_factory=list)
    files_scanned: int = 0

    @property
    def unpinned(self) -> list[ActionReference]:
        """References still not pinned at the end of the run."""
        remaining = []
        for ref in self.references:
            if ref.is_pinned:
                continue
            if self.mode == FIX and ref.resolvable and ref.key in self.pins:
                continue
            remaining.append(ref)
        return remaining

    @property
    def warnings(self) -> list[str]:
        messages = [str(e) for e in self.errors]
        messages += [str(e) for e in self.parse_errors]
        messages += [f"cannot resolve {e}" for e in self.resolution_errors]
        if self.mode == FIX:
            messages += [
                f"{ref.path}:{ref.line}: {ref.kind.value} reference not pinned by digest: {ref.value}"
                for ref in self.unpinned
                if not ref.resolvable
            ]
        return messages

    @property
    def should_fail(self) -> bool:
        if self.mode == CHECK and self.unpinned:
            return True
        if self.strict:
            return bool(self.errors or self.parse_errors or self.resolution_errors or self.unpinned)
        return False

    @property
    def passed(self) -> bool:
        return not self.should_fail

    def violations(self) -> list[ValidationError]:
        return [
            ValidationError(ref.path, ref.line, f"{ref.kind.value} not pinned to an immutable id: {ref.value}")
            for ref in self.unpinned
        ]


class PinEngine(BaseScanner):
    """
    Verifies and fixes action pinning in workflow files.
    """

    name = "pinning"
    suffixes = (".yml", ".yaml")

    def __init__(
        self,
        config: CiguardConfig,
        resolver: Optional[GitHubResolver] = None,
        strict: Optional[bool] = None,
        reverify: bool = False,
        images: bool = False,
    ) -> None:
        super().__init__(config)
        self._advance(RunState.LOADING)
        self.settings = config.pinning
        self.resolver = resolver
        self.strict = self.settings.strict if strict is None else strict
        self.reverify = reverify
        self.images = images

    def scan(self, paths: Iterable[Path]) -> PinResult:
        return self.check(paths)

    def check(self, paths: Iterable[Path]) -> PinResult:
        result = PinResult(mode=CHECK, strict=self.strict)
        self._advance(RunState.PROCESSING)
        self._load(paths, result)
        self._advance(RunState.AGGREGATING)
        return result

    def fix(self, paths: Iterable[Path], dry_run: bool = False) -> PinResult:
        if self.resolver is None:
            raise ValueError("fix mode needs a resolver")

        result = PinResult(mode=FIX, strict=self.strict)
        self._advance(RunState.PROCESSING)
        contents = self._load(paths, result)

        keys = sorted({ref.key for ref in result.references if ref.resolvable})
        logger.info("resolving %d unique reference(s)", len(keys))
        outcomes = self.run_parallel(self._resolve, keys, self.settings.workers)
        for key, outcome in zip(keys, outcomes):
            if isinstance(outcome, ResolutionError):
                logger.warning("cannot resolve %s", outcome)
                result.resolution_errors.append(outcome)
            else:
                result.pins[key] = outcome

        self._advance(RunState.AGGREGATING)
        for index, (path, content) in enumerate(contents.items()):
            self.check_deadline(pending=len(contents) - index)
            pairs = [
                (ref, result.pins[ref.key])
                for ref in result.references
                if ref.path == path and ref.resolvable and ref.key in result.pins
            ]
            updated = rewrite(content, pairs)
            if updated == content:
                continue
            if not dry_run:
                try:
                    write_text(path, updated)
                except OSError as exc:
                    result.errors.append(ScanIOError(path, f"cannot write: {exc.strerror or exc}"))
                    continue
            replaced = sum(1 for ref, _ in pairs if not ref.is_pinned)
            result.rewrites.append(
                FileRewrite(path, replaced, unified_diff(content, updated, str(path)), written=not dry_run)
            )
        return result

    def _load(self, paths: Iterable[Path], result: PinResult) -> dict[Path, str]:
        contents: dict[Path, str] = {}
        files = self._iter_files(paths)
        for index, path in enumerate(files):
            self.check_deadline(pending=len(files) - index)
            try:
                content = read_text_bounded(path, self.settings.max_file_size)
            except ScanIOError as exc:
                logger.warning("skipping %s", exc)
                result.errors.append(exc)
                continue
            parsed = parse_references(
                content, path, include_pinned=self.reverify, include_images=self.images
            )
            for error in parsed.errors:
                logger.warning("%s", error)
            result.references.extend(parsed.references)
            result.parse_errors.extend(parsed.errors)
            result.files_scanned += 1
            contents[path] = content
        return contents

    def _resolve(self, key: CacheKey) -> Union[ResolvedPin, ResolutionError]:
        owner, repo, ref = key
        try:
            return self.resolver.resolve(owner, repo, ref)
        except ResolutionError as exc:
            return exc


def describe(ref: ActionReference) -> str:
    if ref.kind is RefKind.ACTION:
        return f"{ref.action}@{ref.ref}"
    return ref.value
