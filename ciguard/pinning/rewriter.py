"""
ciguard Pin Rewriter

Rewrites resolved references in place:

    uses: actions/checkout@v4          ->  uses: actions/checkout@<sha> # v4
    - uses: "org/action@main"  # ci    ->  - uses: "org/action@<sha>" # main  # ci

Only the span from the start of the ref to the end of the value (closing
quote included) is replaced; every other byte, comments and line endings
included, is copied through. A reference that is already pinned is never
touched, which makes a second pass a no-op.
"""

from __future__ import annotations

import difflib
from typing import Sequence

from ciguard.core.errors import CiguardError
from ciguard.core.textio import split_lines
from ciguard.pinning.parser import ActionReference, RefKind
from ciguard.pinning.resolver import ResolvedPin


def replacement(ref: ActionReference, pin: ResolvedPin) -> str:
    return f"{pin.commit_sha}{ref.quote} # {ref.ref}"


def rewrite(content: str, resolved: Sequence[tuple[ActionReference, ResolvedPin]]) -> str:
    """Return content with every resolved, unpinned reference pinned.

    A single left-to-right pass over the original text; references must not
    overlap.
    """
    edits = sorted(
        (
            (ref, pin)
            for ref, pin in resolved
            if ref.kind is RefKind.ACTION and not ref.is_pinned
        ),
        key=lambda item: item[0].ref_start,
    )

    parts: list[str] = []
    cursor = 0
    for ref, pin in edits:
        if ref.ref_start < cursor:
            raise CiguardError(f"{ref.path}:{ref.line}: overlapping reference spans")
        if content[ref.ref_start:ref.ref_end] != ref.ref:
            raise CiguardError(f"{ref.path}:{ref.line}: content changed since it was parsed")
        if "\n" in content[ref.ref_start:ref.value_end]:
            raise CiguardError(f"{ref.path}:{ref.line}: reference span crosses a line break")
        parts.append(content[cursor:ref.ref_start])
        parts.append(replacement(ref, pin))
        cursor = ref.value_end
    parts.append(content[cursor:])
    return "".join(parts)


def unified_diff(before: str, after: str, path: str) -> str:
    """Line diff of a rewrite, for the fix summary."""
    return "".join(
        difflib.unified_diff(
            [body + ending for body, ending in split_lines(before)],
            [body + ending for body, ending in split_lines(after)],
            fromfile=f"a/{path}",
            tofile=f"b/{path}",
            n=0,
        )
    )
