"""
Shannon entropy heuristic for secrets that no named rule recognises.

High entropy (>4.5) often indicates cryptographic material; human-readable
identifiers usually stay below 3.5. The threshold and minimum length are
configuration values, not constants.
"""

from __future__ import annotations

import math
import re
from collections import Counter
from typing import Iterator

TOKEN_CHARS = r"A-Za-z0-9+/=_\-"
_TOKEN_RE = re.compile(rf"[{TOKEN_CHARS}]+")


def shannon_entropy(data: str) -> float:
    """
    Calculate the Shannon entropy of a string in bits per character.

    Computed over the UTF-8 byte distribution, so the result lies between
    0.0 and 8.0.
    """
    raw = data.encode("utf-8", "surrogateescape")
    if not raw:
        return 0.0
    counts = Counter(raw)
    total = len(raw)
    return -sum((n / total) * math.log2(n / total) for n in counts.values())


def is_mixed(token: str) -> bool:
    """Mixed case letters plus digits, the shape of generated credentials."""
    return (
        any(c.islower() for c in token)
        and any(c.isupper() for c in token)
        and any(c.isdigit() for c in token)
    )


def high_entropy_tokens(
    line: str,
    threshold: float,
    min_length: int,
) -> Iterator[tuple[int, int, float]]:
    """Yield (start, end, entropy) for candidate tokens on a line."""
    for match in _TOKEN_RE.finditer(line):
        token = match.group()
        if len(token) < min_length or not is_mixed(token):
            continue
        entropy = shannon_entropy(token)
        if entropy > threshold:
            yield match.start(), match.end(), entropy
