"""
ciguard Content Reading and Line Indexing

Shared by both engines. Files are decoded as UTF-8 with surrogateescape so
that any byte sequence survives a read/modify/write cycle unchanged.
"""

from __future__ import annotations

import fnmatch
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, Sequence

from ciguard.core.errors import FileTooLargeError, ScanIOError

ENCODING = "utf-8"
ERRORS = "surrogateescape"
BINARY_SNIFF_BYTES = 8192

_LINE_BREAK_RE = re.compile(r"\r\n|\n|\r")


@dataclass(frozen=True)
class Line:
    number: int
    offset: int
    text: str
    ending: str


def read_bytes_bounded(path: Path, max_bytes: int) -> bytes:
    """Read at most max_bytes from path.

    Raises FileTooLargeError when the file is bigger than the limit and
    ScanIOError when it cannot be read at all.
    """
    try:
        size = path.stat().st_size
        if size > max_bytes:
            raise FileTooLargeError(path, size, max_bytes)
        with open(path, "rb") as fh:
            data = fh.read(max_bytes + 1)
    except FileTooLargeError:
        raise
    except OSError as exc:
        raise ScanIOError(path, exc.strerror or str(exc)) from exc

    # The file may have grown between stat() and read()
    if len(data) > max_bytes:
        raise FileTooLargeError(path, len(data), max_bytes)
    return data


def is_binary(data: bytes) -> bool:
    return b"\0" in data[:BINARY_SNIFF_BYTES]


def decode(data: bytes) -> str:
    return data.decode(ENCODING, ERRORS)


def encode(text: str) -> bytes:
    return text.encode(ENCODING, ERRORS)


def read_text_bounded(path: Path, max_bytes: int) -> str:
    return decode(read_bytes_bounded(path, max_bytes))


def write_text(path: Path, text: str) -> None:
    with open(path, "wb") as fh:
        fh.write(encode(text))


def split_lines(text: str) -> list[tuple[str, str]]:
    """Split text into (body, ending) pairs.

    Only \\n, \\r\\n and \\r end a line. Form feeds, vertical tabs and the
    Unicode line separators stay inside the line, matching editor and
    GitHub line numbers.
    """
    pairs: list[tuple[str, str]] = []
    start = 0
    for match in _LINE_BREAK_RE.finditer(text):
        pairs.append((text[start:match.start()], match.group()))
        start = match.end()
    if start < len(text):
        pairs.append((text[start:], ""))
    return pairs


def index_lines(text: str) -> list[Line]:
    """Split text into lines, keeping the offset and line ending of each."""
    lines: list[Line] = []
    offset = 0
    for number, (body, ending) in enumerate(split_lines(text), start=1):
        lines.append(Line(number=number, offset=offset, text=body, ending=ending))
        offset += len(body) + len(ending)
    return lines


def is_excluded(path: Path, exclude: Sequence[str]) -> bool:
    """True if any path component (or the file name) matches an exclusion."""
    parts = path.parts
    for pattern in exclude:
        if any(fnmatch.fnmatch(part, pattern) for part in parts):
            return True
    return False


def iter_files(
    paths: Iterable[Path],
    exclude: Sequence[str] = (),
    suffixes: Sequence[str] = (),
) -> Iterator[Path]:
    """Expand files and directories into a sorted stream of files.

    Explicit file arguments are always yielded. Files found by walking a
    directory are filtered through the exclusions and, when given, the
    suffix list.
    """
    seen: set[Path] = set()
    for path in paths:
        if path.is_file():
            if path not in seen:
                seen.add(path)
                yield path
            continue
        if not path.is_dir():
            continue
        for file_path in sorted(path.rglob("*")):
            if not file_path.is_file() or file_path in seen:
                continue
            rel = file_path.relative_to(path)
            if is_excluded(rel, exclude):
                continue
            if suffixes and file_path.suffix.lower() not in suffixes:
                continue
            seen.add(file_path)
            yield file_path
