"""
ciguard Finding Model

A Finding represents one candidate secret detected during scanning.
The snippet stored on a Finding is always redacted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional


class Severity(Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    INFO = "INFO"

    @classmethod
    def from_string(cls, value: str) -> "Severity":
        """Parse a severity from a string (case-insensitive)."""
        return cls[value.upper()]

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    def __ge__(self, other: "Severity") -> bool:
        return self.rank >= other.rank

    def __gt__(self, other: "Severity") -> bool:
        return self.rank > other.rank

    def __le__(self, other: "Severity") -> bool:
        return not self.__gt__(other)

    def __lt__(self, other: "Severity") -> bool:
        return not self.__ge__(other)


_SEVERITY_ORDER = [Severity.INFO, Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]

# Highest first, for reports
SEVERITY_NAMES = [s.value for s in reversed(_SEVERITY_ORDER)]


@dataclass
class Location:
    file_path: Path
    start_line: int
    start_column: Optional[int] = None
    end_column: Optional[int] = None
    snippet: Optional[str] = None


@dataclass
class Finding:
    rule_id: str
    title: str
    description: str
    severity: Severity
    category: str
    scanner: str
    location: Optional[Location] = None
    fix: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    tags: list[str] = field(default_factory=list)

    @property
    def path_str(self) -> str:
        if not self.location:
            return ""
        return str(self.location.file_path).replace("\\", "/")

    def display(self) -> str:
        """Human-readable output for console printing."""
        loc = ""
        if self.location:
            loc = f"{self.path_str}:{self.location.start_line}"

        parts = [
            f"[{self.severity.value}] {self.title}",
            f"  Rule: {self.rule_id} ({self.category})",
            f"  Location: {loc}",
            f"  {self.description}",
        ]
        if self.location and self.location.snippet:
            parts.append(f"  Line: {self.location.snippet}")
        if self.fix:
            parts.append(f"  Fix: {self.fix}")
        return "\n".join(parts)

    def to_dict(self) -> dict[str, Any]:
        """Convert finding to a dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "rule_id": self.rule_id,
            "title": self.title,
            "description": self.description,
            "severity": self.severity.value,
            "category": self.category,
            "scanner": self.scanner,
        }
        if self.location:
            result["location"] = {
                "file": self.path_str,
                "start_line": self.location.start_line,
                "start_column": self.location.start_column,
                "end_column": self.location.end_column,
                "snippet": self.location.snippet,
            }
        if self.fix:
            result["fix"] = self.fix
        if self.metadata:
            result["metadata"] = self.metadata
        if self.tags:
            result["tags"] = self.tags
        return result
