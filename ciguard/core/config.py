"""
ciguard Configuration Management

Loads configuration from .ciguard.yaml files. The loaded object is built
once per invocation and handed to each engine; nothing reads it from
module-level state.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Optional

import yaml

from ciguard.core.errors import ConfigError
from ciguard.core.finding import Severity


CONFIG_FILENAME = ".ciguard.yaml"
DEFAULT_ALLOWLIST = ".security-controls/secret-allowlist.txt"
DEFAULT_WORKFLOW_DIR = ".github/workflows"

DEFAULT_EXCLUDE_PATHS = [
    "node_modules",
    ".git",
    "__pycache__",
    "venv",
    ".venv",
    ".tox",
    ".mypy_cache",
    ".pytest_cache",
    "dist",
    "build",
    "target",
    "vendor",
    "coverage",
    ".eggs",
    "*.egg-info",
    "*.lock",
]


@dataclass(frozen=True)
class OutputConfig:
    format: str = "text"
    file: Optional[str] = None


@dataclass(frozen=True)
class SecretsConfig:
    allowlist: str = DEFAULT_ALLOWLIST
    fail_on: str = "MEDIUM"
    entropy_threshold: float = 4.0
    min_token_length: int = 20
    max_file_size: int = 1024 * 1024
    workers: int = 8
    strict: bool = False


@dataclass(frozen=True)
class PinningConfig:
    strict: bool = False
    api_url: str = "https://api.github.com"
    request_timeout: float = 10.0
    max_retries: int = 3
    backoff_base: float = 0.5
    workers: int = 4
    max_file_size: int = 1024 * 1024


@dataclass(frozen=True)
class CiguardConfig:
    """Root configuration object for ciguard."""

    output: OutputConfig = field(default_factory=OutputConfig)
    secrets: SecretsConfig = field(default_factory=SecretsConfig)
    pinning: PinningConfig = field(default_factory=PinningConfig)
    deadline_seconds: float = 300.0
    exclude_paths: tuple[str, ...] = tuple(DEFAULT_EXCLUDE_PATHS)

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "CiguardConfig":
        """Load configuration from a YAML file, falling back to defaults.

        A missing file gives the defaults. A file that exists but cannot be
        parsed, or holds values of the wrong type, raises ConfigError.
        """
        if config_path is None:
            config_path = Path.cwd() / CONFIG_FILENAME

        if not config_path.exists():
            return cls()

        try:
            with open(config_path, encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigError(f"cannot load configuration: {exc}", path=config_path) from exc

        if not isinstance(raw, dict):
            raise ConfigError("top level must be a mapping", path=config_path)

        return cls._from_dict(raw, config_path)

    @classmethod
    def _from_dict(cls, data: dict[str, Any], source: Optional[Path] = None) -> "CiguardConfig":
        """Build config from a parsed YAML dictionary."""
        output = _section(OutputConfig, data.get("output"), "output", source)
        secrets = _section(SecretsConfig, data.get("secrets"), "secrets", source)
        pinning = _section(PinningConfig, data.get("pinning"), "pinning", source)

        try:
            Severity.from_string(secrets.fail_on)
        except KeyError:
            raise ConfigError(f"unknown severity for secrets.fail_on: {secrets.fail_on!r}", path=source)

        exclude = data.get("exclude_paths", DEFAULT_EXCLUDE_PATHS)
        if not isinstance(exclude, list) or not all(isinstance(p, str) for p in exclude):
            raise ConfigError("exclude_paths must be a list of strings", path=source)

        deadline = data.get("deadline_seconds", 300.0)
        if not isinstance(deadline, (int, float)) or deadline <= 0:
            raise ConfigError("deadline_seconds must be a positive number", path=source)

        return cls(
            output=output,
            secrets=secrets,
            pinning=pinning,
            deadline_seconds=float(deadline),
            exclude_paths=tuple(exclude),
        )

    def override(self, section: str, **values: Any) -> "CiguardConfig":
        """Return a copy with CLI overrides applied to one section.

        None values are ignored so unset flags keep the configured value.
        """
        values = {k: v for k, v in values.items() if v is not None}
        if not values:
            return self
        return replace(self, **{section: replace(getattr(self, section), **values)})


def _section(cls, raw: Any, name: str, source: Optional[Path]):
    """Build one config section dataclass, checking field names and types."""
    if raw is None:
        return cls()
    if not isinstance(raw, dict):
        raise ConfigError(f"section '{name}' must be a mapping", path=source)

    kwargs: dict[str, Any] = {}
    known = {f.name: f for f in fields(cls)}
    for key, value in raw.items():
        if key not in known:
            raise ConfigError(f"unknown option '{name}.{key}'", path=source)
        default = getattr(cls(), key)
        if value is None:
            continue
        if isinstance(default, bool):
            ok = isinstance(value, bool)
        elif isinstance(default, float):
            ok = isinstance(value, (int, float)) and not isinstance(value, bool)
            value = float(value) if ok else value
        elif isinstance(default, int):
            ok = isinstance(value, int) and not isinstance(value, bool)
        else:
            ok = isinstance(value, str)
        if not ok:
            raise ConfigError(f"option '{name}.{key}' has invalid value {value!r}", path=source)
        kwargs[key] = value
    return cls(**kwargs)


def generate_default_config() -> str:
    """Generate a default .ciguard.yaml configuration file content."""
    return """\
# ciguard configuration

output:
  format: text  # text, json, sarif
  # file: ciguard-report.json

secrets:
  allowlist: .security-controls/secret-allowlist.txt
  fail_on: MEDIUM          # generic high-entropy strings are LOW and only warn
  entropy_threshold: 4.0   # bits per character
  min_token_length: 20
  max_file_size: 1048576   # bytes; larger files are skipped with an error
  workers: 8
  strict: false            # fail on unreadable files

pinning:
  strict: false            # fail when a reference cannot be resolved
  api_url: https://api.github.com
  request_timeout: 10
  max_retries: 3
  backoff_base: 0.5
  workers: 4

deadline_seconds: 300

exclude_paths:
  - node_modules
  - .git
  - __pycache__
  - venv
  - dist
  - build
  - vendor
  - "*.lock"
"""


def generate_default_allowlist() -> str:
    """Generate a default secret allowlist file content."""
    return """\
# ciguard secret allowlist
#
# One regular expression per line. A line matches a finding when it matches
# the detected secret itself, its redacted form or its file path. Other text
# on the same source line is never considered.
#
#   literal:<text>          match <text> literally
#   <glob>::<pattern>       only apply <pattern> to files matching <glob>
#
# Examples:
#   test-token-[0-9]+
#   tests/fixtures/*::.*
#   literal:sk_test_
"""
