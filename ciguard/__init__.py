"""
ciguard - Secret detection and action pinning for CI/CD repositories

Two verification engines for pre-commit hooks and CI pipelines:
- Secret scanning of files, directories and staged diffs
- Pinning of workflow action references to immutable commit SHAs

Copyright (c) 2026 ciguard Contributors
Licensed under the Apache License 2.0
"""

__version__ = "1.0.0"


__all__ = [
    "__version__",
]
