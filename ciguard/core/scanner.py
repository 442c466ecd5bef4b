"""
ciguard Base Scanner

A scanner inspects files and produces a result object. Both engines
(secrets and action pinning) share this shape:

    Idle -> Loading -> Processing -> Aggregating -> Reported

Reported is terminal; a scanner instance is used for one run only.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Sequence, TypeVar

from ciguard.core.config import CiguardConfig
from ciguard.core.errors import CiguardError, DeadlineExceeded
from ciguard.core.textio import iter_files

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class RunState(Enum):
    IDLE = "idle"
    LOADING = "loading"
    PROCESSING = "processing"
    AGGREGATING = "aggregating"
    REPORTED = "reported"


class BaseScanner(ABC):
    """
    Minimal scanner interface.
    Each scanner must implement scan().
    """

    name: str = "base"
    suffixes: Sequence[str] = ()

    def __init__(self, config: CiguardConfig) -> None:
        self.config = config
        self.exclude = list(config.exclude_paths)
        self.state = RunState.IDLE
        self._deadline = time.monotonic() + config.deadline_seconds

    @abstractmethod
    def scan(self, paths: Iterable[Path]):
        """
        Run the scan and return a result object.
        """
        raise NotImplementedError

    def _advance(self, state: RunState) -> None:
        if self.state is RunState.REPORTED:
            raise CiguardError(f"{self.name} scanner already reported; create a new one per run")
        logger.debug("%s: %s -> %s", self.name, self.state.value, state.value)
        self.state = state

    def mark_reported(self) -> None:
        self._advance(RunState.REPORTED)

    def _iter_files(self, paths: Iterable[Path]) -> list[Path]:
        return list(iter_files(paths, exclude=self.exclude, suffixes=self.suffixes))

    def remaining_time(self) -> float:
        return max(0.0, self._deadline - time.monotonic())

    def check_deadline(self, pending: int = 0) -> None:
        """Raise DeadlineExceeded once the run deadline has passed."""
        if self.remaining_time() <= 0:
            raise DeadlineExceeded(self.config.deadline_seconds, pending=pending)

    def run_parallel(self, func: Callable[[T], R], items: Sequence[T], workers: int) -> list[R]:
        """Apply func to every item in a thread pool, keeping input order.

        Workers never share mutable state; their return values are collected
        here after they finish. Raises DeadlineExceeded if the run deadline
        passes first; pending work is cancelled.
        """
        if not items:
            return []

        executor = ThreadPoolExecutor(max_workers=max(1, workers), thread_name_prefix=self.name)
        futures: list[Future] = [executor.submit(func, item) for item in items]
        try:
            done, pending = wait(futures, timeout=self.remaining_time(), return_when=FIRST_EXCEPTION)
            for future in done:
                exc = future.exception()
                if exc is not None:
                    raise exc
            if pending:
                raise DeadlineExceeded(self.config.deadline_seconds, pending=len(pending))
            return [f.result() for f in futures]
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
