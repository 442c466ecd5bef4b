"""
ciguard Verdict

The single place that turns a run outcome into a process exit status.
Neither engine exits the process; the CLI calls sys.exit() with what
this module returns.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Union

from ciguard.core.errors import CiguardError
from ciguard.pinning.engine import PinResult
from ciguard.policy.engine import ScanResult


class ExitStatus(IntEnum):
    SUCCESS = 0
    FAILURE = 1
    TOOL_ERROR = 2


def decide_exit_status(result: Union[ScanResult, PinResult, BaseException]) -> ExitStatus:
    """
    SUCCESS when nothing blocks, FAILURE for blocking findings, unpinned
    references or strict-mode errors, TOOL_ERROR when the run was stopped
    (bad configuration, deadline, interrupt) and no verdict exists.
    """
    if isinstance(result, BaseException):
        if not isinstance(result, (CiguardError, KeyboardInterrupt)):
            raise TypeError(f"not a run-stopping error: {result!r}")
        return ExitStatus.TOOL_ERROR
    if result.should_fail:
        return ExitStatus.FAILURE
    return ExitStatus.SUCCESS
