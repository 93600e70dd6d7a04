"""
Error taxonomy for process groups.

Spawn and collection errors are accumulated per group and returned to the
caller; scan errors are surfaced from each poll step; policy invariant
violations indicate a bug and are never recovered from.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class ErrorCategory(Enum):
    """Categories of errors in a group run."""
    SPAWN = "spawn"
    SCAN = "scan"
    COLLECTION = "collection"
    TASK_FAILURE = "task_failure"
    CONFIGURATION = "configuration"
    INTERNAL = "internal"


class PgflowError(Exception):
    """Base class for all pgflow errors."""

    category: ErrorCategory = ErrorCategory.INTERNAL


class SpawnError(PgflowError):
    """A task could not be launched at all."""

    category = ErrorCategory.SPAWN

    def __init__(self, task: Any, cause: Optional[BaseException] = None, message: Optional[str] = None):
        self.task = task
        self.cause = cause
        label = getattr(task, "description", None) or str(task)
        if message is None:
            message = f"failed to spawn {label}: {cause}" if cause is not None else f"failed to spawn {label}"
        super().__init__(message)


class BuildError(SpawnError):
    """Building the task's binary failed before anything was launched."""

    def __init__(self, task: Any, returncode: int, stderr_tail: str = ""):
        self.returncode = returncode
        self.stderr_tail = stderr_tail
        message = f"build failed rc={returncode} for {task}"
        if stderr_tail:
            message += f"; stderr tail:\n{stderr_tail}"
        super().__init__(task, None, message)


class ScanError(PgflowError):
    """The OS-level "has this process finished" check failed."""

    category = ErrorCategory.SCAN

    def __init__(self, pid: int, cause: BaseException):
        self.pid = pid
        self.cause = cause
        super().__init__(f"wait on pid {pid} failed: {cause}")


class CollectionError(PgflowError):
    """A finished process's output could not be retrieved."""

    category = ErrorCategory.COLLECTION

    def __init__(self, pid: int, cause: BaseException):
        self.pid = pid
        self.cause = cause
        super().__init__(f"collecting output of pid {pid} failed: {cause}")


class PolicyInvariantError(PgflowError):
    """Outcome state and group end policy disagree."""


class ConfigurationError(PgflowError):
    """Run configuration is missing or invalid."""

    category = ErrorCategory.CONFIGURATION
