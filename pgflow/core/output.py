"""
Collected output of finished tasks and how it is judged and printed.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import Any, BinaryIO, Optional

from .errors import ErrorCategory


@dataclass(frozen=True)
class CollectedOutput:
    returncode: int
    stdout: bytes = b""
    stderr: bytes = b""

    @property
    def success(self) -> bool:
        return self.returncode == 0


def task_failed(returncode: int, stderr: bytes) -> bool:
    """Non-zero exit or any stderr at all (warnings included) is a failure."""
    return returncode != 0 or len(stderr) > 0


@dataclass
class TaskResult:
    """Output and/or error of one task, with the task's description and metadata.

    ``output`` is None when it could not be collected; ``error`` then says why.
    """
    description: str
    metadata: Any = None
    output: Optional[CollectedOutput] = None
    error: Optional[BaseException] = None
    pid: Optional[int] = None

    @property
    def failed(self) -> bool:
        return has_error(self.output, self.error)

    @property
    def returncode(self) -> Optional[int]:
        return self.output.returncode if self.output is not None else None

    @property
    def category(self) -> Optional[ErrorCategory]:
        """Why the task counts as failed, or None if it succeeded."""
        if self.error is not None:
            return getattr(self.error, "category", ErrorCategory.INTERNAL)
        if self.failed:
            return ErrorCategory.TASK_FAILURE
        return None


def has_error(output: Optional[CollectedOutput], error: Optional[BaseException]) -> bool:
    if error is not None:
        return True
    return output is not None and task_failed(output.returncode, output.stderr)


def _binary(stream: Any) -> BinaryIO:
    return getattr(stream, "buffer", stream)


def print_output(result: TaskResult, stdout: Any = None, stderr: Any = None) -> None:
    """Print one task's output: status line and stdout first, then stderr.

    With both non-empty, stderr comes last so it is the part nearest to the
    prompt.
    """
    out = _binary(stdout if stdout is not None else sys.stdout)
    err = _binary(stderr if stderr is not None else sys.stderr)
    if result.output is None:
        out.write(f"{result.description}: no output ({result.error})\n".encode())
        out.flush()
        return
    out.write(f"{result.description}: exit status {result.output.returncode}\n".encode())
    out.write(result.output.stdout)
    out.flush()
    err.write(result.output.stderr)
    if result.output.stderr:
        err.flush()
