"""
Task descriptors and the handle around one running worker process.

Handles redirect the child's stdout/stderr to anonymous temporary files so a
child that writes a lot never blocks on a full pipe while the group is only
polling it. Output is read back once, after the process has finished.
"""

from __future__ import annotations

import logging
import os
import subprocess
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import IO, Any, Dict, Optional, Protocol, Sequence, Tuple

import psutil

from .errors import CollectionError, ScanError
from .output import CollectedOutput

logger = logging.getLogger(__name__)

# Seconds to wait for a terminated process tree before killing it outright.
TERMINATE_GRACE = 3.0


@dataclass(frozen=True)
class TaskDescriptor:
    """One worker to launch: where, which binary, with which options."""
    subdir: str
    task_id: str
    options: Tuple[str, ...] = ()
    description: str = ""
    metadata: Any = field(default=None, compare=False)

    def __post_init__(self):
        # Accept any sequence of options but store an immutable tuple
        object.__setattr__(self, "options", tuple(str(o) for o in self.options))
        if not self.description:
            label = f"{self.subdir}/{self.task_id}"
            if self.options:
                label += f" [{','.join(self.options)}]"
            object.__setattr__(self, "description", label)


class PollStatus(Enum):
    RUNNING = "running"
    FINISHED = "finished"


class ProcessHandle:
    """Exclusive owner of one live external process.

    The process resource is released exactly once, by ``collect_output`` or by
    ``terminate``.
    """

    def __init__(
        self,
        popen: subprocess.Popen,
        stdout: Optional[IO[bytes]] = None,
        stderr: Optional[IO[bytes]] = None,
        description: str = "",
        metadata: Any = None,
    ):
        self._popen = popen
        self._stdout = stdout
        self._stderr = stderr
        self.description = description
        self.metadata = metadata
        self._released = False

    @property
    def pid(self) -> int:
        return self._popen.pid

    @property
    def released(self) -> bool:
        return self._released

    def try_poll(self) -> PollStatus:
        """Non-blocking finished check. A non-zero exit is still FINISHED."""
        try:
            rc = self._popen.poll()
        except OSError as ex:
            raise ScanError(self.pid, ex) from ex
        return PollStatus.RUNNING if rc is None else PollStatus.FINISHED

    def collect_output(self) -> CollectedOutput:
        """Wait for exit and return status plus captured stdout/stderr. One-shot."""
        if self._released:
            raise RuntimeError(f"process {self.pid} ({self.description}) was already collected or terminated")
        self._released = True
        try:
            if self._stdout is not None or self._stderr is not None:
                rc = self._popen.wait()
                out = _read_back(self._stdout)
                err = _read_back(self._stderr)
            else:
                out, err = self._popen.communicate()
                rc = self._popen.returncode
        except (OSError, ValueError) as ex:
            raise CollectionError(self.pid, ex) from ex
        finally:
            self._close_files()
        return CollectedOutput(returncode=rc, stdout=out or b"", stderr=err or b"")

    def terminate(self, grace: float = TERMINATE_GRACE) -> None:
        """Best-effort kill of the process and its descendants. Never raises."""
        if self._released:
            return
        self._released = True
        logger.info(f"Terminating process {self.pid} ({self.description})")
        try:
            _kill_tree(self._popen, grace)
        except subprocess.TimeoutExpired:
            logger.warning(f"Process {self.pid} ({self.description}) did not exit within {grace}s after kill")
        except (psutil.Error, OSError) as ex:
            logger.warning(f"Terminating process {self.pid} ({self.description}) failed: {ex}")
        finally:
            self._close_files()

    def _close_files(self) -> None:
        for fh in (self._stdout, self._stderr):
            if fh is not None:
                try:
                    fh.close()
                except OSError:
                    pass

    def __repr__(self) -> str:
        return f"ProcessHandle(pid={self.pid}, description={self.description!r})"


def _read_back(fh: Optional[IO[bytes]]) -> bytes:
    if fh is None:
        return b""
    fh.flush()
    fh.seek(0)
    return fh.read()


def _kill_tree(popen: subprocess.Popen, grace: float) -> None:
    # Descendants go through psutil; the direct child through Popen so that
    # Popen reaps it and keeps the real return code.
    try:
        children = psutil.Process(popen.pid).children(recursive=True)
    except psutil.NoSuchProcess:
        children = []
    for p in children:
        try:
            p.terminate()
        except psutil.NoSuchProcess:
            pass
    popen.terminate()
    _, alive = psutil.wait_procs(children, timeout=grace)
    for p in alive:
        try:
            p.kill()
        except psutil.NoSuchProcess:
            pass
    try:
        popen.wait(timeout=grace)
    except subprocess.TimeoutExpired:
        popen.kill()
        popen.wait(timeout=grace)


def launch(
    argv: Sequence[str],
    cwd: Optional[Path] = None,
    env: Optional[Dict[str, str]] = None,
    description: str = "",
    metadata: Any = None,
) -> ProcessHandle:
    """Start ``argv`` with stdout/stderr captured to temporary files."""
    full_env = None
    if env:
        full_env = os.environ.copy()
        full_env.update({str(k): str(v) for k, v in env.items()})
    out = tempfile.TemporaryFile()
    err = tempfile.TemporaryFile()
    try:
        popen = subprocess.Popen(
            [str(a) for a in argv],
            cwd=str(cwd) if cwd else None,
            env=full_env,
            stdin=subprocess.DEVNULL,
            stdout=out,
            stderr=err,
        )
    except BaseException:
        out.close()
        err.close()
        raise
    logger.debug(f"launch pid={popen.pid} argv={list(argv)} cwd={cwd}")
    return ProcessHandle(popen, stdout=out, stderr=err, description=description, metadata=metadata)


class Spawner(Protocol):
    """Turns a task location into a running process. May be slow and may raise."""

    def __call__(self, parent_dir: Path, subdir: str, task_id: str, options: Sequence[str]) -> ProcessHandle:
        ...
