"""
Process group life cycle: spawn a batch of sibling tasks, poll them without
blocking on any single one, collect each as it finishes and apply the group's
failure policy.

Flow:
- spawn_group(): launch every task, record spawn errors, keep going
- step(): at most one finished task per call
- run_group(): step until empty; under STOP_ALL tear the rest down first
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional

from .errors import CollectionError, ScanError, SpawnError
from .indicators import GroupEnd, SpawningMode
from .output import TaskResult
from .task import PollStatus, ProcessHandle, Spawner, TaskDescriptor

logger = logging.getLogger(__name__)

# How long to sleep before checking again whether any child process finished.
SLEEP_BETWEEN_CHECKING_CHILDREN = 0.01
# Consecutive scan errors after which a group run gives up.
MAX_SCAN_ERRORS = 3


class ProcessGroup:
    """Running handles of one batch, keyed by OS pid.

    Scans visit handles in insertion (spawn) order, so when several children
    finish within the same interval the earliest spawned one is taken first.
    """

    def __init__(self):
        self._handles: Dict[int, ProcessHandle] = {}

    def insert(self, pid: int, handle: ProcessHandle) -> None:
        if pid in self._handles:
            raise ValueError(f"pid {pid} is already in the group")
        self._handles[pid] = handle

    def scan_for_finished(self) -> Optional[int]:
        """Return the pid of the first finished handle, or None.

        A ScanError from any handle aborts the scan and propagates.
        """
        for pid, handle in self._handles.items():
            if handle.try_poll() is PollStatus.FINISHED:
                return pid
        return None

    def remove(self, pid: int) -> ProcessHandle:
        try:
            return self._handles.pop(pid)
        except KeyError:
            raise KeyError(f"pid {pid} is not in the group") from None

    def is_empty(self) -> bool:
        return not self._handles

    def pids(self) -> List[int]:
        return list(self._handles)

    def __len__(self) -> int:
        return len(self._handles)

    def __iter__(self) -> Iterator[int]:
        return iter(list(self._handles))

    def __contains__(self, pid: object) -> bool:
        return pid in self._handles


@dataclass
class StartedGroup:
    group: ProcessGroup
    mode: SpawningMode
    spawn_errors: List[SpawnError] = field(default_factory=list)


def spawn_group(
    tasks: Iterable[TaskDescriptor],
    parent_dir: Path,
    group_end: GroupEnd,
    spawn: Spawner,
) -> StartedGroup:
    """Start every task under ``parent_dir``, in the given order.

    This only checks that spawning itself worked, not the exit status of
    anything. A spawn failure switches the mode to the policy's failure
    mapping but never stops the loop: every task is attempted.

    An interrupt while spawning terminates whatever was already started
    before it propagates.
    """
    group = ProcessGroup()
    mode = SpawningMode.PROCESS_ALL
    errors: List[SpawnError] = []
    try:
        for task in tasks:
            try:
                handle = spawn(Path(parent_dir), task.subdir, task.task_id, task.options)
            except SpawnError as ex:
                err = ex
            except Exception as ex:
                err = SpawnError(task, ex)
            else:
                handle.description = task.description
                handle.metadata = task.metadata
                group.insert(handle.pid, handle)
                logger.info(f"Started {task.description} pid={handle.pid}")
                continue
            if not isinstance(err.task, TaskDescriptor):
                err.task = task
            logger.error(f"Spawn failed for {task.description}: {err}")
            errors.append(err)
            mode = group_end.mode_after_error_in_same_group()
    except BaseException:
        if not group.is_empty():
            logger.warning(f"Spawning interrupted; stopping {len(group)} started task(s)")
            stop_all(group)
        raise
    return StartedGroup(group=group, mode=mode, spawn_errors=errors)


class StepKind(Enum):
    NO_CHANGE = "no_change"
    FINISHED = "finished"
    GROUP_DONE = "group_done"
    SCAN_ERROR = "scan_error"


@dataclass
class StepResult:
    kind: StepKind
    mode: SpawningMode
    result: Optional[TaskResult] = None
    error: Optional[ScanError] = None


def step(group: ProcessGroup, mode: SpawningMode, group_end: GroupEnd) -> StepResult:
    """Collect at most one finished task.

    On SCAN_ERROR the group is left exactly as it was.
    """
    if group.is_empty():
        return StepResult(StepKind.GROUP_DONE, mode)
    try:
        pid = group.scan_for_finished()
    except ScanError as ex:
        return StepResult(StepKind.SCAN_ERROR, mode, error=ex)
    if pid is None:
        return StepResult(StepKind.NO_CHANGE, mode)

    handle = group.remove(pid)
    output = None
    error: Optional[CollectionError] = None
    try:
        output = handle.collect_output()
    except CollectionError as ex:
        error = ex
        logger.error(f"Output of {handle.description} pid={pid} could not be collected: {ex}")
    result = TaskResult(
        description=handle.description,
        metadata=handle.metadata,
        output=output,
        error=error,
        pid=pid,
    )
    if output is not None:
        logger.info(f"Finished {handle.description} pid={pid} rc={output.returncode} failed={result.failed}")
    new_mode = mode.after_result(result.failed, group_end)
    return StepResult(StepKind.FINISHED, new_mode, result=result)


@dataclass
class TerminatedTask:
    description: str
    metadata: Any = None
    pid: Optional[int] = None


@dataclass
class GroupResult:
    mode: SpawningMode
    outputs: List[TaskResult] = field(default_factory=list)
    spawn_errors: List[SpawnError] = field(default_factory=list)
    terminated: List[TerminatedTask] = field(default_factory=list)

    @property
    def failures(self) -> List[TaskResult]:
        return [r for r in self.outputs if r.failed]

    @property
    def succeeded(self) -> bool:
        return not self.spawn_errors and not self.terminated and not self.failures

    def reordered_outputs(self) -> List[TaskResult]:
        """Outputs in completion order, but with failed ones moved to the end."""
        return sorted(self.outputs, key=lambda r: r.failed)


def stop_all(group: ProcessGroup) -> List[TerminatedTask]:
    """Remove and kill every remaining handle without collecting output."""
    stopped: List[TerminatedTask] = []
    for pid in group.pids():
        handle = group.remove(pid)
        handle.terminate()
        stopped.append(TerminatedTask(description=handle.description, metadata=handle.metadata, pid=pid))
    return stopped


def run_group(
    tasks: Iterable[TaskDescriptor],
    parent_dir: Path,
    group_end: GroupEnd,
    spawn: Spawner,
    poll_interval: float = SLEEP_BETWEEN_CHECKING_CHILDREN,
    max_scan_errors: int = MAX_SCAN_ERRORS,
) -> GroupResult:
    """Spawn a group and drive it until every process has been collected or killed."""
    started = spawn_group(tasks, parent_dir, group_end, spawn)
    group, mode = started.group, started.mode
    result = GroupResult(mode=mode, spawn_errors=started.spawn_errors)
    logger.debug(f"Group started: running={len(group)} spawn_errors={len(started.spawn_errors)} mode={mode.name}")
    scan_errors = 0
    try:
        while True:
            if mode is SpawningMode.STOP_ALL and not group.is_empty():
                logger.warning(f"Stopping {len(group)} remaining task(s) after failure")
                result.terminated.extend(stop_all(group))
            res = step(group, mode, group_end)
            if res.kind is StepKind.GROUP_DONE:
                break
            if res.kind is StepKind.NO_CHANGE:
                time.sleep(poll_interval)
                continue
            if res.kind is StepKind.SCAN_ERROR:
                scan_errors += 1
                logger.error(f"Scan error {scan_errors}/{max_scan_errors}: {res.error}")
                if scan_errors >= max_scan_errors:
                    result.terminated.extend(stop_all(group))
                    raise res.error
                time.sleep(poll_interval)
                continue
            scan_errors = 0
            result.outputs.append(res.result)
            mode = res.mode
    except KeyboardInterrupt:
        result.terminated.extend(stop_all(group))
        raise
    result.mode = mode
    return result
