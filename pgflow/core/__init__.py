"""
Core modules: process handles, process groups, the outcome policy and the
layers around them.
"""

from .errors import (
    BuildError,
    CollectionError,
    ConfigurationError,
    ErrorCategory,
    PgflowError,
    PolicyInvariantError,
    ScanError,
    SpawnError,
)
from .indicators import GroupEnd, SpawningMode, next_state
from .output import CollectedOutput, TaskResult, has_error, print_output, task_failed
from .task import PollStatus, ProcessHandle, Spawner, TaskDescriptor, launch
from .group import (
    GroupResult,
    ProcessGroup,
    StartedGroup,
    StepKind,
    StepResult,
    TerminatedTask,
    run_group,
    spawn_group,
    step,
    stop_all,
)
from .sequence import GroupSpec, SequenceResult, run_sequence
from .spawners import CargoSpawner, CommandSpawner

__all__ = [
    "BuildError",
    "CollectionError",
    "ConfigurationError",
    "ErrorCategory",
    "PgflowError",
    "PolicyInvariantError",
    "ScanError",
    "SpawnError",
    "GroupEnd",
    "SpawningMode",
    "next_state",
    "CollectedOutput",
    "TaskResult",
    "has_error",
    "print_output",
    "task_failed",
    "PollStatus",
    "ProcessHandle",
    "Spawner",
    "TaskDescriptor",
    "launch",
    "GroupResult",
    "ProcessGroup",
    "StartedGroup",
    "StepKind",
    "StepResult",
    "TerminatedTask",
    "run_group",
    "spawn_group",
    "step",
    "stop_all",
    "GroupSpec",
    "SequenceResult",
    "run_sequence",
    "CargoSpawner",
    "CommandSpawner",
]
