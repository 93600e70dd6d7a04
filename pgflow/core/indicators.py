"""
Group end policies and the outcome state machine.

A group starts in ``SpawningMode.PROCESS_ALL``. The first failure moves it to
whatever its ``GroupEnd`` maps to, and it never goes back.
"""

from __future__ import annotations

import logging
from enum import Enum

from .errors import PolicyInvariantError

logger = logging.getLogger(__name__)


class SpawningMode(Enum):
    """Mode of handling task life cycle."""
    # Default (until there is any error, or until we finish all tasks).
    PROCESS_ALL = "process_all"
    # Finish active tasks, collect their output. Don't start any new ones.
    FINISH_ACTIVE = "finish_active"
    # Stop any and all active tasks. Ignore their output (except for the task
    # that failed and triggered this mode).
    STOP_ALL = "stop_all"

    @property
    def has_error(self) -> bool:
        return self is not SpawningMode.PROCESS_ALL

    def after_result(self, task_failed: bool, group_end: "GroupEnd") -> "SpawningMode":
        return next_state(self, task_failed, group_end)


class GroupEnd(Enum):
    """When to end an execution of parallel tasks in the same group (or a sequence of groups)."""
    # Stop any and all active tasks on first failure, without reporting their
    # output (except for the failed task). Don't start subsequent tasks.
    ON_FAILURE_STOP_ALL = "on_failure_stop_all"
    # On failure, wait until all other active tasks finish too and report all
    # their outputs. Don't start subsequent tasks.
    ON_FAILURE_FINISH_ACTIVE = "on_failure_finish_active"
    # Run all groups and all tasks, even if some of them fail.
    PROCESS_ALL = "process_all"

    def mode_after_error_in_same_group(self) -> SpawningMode:
        return _MODE_AFTER_ERROR[self]

    @classmethod
    def parse(cls, value: "str | GroupEnd") -> "GroupEnd":
        """Accept enum members, values ("on_failure_stop_all") or names ("OnFailureStopAll")."""
        if isinstance(value, cls):
            return value
        key = str(value).strip()
        for member in cls:
            if key in (member.value, member.name) or key.replace("_", "").lower() == member.value.replace("_", ""):
                return member
        raise ValueError(f"Unknown group end policy: {value!r}")


_MODE_AFTER_ERROR = {
    GroupEnd.ON_FAILURE_STOP_ALL: SpawningMode.STOP_ALL,
    GroupEnd.ON_FAILURE_FINISH_ACTIVE: SpawningMode.FINISH_ACTIVE,
    GroupEnd.PROCESS_ALL: SpawningMode.PROCESS_ALL,
}


def next_state(current: SpawningMode, task_failed: bool, group_end: GroupEnd) -> SpawningMode:
    """Return the outcome state after one more task result.

    A failure-derived state is sticky and must match the policy's mapping;
    anything else means the caller mixed policies within one group.
    """
    expected = group_end.mode_after_error_in_same_group()
    if current.has_error:
        if current is not expected:
            raise PolicyInvariantError(
                f"outcome state {current.name} does not match {group_end.name} (expected {expected.name})"
            )
        return current
    if task_failed and expected is not current:
        logger.info(f"Group switching from {current.name} to {expected.name} ({group_end.name})")
        return expected
    return current
