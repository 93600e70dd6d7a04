"""
Run groups one after another: a fold over group results.

After a group with any failure the sequence stops, unless that group's
policy is PROCESS_ALL.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Sequence, Tuple

from .group import MAX_SCAN_ERRORS, SLEEP_BETWEEN_CHECKING_CHILDREN, GroupResult, run_group
from .indicators import GroupEnd
from .task import Spawner, TaskDescriptor

logger = logging.getLogger(__name__)


@dataclass
class GroupSpec:
    name: str
    tasks: List[TaskDescriptor]
    group_end: GroupEnd = GroupEnd.ON_FAILURE_FINISH_ACTIVE


@dataclass
class SequenceResult:
    groups: List[Tuple[str, GroupResult]] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.skipped and all(r.succeeded for _, r in self.groups)

    def results(self) -> List[GroupResult]:
        return [r for _, r in self.groups]


def run_sequence(
    groups: Sequence[GroupSpec],
    parent_dir: Path,
    spawn: Spawner,
    poll_interval: float = SLEEP_BETWEEN_CHECKING_CHILDREN,
    max_scan_errors: int = MAX_SCAN_ERRORS,
) -> SequenceResult:
    seq = SequenceResult()
    for idx, spec in enumerate(groups):
        logger.info(f"Group {spec.name}: {len(spec.tasks)} task(s), {spec.group_end.name}")
        res = run_group(
            spec.tasks,
            parent_dir,
            spec.group_end,
            spawn,
            poll_interval=poll_interval,
            max_scan_errors=max_scan_errors,
        )
        seq.groups.append((spec.name, res))
        if not res.succeeded and spec.group_end is not GroupEnd.PROCESS_ALL:
            seq.skipped = [g.name for g in groups[idx + 1:]]
            if seq.skipped:
                logger.warning(f"Group {spec.name} failed; not starting {', '.join(seq.skipped)}")
            break
    return seq
