"""
Rich-based reporting of group and sequence results.
"""

from __future__ import annotations

from typing import Any, Optional

from rich.console import Console
from rich.table import Table
from rich.text import Text

from .errors import ErrorCategory
from .group import GroupResult
from .output import TaskResult, print_output
from .sequence import SequenceResult

_STATUS_STYLE = {
    "ok": "bold green",
    "failed": "bold red",
    "spawn error": "red",
    "no output": "magenta",
    "terminated": "yellow",
    "skipped": "dim",
}


def _task_status(r: TaskResult) -> str:
    category = r.category
    if category is None:
        return "ok"
    if category is ErrorCategory.TASK_FAILURE:
        return "failed"
    return "no output"


def build_summary_table(seq: SequenceResult) -> Table:
    table = Table(title="pgflow summary", expand=False, show_lines=False)
    table.add_column("group", style="bold")
    table.add_column("task")
    table.add_column("status")
    table.add_column("rc", justify="right")
    table.add_column("pid", justify="right")

    def row(group: str, task: str, status: str, rc: Optional[int] = None, pid: Optional[int] = None) -> None:
        table.add_row(
            group,
            task,
            Text(status, style=_STATUS_STYLE.get(status, "white")),
            "" if rc is None else str(rc),
            "" if pid is None else str(pid),
        )

    for name, res in seq.groups:
        for r in res.outputs:
            row(name, r.description, _task_status(r), r.returncode, r.pid)
        for err in res.spawn_errors:
            row(name, getattr(err.task, "description", str(err.task)), "spawn error")
        for t in res.terminated:
            row(name, t.description, "terminated", pid=t.pid)
    for name in seq.skipped:
        row(name, "-", "skipped")
    return table


def print_group_outputs(res: GroupResult, stdout: Any = None, stderr: Any = None) -> None:
    """Print every collected output, failed ones last."""
    for r in res.reordered_outputs():
        print_output(r, stdout=stdout, stderr=stderr)


def render_summary(seq: SequenceResult, console: Optional[Console] = None) -> str:
    console = console or Console(record=True)
    console.print(build_summary_table(seq))
    for name, res in seq.groups:
        line = f"{name}: {res.mode.name} ({len(res.outputs)} collected, {len(res.failures)} failed)"
        console.print(Text(line, style="dim"))
    return console.export_text(clear=False) if console.record else ""
