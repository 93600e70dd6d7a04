import itertools
import sys
from pathlib import Path

import pytest

from pgflow.core.errors import CollectionError, ScanError
from pgflow.core.output import CollectedOutput
from pgflow.core.task import PollStatus

_pids = itertools.count(40000)


class FakeHandle:
    """Scripted stand-in for ProcessHandle.

    ``polls`` is how many polls report RUNNING before FINISHED; None never
    finishes.
    """

    def __init__(self, returncode=0, stdout=b"", stderr=b"", polls=0, poll_error=None, collect_error=None):
        self.pid = next(_pids)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.polls_left = polls
        self.poll_error = poll_error
        self.collect_error = collect_error
        self.description = ""
        self.metadata = None
        self.poll_count = 0
        self.collected = False
        self.terminated = False

    def try_poll(self):
        self.poll_count += 1
        if self.poll_error is not None:
            raise ScanError(self.pid, self.poll_error)
        if self.polls_left is None:
            return PollStatus.RUNNING
        if self.polls_left > 0:
            self.polls_left -= 1
            return PollStatus.RUNNING
        return PollStatus.FINISHED

    def collect_output(self):
        assert not self.collected, "collected twice"
        assert not self.terminated, "collected after terminate"
        self.collected = True
        if self.collect_error is not None:
            raise CollectionError(self.pid, self.collect_error)
        return CollectedOutput(self.returncode, self.stdout, self.stderr)

    def terminate(self):
        self.terminated = True


class ScriptedSpawner:
    """Spawn callable returning (or raising) whatever the plan has for a task id."""

    def __init__(self, plan):
        self.plan = plan
        self.calls = []

    def __call__(self, parent_dir, subdir, task_id, options):
        self.calls.append((Path(parent_dir), subdir, task_id, tuple(options)))
        item = self.plan[task_id]
        if isinstance(item, BaseException):
            raise item
        return item


@pytest.fixture
def fake():
    return FakeHandle


@pytest.fixture
def scripted():
    return ScriptedSpawner


@pytest.fixture
def scripts_dir(tmp_path):
    """Parent dir with one subdir per worker script: write(subdir, name, code)."""

    def write(subdir, name, code):
        d = tmp_path / subdir
        d.mkdir(parents=True, exist_ok=True)
        (d / f"{name}.py").write_text(code)
        return d

    write.root = tmp_path
    write.python = sys.executable
    return write
