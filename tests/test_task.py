import sys
import time

import pytest

from pgflow.core.errors import CollectionError, ScanError
from pgflow.core.task import PollStatus, ProcessHandle, TaskDescriptor, launch


def _wait_finished(handle, timeout=20.0):
    deadline = time.time() + timeout
    while handle.try_poll() is PollStatus.RUNNING:
        assert time.time() < deadline, "process did not finish"
        time.sleep(0.01)


def test_task_descriptor_defaults():
    t = TaskDescriptor(subdir="alpha", task_id="main", options=["fast", "simd"])
    assert t.options == ("fast", "simd")
    assert t.description == "alpha/main [fast,simd]"
    assert TaskDescriptor("beta", "bench").description == "beta/bench"
    assert TaskDescriptor("beta", "bench", description="benchmarks").description == "benchmarks"


def test_try_poll_is_stable_once_finished(tmp_path):
    h = launch([sys.executable, "-c", "print('hi')"], cwd=tmp_path)
    _wait_finished(h)
    assert all(h.try_poll() is PollStatus.FINISHED for _ in range(5))
    out = h.collect_output()
    assert out.returncode == 0
    assert out.stdout.strip() == b"hi"
    assert out.stderr == b""


def test_collect_output_captures_status_and_stderr(tmp_path):
    code = "import sys; sys.stdout.write('o'); sys.stderr.write('e'); sys.exit(3)"
    h = launch([sys.executable, "-c", code], cwd=tmp_path, description="t", metadata=1)
    _wait_finished(h)
    out = h.collect_output()
    assert (out.returncode, out.stdout, out.stderr) == (3, b"o", b"e")
    assert not out.success
    with pytest.raises(RuntimeError):
        h.collect_output()


def test_large_output_does_not_block_polling(tmp_path):
    code = "import sys; sys.stdout.write('x' * 500000)"
    h = launch([sys.executable, "-c", code], cwd=tmp_path)
    _wait_finished(h)
    assert len(h.collect_output().stdout) == 500000


def test_launch_passes_env(tmp_path):
    code = "import os; print(os.environ['PGFLOW_TEST_VAR'])"
    h = launch([sys.executable, "-c", code], cwd=tmp_path, env={"PGFLOW_TEST_VAR": "42"})
    _wait_finished(h)
    assert h.collect_output().stdout.strip() == b"42"


def test_terminate_kills_running_process(tmp_path):
    h = launch([sys.executable, "-c", "import time; time.sleep(60)"], cwd=tmp_path)
    assert h.try_poll() is PollStatus.RUNNING
    started = time.time()
    h.terminate(grace=2.0)
    assert time.time() - started < 10
    assert h.released
    assert h.try_poll() is PollStatus.FINISHED
    # Second terminate is a no-op, collect after terminate is a programming error
    h.terminate()
    with pytest.raises(RuntimeError):
        h.collect_output()


class _BrokenPopen:
    pid = 4242
    returncode = None

    def poll(self):
        raise OSError("wait failed")

    def communicate(self):
        raise OSError("read failed")

    def wait(self, timeout=None):
        return 0


def test_try_poll_wraps_os_error_as_scan_error():
    h = ProcessHandle(_BrokenPopen(), description="broken")
    with pytest.raises(ScanError) as exc:
        h.try_poll()
    assert exc.value.pid == 4242


def test_collect_output_wraps_os_error_as_collection_error():
    h = ProcessHandle(_BrokenPopen(), description="broken")
    with pytest.raises(CollectionError):
        h.collect_output()
    assert h.released
