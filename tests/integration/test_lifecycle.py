"""End-to-end lifecycle tests with a fake gitlab-runner binary."""

import os
import signal
import sys
import time

import pytest

from runner_manager.errors import NotFoundError
from runner_manager.models import RunnerStatus
from runner_manager.process import NO_LOGS_MESSAGE, RunnerProcessManager
from runner_manager.supervisor import OSProcessSupervisor

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="POSIX process groups required")

FAKE_RUNNER = """#!/bin/sh
echo "fake-runner $*"
echo "warning from stderr" >&2
i=0
while [ $i -lt 1200 ]; do
  echo "log line $i"
  i=$((i + 1))
done
exec sleep 30
"""


def wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return False


@pytest.fixture
def real_manager(cfg, tmp_path):
    binary = tmp_path / "gitlab-runner"
    binary.write_text(FAKE_RUNNER)
    binary.chmod(0o755)
    cfg.runner_binary = str(binary)

    supervisor = OSProcessSupervisor()
    manager = RunnerProcessManager(cfg, supervisor=supervisor)
    yield manager

    for pid in list(supervisor._children):
        try:
            os.killpg(pid, signal.SIGKILL)
        except OSError:
            pass


def test_start_probe_stop(real_manager):
    assert real_manager.probe("build-1") == RunnerStatus.STOPPED

    record = real_manager.start("build-1")

    assert real_manager.probe("build-1") == RunnerStatus.RUNNING
    assert real_manager.pids.read("build-1").pid == record.pid

    real_manager.stop("build-1")

    assert real_manager.probe("build-1") == RunnerStatus.STOPPED
    assert not real_manager.pids.path("build-1").exists()
    assert wait_until(lambda: not real_manager.supervisor.is_alive(record.pid))


def test_killed_out_of_band_heals(real_manager):
    record = real_manager.start("build-1")

    os.killpg(record.pid, signal.SIGKILL)

    assert wait_until(lambda: real_manager.probe("build-1") == RunnerStatus.STOPPED)
    assert not real_manager.pids.path("build-1").exists()
    with pytest.raises(NotFoundError):
        real_manager.stop("build-1")


def test_logs_capture_output(real_manager, cfg):
    assert real_manager.logs("build-1") == NO_LOGS_MESSAGE

    real_manager.start("build-1")

    assert wait_until(lambda: "log line 1199" in real_manager.logs("build-1"))
    logs = real_manager.logs("build-1")
    lines = logs.splitlines()
    assert len(lines) == 1000
    assert lines[-1] == "log line 1199"

    full = real_manager.log_path("build-1").read_text()
    assert f"fake-runner run --config {cfg.config_path}" in full
    assert "warning from stderr" in full


def test_restart_not_previously_started(real_manager):
    record, restarted = real_manager.restart("build-1")

    assert restarted is True
    assert real_manager.probe("build-1") == RunnerStatus.RUNNING
    assert real_manager.pids.read("build-1").pid == record.pid


def test_stop_timeout_waits_for_exit(real_manager, cfg):
    cfg.stop_timeout = 5
    record = real_manager.start("build-1")

    real_manager.stop("build-1")

    assert not real_manager.supervisor.is_alive(record.pid)
