"""
Pytest configuration and shared fixtures for runner manager tests.
"""

from pathlib import Path

import pytest

from runner_manager.config import Config
from runner_manager.process import RunnerProcessManager
from runner_manager.supervisor import SpawnedProcess


class FakeSupervisor:
    """In-memory process table standing in for the OS."""

    def __init__(self):
        self.next_pid = 4000
        self.alive: dict[int, float] = {}
        self.spawned: list[tuple[list[str], Path]] = []
        self.terminated: list[tuple[int, bool]] = []
        self.output = b""
        self.spawn_error: Exception | None = None
        self.terminate_error: Exception | None = None
        self.ignore_sigterm = False

    def spawn(self, argv, cwd, output) -> SpawnedProcess:
        if self.spawn_error:
            raise self.spawn_error
        self.next_pid += 1
        pid = self.next_pid
        output.write(self.output)
        self.alive[pid] = 1_700_000_000.0 + pid
        self.spawned.append((argv, cwd))
        return SpawnedProcess(pid=pid, started_at=self.alive[pid])

    def is_alive(self, pid, started_at=None) -> bool:
        if pid not in self.alive:
            return False
        return started_at is None or self.alive[pid] == started_at

    def terminate(self, pid, force=False):
        self.terminated.append((pid, force))
        if self.terminate_error:
            raise self.terminate_error
        if pid not in self.alive:
            raise ProcessLookupError(f"No such process: {pid}")
        if self.ignore_sigterm and not force:
            return
        del self.alive[pid]

    def kill_out_of_band(self, pid):
        """Simulate the process dying without the manager noticing."""
        del self.alive[pid]


@pytest.fixture
def cfg(tmp_path: Path) -> Config:
    """Config with every path under a temporary directory."""
    return Config(
        config_dir=tmp_path / "config",
        data_dir=tmp_path / "data",
        working_dir=tmp_path,
        static_dir=tmp_path / "static",
        runner_binary="gitlab-runner",
        executor="shell",
        command_timeout=5,
        stop_timeout=0,
        log_tail_lines=1000,
    )


@pytest.fixture
def fake_supervisor() -> FakeSupervisor:
    return FakeSupervisor()


@pytest.fixture
def manager(cfg: Config, fake_supervisor: FakeSupervisor) -> RunnerProcessManager:
    return RunnerProcessManager(cfg, supervisor=fake_supervisor)
