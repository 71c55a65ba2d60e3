"""
Process lifecycle manager for runners.

Starts runners as detached `gitlab-runner run` processes with their output
captured to a log file, tracks them through PID files, stops them with
signals and reads back their logs. PID files survive a restart of the
control plane, so a runner started by a previous instance is still found.
"""

import logging
import time
from pathlib import Path

from .config import Config
from .errors import NotFoundError, RunnerIOError, StartError, StopError, ValidationError
from .logtail import tail_lines
from .models import PidRecord, RunnerStatus, validate_runner_name
from .pidfile import PidStore
from .supervisor import OSProcessSupervisor, ProcessSupervisor

logger = logging.getLogger(__name__)

NO_LOGS_MESSAGE = "No logs available yet. Runner may not have been started."


class RunnerProcessManager:
    """Manages runner processes through PID and log files."""

    def __init__(self, cfg: Config, supervisor: ProcessSupervisor = None):
        self.config = cfg
        self.supervisor = supervisor or OSProcessSupervisor()
        self.pids = PidStore(cfg.pid_dir)

    def log_path(self, name: str) -> Path:
        return Path(self.config.logs_dir) / f"{name}.log"

    def build_command(self, name: str) -> list[str]:
        return [
            self.config.runner_binary,
            "run",
            "--config", str(self.config.config_path),
            "--working-directory", str(self.config.working_dir),
            "-n", name,
        ]

    def probe(self, name: str) -> RunnerStatus:
        """Report whether a runner is running. Never raises."""
        try:
            validate_runner_name(name)
        except ValidationError as e:
            logger.warning(f"Status requested for {e.message}")
            return RunnerStatus.STOPPED

        with self.pids.lock(name):
            record = self._read_record(name)
            if record is None:
                return RunnerStatus.STOPPED

            try:
                alive = self.supervisor.is_alive(record.pid, record.started_at)
            except Exception as e:
                logger.error(f"Error checking PID {record.pid} of runner {name}: {e}")
                return RunnerStatus.STOPPED

            if not alive:
                logger.info(f"Runner {name} (PID {record.pid}) is gone, removing stale PID file")
                self._discard_record(name)
                return RunnerStatus.STOPPED

            return RunnerStatus.RUNNING

    def is_running(self, name: str) -> bool:
        return self.probe(name) == RunnerStatus.RUNNING

    def start(self, name: str) -> PidRecord:
        """Start a runner in the background. Raises StartError on failure."""
        validate_runner_name(name)

        with self.pids.lock(name):
            existing = self._read_record(name)
            if existing is not None:
                if self.supervisor.is_alive(existing.pid, existing.started_at):
                    logger.info(f"Runner {name} is already running with PID {existing.pid}")
                    return existing
                self._discard_record(name)

            return self._launch(name)

    def _launch(self, name: str) -> PidRecord:
        log_file_path = self.log_path(name)
        try:
            Path(self.config.logs_dir).mkdir(parents=True, exist_ok=True)
            Path(self.config.pid_dir).mkdir(parents=True, exist_ok=True)
            log_file = open(log_file_path, "wb")
        except OSError as e:
            raise StartError(f"Failed to create log file: {e}")

        # The child keeps its own copy of the descriptor
        with log_file:
            try:
                spawned = self.supervisor.spawn(
                    self.build_command(name), Path(self.config.working_dir), log_file
                )
            except (OSError, ValueError) as e:
                raise StartError(f"Failed to start runner: {e}")

        record = PidRecord(name=name, pid=spawned.pid, started_at=spawned.started_at)
        try:
            self.pids.write(record)
        except RunnerIOError as e:
            try:
                self.supervisor.terminate(spawned.pid, force=True)
            except OSError as kill_error:
                logger.error(f"Failed to kill untracked runner {name} (PID {spawned.pid}): {kill_error}")
            raise StartError(f"Failed to write PID file: {e.message}")

        logger.info(f"Started runner {name} with PID {spawned.pid}")
        return record

    def stop(self, name: str) -> PidRecord:
        """
        Stop a runner by signalling its process.

        Raises NotFoundError when there is no PID file and StopError when the
        process cannot be signalled. Unless stop_timeout is set, returns
        without waiting for the process to exit.
        """
        validate_runner_name(name)

        with self.pids.lock(name):
            try:
                record = self.pids.read(name)
            except RunnerIOError as e:
                self._discard_record(name)
                raise StopError(e.message)

            if record is None:
                raise NotFoundError(f"PID file not found for runner {name}")

            # Never signal a process that merely inherited a recycled PID
            if not self.supervisor.is_alive(record.pid, record.started_at):
                self._discard_record(name)
                raise StopError(f"Runner {name} (PID {record.pid}) is not running")

            try:
                self.supervisor.terminate(record.pid)
            except OSError as e:
                raise StopError(f"Failed to kill process {record.pid}: {e}")

            if self.config.stop_timeout > 0:
                self._wait_for_exit(record)

            self._discard_record(name)

        logger.info(f"Stopped runner {name} (PID {record.pid})")
        return record

    def restart(self, name: str) -> tuple[PidRecord, bool]:
        """
        Stop a runner if it is running, then start it again.

        Returns the runner's PID record and whether a new process was
        launched. When the old process could not be signalled it keeps
        running, start leaves it in place and the flag is False.
        """
        previous = None
        try:
            self.stop(name)
        except StopError as e:
            logger.warning(f"Failed to stop runner {name}: {e.message}")
            with self.pids.lock(name):
                previous = self._read_record(name)

        record = self.start(name)
        restarted = previous is None or record.pid != previous.pid
        if not restarted:
            logger.warning(f"Runner {name} is still running with PID {record.pid}, it was not restarted")
        return record, restarted

    def logs(self, name: str, lines: int = None) -> str:
        """Get the last lines of a runner's log file."""
        validate_runner_name(name)

        limit = self.config.log_tail_lines
        if lines is not None:
            limit = min(lines, limit)

        try:
            return tail_lines(self.log_path(name), limit)
        except FileNotFoundError:
            return NO_LOGS_MESSAGE
        except OSError as e:
            raise RunnerIOError(f"Failed to read log file: {e}")

    def _wait_for_exit(self, record: PidRecord):
        """Poll until the process exits, escalating to SIGKILL after stop_timeout."""
        deadline = time.monotonic() + self.config.stop_timeout
        while self.supervisor.is_alive(record.pid, record.started_at):
            if time.monotonic() >= deadline:
                logger.warning(f"Runner {record.name} did not stop gracefully, forcing kill")
                try:
                    self.supervisor.terminate(record.pid, force=True)
                except ProcessLookupError:
                    pass
                except OSError as e:
                    logger.error(f"Failed to kill runner {record.name} (PID {record.pid}): {e}")
                return
            time.sleep(0.1)

    def _read_record(self, name: str) -> PidRecord | None:
        try:
            return self.pids.read(name)
        except RunnerIOError as e:
            logger.warning(f"{e.message}, discarding it")
            self._discard_record(name)
            return None

    def _discard_record(self, name: str):
        try:
            self.pids.remove(name)
        except RunnerIOError as e:
            logger.error(e.message)
