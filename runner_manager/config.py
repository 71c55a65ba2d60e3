"""
Configuration for the runner manager service.

Loads settings from environment variables with sensible defaults. Every
component receives a Config instance at construction; the module-level
`config` is only used by the entry points.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from . import __version__

load_dotenv()

logger = logging.getLogger(__name__)


@dataclass
class Config:
    """Runner manager configuration."""

    # gitlab-runner config.toml location
    config_dir: Path = Path(os.environ.get("CONFIG_DIR", "/etc/gitlab-runner"))
    config_path: Path = None

    # Runtime state: per-runner PID files and log files
    data_dir: Path = Path(os.environ.get("RUNNER_DATA_DIR", "/home/gitlab-runner/.gitlab-runner"))
    logs_dir: Path = None
    pid_dir: Path = None
    manager_log: Path = None

    # Runner process
    working_dir: Path = Path(os.environ.get("RUNNER_WORKING_DIR", "/home/gitlab-runner"))
    runner_binary: str = os.environ.get("RUNNER_BINARY", "gitlab-runner")
    executor: str = os.environ.get("RUNNER_EXECUTOR", "shell")
    command_timeout: int = int(os.environ.get("RUNNER_COMMAND_TIMEOUT", "120"))
    stop_timeout: float = float(os.environ.get("RUNNER_STOP_TIMEOUT", "0"))
    log_tail_lines: int = int(os.environ.get("LOG_TAIL_LINES", "1000"))

    # Logging
    log_max_bytes: int = int(os.environ.get("LOG_MAX_BYTES", str(10 * 1024 * 1024)))  # 10MB
    log_backup_count: int = int(os.environ.get("LOG_BACKUP_COUNT", "5"))

    # Server
    host: str = os.environ.get("RUNNER_MANAGER_HOST", "0.0.0.0")
    port: int = int(os.environ.get("RUNNER_MANAGER_PORT", "8098"))
    # Optional dashboard assets served at /
    static_dir: Path = os.environ.get("STATIC_DIR") or None

    # Build metadata, usually injected by the image build
    version: str = os.environ.get("VERSION", __version__)
    git_commit: str = os.environ.get("GIT_COMMIT", "unknown")
    git_commit_full: str = os.environ.get("GIT_COMMIT_FULL", "unknown")
    git_branch: str = os.environ.get("GIT_BRANCH", "unknown")
    build_time: str = os.environ.get("BUILD_TIME", "unknown")

    def __post_init__(self):
        """Initialize derived paths."""
        self.config_dir = Path(self.config_dir)
        self.data_dir = Path(self.data_dir)
        if self.static_dir is not None:
            self.static_dir = Path(self.static_dir)
        if self.config_path is None:
            self.config_path = self.config_dir / "config.toml"
        if self.logs_dir is None:
            self.logs_dir = self.data_dir / "logs"
        if self.pid_dir is None:
            self.pid_dir = self.data_dir / "pids"
        if self.manager_log is None:
            self.manager_log = self.data_dir / "runner-manager.log"

    def ensure_dirs(self):
        """Create the config, log and PID directories. Failures are only logged."""
        for path in (Path(self.config_path).parent, self.data_dir, self.logs_dir, self.pid_dir):
            try:
                Path(path).mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.warning(f"Failed to create directory {path}: {e}")


config = Config()
