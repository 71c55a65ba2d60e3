"""
Domain types for the runner manager.

A Runner comes from the gitlab-runner config.toml and is augmented with a
live status. A PidRecord is what the manager persists for every runner it
started.
"""

from dataclasses import dataclass
from enum import Enum

from .errors import ValidationError

# Runner names end up as file names in the log and PID directories. The
# limit leaves room for the ".<name>.pid.tmp" file within NAME_MAX.
MAX_NAME_BYTES = 246


class RunnerStatus(Enum):
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass
class Runner:
    """A runner registered in config.toml."""

    name: str
    url: str
    token: str
    status: RunnerStatus = RunnerStatus.STOPPED

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "url": self.url,
            "token": self.token,
            "status": self.status.value,
        }


@dataclass
class PidRecord:
    """Persisted identity of the last started process for a runner."""

    name: str
    pid: int
    started_at: float | None = None  # process creation time, epoch seconds

    def serialize(self) -> str:
        if self.started_at is None:
            return f"{self.pid}\n"
        return f"{self.pid}\n{self.started_at:.3f}\n"

    @classmethod
    def parse(cls, name: str, content: str) -> "PidRecord":
        """Parse PID file content. Raises ValueError on garbage."""
        lines = content.split()
        if not lines:
            raise ValueError("empty PID record")
        pid = int(lines[0])
        if pid <= 0:
            raise ValueError(f"invalid pid {pid}")
        started_at = float(lines[1]) if len(lines) > 1 else None
        return cls(name=name, pid=pid, started_at=started_at)


def validate_runner_name(name: str) -> str:
    """Return name unchanged if it is safe to use as a file name."""
    if not name:
        raise ValidationError("Runner name is required")
    if (
        name.startswith(".")
        or "/" in name
        or "\0" in name
        or len(name.encode("utf-8", "surrogatepass")) > MAX_NAME_BYTES
    ):
        raise ValidationError(f"Invalid runner name: {name!r}")
    return name
