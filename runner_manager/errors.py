"""
Error types for the runner manager.

Every error carries the HTTP status the API answers with, so route handlers
can simply let them propagate.
"""


class RunnerManagerError(Exception):
    """Base class for all runner manager errors."""

    http_status = 500

    def __init__(self, message: str, output: str | None = None):
        super().__init__(message)
        self.message = message
        self.output = output

    def to_dict(self) -> dict:
        data = {"success": False, "message": self.message}
        if self.output is not None:
            data["output"] = self.output
        return data


class ValidationError(RunnerManagerError):
    """A required field is missing or a value is not acceptable."""

    http_status = 400


class ExternalToolError(RunnerManagerError):
    """The gitlab-runner CLI failed. `output` holds its combined stdout/stderr."""


class RunnerIOError(RunnerManagerError):
    """A log, PID or config file could not be created or read."""


class StartError(RunnerManagerError):
    """A runner process could not be launched or tracked."""


class StopError(RunnerManagerError):
    """A runner process could not be signalled."""


class NotFoundError(StopError):
    """No PID record exists for the runner."""

    http_status = 404
