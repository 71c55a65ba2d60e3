"""
Runner registration through the gitlab-runner CLI.

Both commands rewrite config.toml. Their combined output is returned to the
caller verbatim, and attached to the error when they fail.
"""

import logging
import subprocess

from .config import Config
from .errors import ExternalToolError, ValidationError

logger = logging.getLogger(__name__)


class Registrar:
    """Wraps `gitlab-runner register` and `gitlab-runner unregister`."""

    def __init__(self, cfg: Config):
        self.config = cfg

    def register(self, name: str, url: str, token: str) -> str:
        """Register a runner. Returns the CLI output."""
        if not name or not url or not token:
            raise ValidationError("Name, URL and Token are required")

        output = self._run(
            [
                self.config.runner_binary, "register",
                "--non-interactive",
                "--url", url,
                "--token", token,
                "--name", name,
                "--config", str(self.config.config_path),
                "--executor", self.config.executor,
            ],
            failure=f"Failed to register runner {name}",
        )
        logger.info(f"Runner registered successfully: {name}")
        return output

    def unregister(self, token: str) -> str:
        """Unregister the runner owning token. Returns the CLI output."""
        if not token:
            raise ValidationError("Token is required")

        output = self._run(
            [
                self.config.runner_binary, "unregister",
                "--token", token,
                "--config", str(self.config.config_path),
            ],
            failure="Failed to unregister runner",
        )
        logger.info("Runner unregistered successfully")
        return output

    def _run(self, cmd: list[str], failure: str) -> str:
        try:
            result = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=self.config.command_timeout,
            )
        except FileNotFoundError:
            error = f"{failure}: {self.config.runner_binary} not found"
            logger.error(error)
            raise ExternalToolError(error, output="")
        except OSError as e:
            error = f"{failure}: {e}"
            logger.error(error)
            raise ExternalToolError(error, output="")
        except subprocess.TimeoutExpired as e:
            output = _decode(e.output)
            error = f"{failure}: timed out after {self.config.command_timeout}s"
            logger.error(f"{error}, output: {output}")
            raise ExternalToolError(error, output=output)

        if result.returncode != 0:
            logger.error(f"{failure}: exit code {result.returncode}, output: {result.stdout}")
            raise ExternalToolError(
                f"{failure}: exit code {result.returncode}", output=result.stdout
            )

        return result.stdout


def _decode(output) -> str:
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode("utf-8", errors="replace")
    return output
