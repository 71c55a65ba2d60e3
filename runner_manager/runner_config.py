"""
Read-only view of the gitlab-runner config.toml.

gitlab-runner owns this file (register/unregister rewrite it); we only parse
it to enumerate the known runners.
"""

import logging
import tomllib
from pathlib import Path
from typing import Callable

from .errors import RunnerIOError
from .models import Runner, RunnerStatus

logger = logging.getLogger(__name__)


class RunnerConfigStore:
    """Loads runner entries from config.toml."""

    def __init__(self, config_path: Path):
        self.config_path = Path(config_path)

    def load(self) -> list[Runner]:
        """Parse the runner entries. A missing file means no runners yet."""
        try:
            with open(self.config_path, "rb") as f:
                data = tomllib.load(f)
        except FileNotFoundError:
            return []
        except OSError as e:
            raise RunnerIOError(f"Failed to read config file: {e}")
        except tomllib.TOMLDecodeError as e:
            raise RunnerIOError(f"Failed to parse config file: {e}")

        runners = []
        for entry in data.get("runners", []):
            if not isinstance(entry, dict):
                logger.warning(f"Skipping malformed runner entry in {self.config_path}")
                continue
            runners.append(
                Runner(
                    name=str(entry.get("name", "")),
                    url=str(entry.get("url", "")),
                    token=str(entry.get("token", "")),
                )
            )
        return runners

    def list_runners(self, probe: Callable[[str], RunnerStatus]) -> list[Runner]:
        """All configured runners with their live status."""
        runners = self.load()
        for runner in runners:
            runner.status = probe(runner.name)
        return runners
