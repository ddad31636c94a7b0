"""Cache flush between bursts by running an external command."""

import logging
import shlex
import subprocess
from typing import List, Union


class CommandCacheFlusher:
    """Callable that runs a shell-free flush command, e.g. 'redis-cli FLUSHALL'."""

    def __init__(self, command: Union[str, List[str]], timeout: float = 30):
        self.command = shlex.split(command) if isinstance(command, str) else list(command)
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

    def __call__(self) -> bool:
        try:
            result = subprocess.run(
                self.command, capture_output=True, text=True, timeout=self.timeout
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            self.logger.warning(f"Cache flush command failed: {e}")
            return False

        if result.returncode != 0:
            self.logger.warning(
                f"Cache flush command exited with {result.returncode}: {result.stderr.strip()}"
            )
            return False
        return True
