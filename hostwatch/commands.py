from __future__ import annotations

import logging
from pathlib import Path
import subprocess

from hostwatch.logging_utils import TRACE_LEVEL

logger = logging.getLogger(__name__)


COMMAND_TIMEOUT_S = 30.0


def run_command(
    command: list[str],
    stderr: int | None = None,
    timeout: float | None = COMMAND_TIMEOUT_S,
) -> str | None:
    """Run a command and return its stdout, or None when it is missing, hangs or fails silently."""
    try:
        if stderr is None:
            result = subprocess.run(
                command,
                check=False,
                text=True,
                capture_output=True,
                timeout=timeout,
            )
        else:
            result = subprocess.run(
                command,
                check=False,
                text=True,
                stdout=subprocess.PIPE,
                stderr=stderr,
                timeout=timeout,
            )
    except FileNotFoundError:
        logger.debug("Command not found: %s", command[0])
        return None
    except subprocess.TimeoutExpired:
        logger.debug("Command timed out after %ss: %s", timeout, " ".join(command))
        return None
    if result.returncode != 0:
        logger.debug(
            "Command failed (%s): %s", result.returncode, " ".join(command)
        )
        if result.stderr:
            logger.log(TRACE_LEVEL, "stderr: %s", result.stderr.strip())
        if not result.stdout:
            return None
    if result.stdout:
        logger.log(TRACE_LEVEL, "stdout: %s", result.stdout.strip())
    return result.stdout


def read_file(path: str) -> str | None:
    """Read a file and return its contents, or None if it doesn't exist."""
    try:
        return Path(path).read_text()
    except (FileNotFoundError, PermissionError, OSError):
        return None
