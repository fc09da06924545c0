"""Handles execution of external shell commands."""

import subprocess
import logging
import os
from typing import List, Dict, Optional, Tuple

# Configure logging
logger = logging.getLogger(__name__)

# systemctl calls should never hang a scheduled run
DEFAULT_COMMAND_TIMEOUT = 90

class CommandError(Exception):
    """Custom exception for command execution errors."""
    def __init__(self, message: str, returncode: int, stdout: str, stderr: str):
        super().__init__(message)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr

def run_command(
    command: List[str],
    env: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = DEFAULT_COMMAND_TIMEOUT
) -> Tuple[int, str, str]:
    """Run a command, capturing its output. Never raises on a non-zero exit.

    Returns:
        Tuple of (returncode, stdout, stderr)

    Raises:
        CommandError: If the command cannot be started or times out
    """
    logger.debug(f"Running command: '{' '.join(command)}'")

    # Merge with existing environment if env is provided
    process_env = os.environ.copy()
    if env:
        process_env.update(env)

    try:
        process = subprocess.run(
            command,
            env=process_env,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            timeout=timeout,
            check=False # We check manually
        )
    except FileNotFoundError:
        msg = f"Command not found: {command[0]}"
        logger.error(msg)
        raise CommandError(msg, -1, "", "")
    except subprocess.TimeoutExpired:
        msg = f"Command '{' '.join(command)}' timed out after {timeout}s"
        logger.error(msg)
        raise CommandError(msg, -1, "", "")
    except OSError as e:
        msg = f"Error running command '{' '.join(command)}': {e}"
        logger.exception(msg)
        raise CommandError(msg, -1, "", str(e))

    stdout = process.stdout.strip() if process.stdout else ""
    stderr = process.stderr.strip() if process.stderr else ""

    if stdout:
        logger.debug(f"Command stdout: {stdout}")
    if stderr:
        logger.debug(f"Command stderr: {stderr}")
    if process.returncode != 0:
        logger.debug(f"Command '{' '.join(command)}' finished with non-zero exit code: {process.returncode}")

    return process.returncode, stdout, stderr
