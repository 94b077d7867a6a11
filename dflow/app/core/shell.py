"""
External command execution for dflow.

All invocations of external tools (compose, s2i, oc, docker) go through
`run_command()`, which logs the command line at debug level, hands the child an
explicit environment and converts failures into `PlatformError`.
"""

import shlex
import shutil
import subprocess
from typing import List, Mapping, Optional, Sequence
from dflow.app.core.logger import get_logger

logger = get_logger(__name__)


class PlatformError(RuntimeError):
    """ An external command could not be run or returned a non-zero status. """


class PreconditionError(RuntimeError):
    """ A required tool, flag or target is missing; nothing external was attempted. """


def split_command(command: str) -> List[str]:
    """ Split a configured command such as "docker compose" into argv form. """
    return shlex.split(command)


def ensure_tools(*tools: str) -> None:
    """
    Verify that every tool is available on PATH.

    Args:
        tools (str): Executables (or configured commands, of which the first word is checked).

    Raises:
        PreconditionError: If any tool is missing.
    """
    missing = [tool for tool in tools if shutil.which(split_command(tool)[0]) is None]
    if missing:
        raise PreconditionError(f"Required tool(s) not found on PATH: {', '.join(missing)}")


def run_command(args: Sequence[str],
                env: Optional[Mapping[str, str]] = None,
                capture: bool = False,
                cwd: Optional[str] = None) -> str:
    """
    Run an external command and wait for it to finish.

    Args:
        args (Sequence[str]): Command line.
        env (Optional[Mapping[str, str]]): Complete environment for the child process.
        capture (bool): Capture and return stdout instead of streaming it to the terminal.
        cwd (Optional[str]): Working directory.

    Returns:
        str: Captured stdout (empty when `capture` is False).

    Raises:
        PlatformError: If the command is missing or exits with a non-zero status.
    """
    logger.debug(f"+ {' '.join(shlex.quote(a) for a in args)}")
    try:
        result = subprocess.run(
            list(args),
            env=dict(env) if env is not None else None,
            cwd=cwd,
            check=True,
            text=True,
            capture_output=capture,
        )
    except FileNotFoundError as e:
        raise PlatformError(f"Command not found: {args[0]}") from e
    except subprocess.CalledProcessError as e:
        detail = (e.stderr or "").strip() if capture else ""
        message = f"Command failed with exit status {e.returncode}: {' '.join(args)}"
        if detail:
            message = f"{message}: {detail}"
        raise PlatformError(message) from e
    return result.stdout if capture else ""
