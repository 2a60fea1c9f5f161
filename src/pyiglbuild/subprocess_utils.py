"""Subprocess utilities for running external build tools.

The compiler and the stub generator are both external processes. This module
wraps subprocess.run so every tool invocation gets the same treatment:
- no console window flashing on Windows
- stdin detached from the parent terminal
- captured text output
- an optional wall-clock timeout
"""

import logging
import subprocess
import sys
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)


def get_subprocess_creation_flags() -> int:
    """Get platform-specific subprocess creation flags.

    Returns:
        - Windows: subprocess.CREATE_NO_WINDOW (prevents console window)
        - Other platforms: 0 (no special flags)
    """
    if sys.platform == "win32":
        return subprocess.CREATE_NO_WINDOW
    return 0


def run_tool(
    cmd: Sequence[str],
    cwd: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
    timeout: Optional[float] = None,
    **kwargs: Any,
) -> subprocess.CompletedProcess:
    """Run an external build tool and capture its output.

    The call blocks until the tool exits (or the timeout expires), so callers
    running on a worker thread simply suspend there.

    Args:
        cmd: Command and arguments
        cwd: Working directory for the tool
        env: Full environment for the child process (None inherits ours)
        timeout: Seconds before the tool is killed (None waits forever)
        **kwargs: Additional arguments passed to subprocess.run

    Returns:
        CompletedProcess with text stdout/stderr

    Raises:
        FileNotFoundError: If the tool executable does not exist
        subprocess.TimeoutExpired: If the tool exceeds the timeout
    """
    default_flags = get_subprocess_creation_flags()
    if "creationflags" in kwargs:
        kwargs["creationflags"] = kwargs["creationflags"] | default_flags
    elif default_flags:
        kwargs["creationflags"] = default_flags

    # Child processes must never read from the terminal
    kwargs.setdefault("stdin", subprocess.DEVNULL)
    kwargs.setdefault("capture_output", True)
    kwargs.setdefault("text", True)

    logger.debug("Running: %s", " ".join(str(part) for part in cmd))
    return subprocess.run(
        [str(part) for part in cmd],
        cwd=str(cwd) if cwd is not None else None,
        env=dict(env) if env is not None else None,
        timeout=timeout,
        **kwargs,
    )


def format_tool_failure(result: subprocess.CompletedProcess, limit: int = 2000) -> str:
    """Summarize a failed tool run for an error message.

    Args:
        result: The completed (failed) process
        limit: Maximum number of output characters to keep

    Returns:
        Exit code plus the tail of stderr (or stdout if stderr is empty)
    """
    output = (result.stderr or "").strip() or (result.stdout or "").strip()
    if len(output) > limit:
        output = "... (truncated)\n" + output[-limit:]
    if output:
        return f"exit code {result.returncode}\n{output}"
    return f"exit code {result.returncode}"
