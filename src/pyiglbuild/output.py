"""
Centralized console output module for pyiglbuild.

All user-facing output is prefixed with the time elapsed since program launch
in MM:SS.cc format (minutes:seconds.centiseconds), which makes it easy to see
where a build spends its time.

Example output:
    00:00.02 pyigl-build v0.1.0
    00:00.05 [1/3] Resolving module groups...
    00:00.05       pyigl_core -> igl/
    00:00.05       pyigl_copyleft_core -> igl/copyleft
    00:04.71 [2/3] Building 2 module groups...

Library code logs diagnostics through the logging module; this module is for
the progress lines a person running the build reads.

Usage:
    from pyiglbuild.output import log, log_phase, log_detail

    log_phase(1, 3, "Resolving module groups...")
    log_detail("pyigl_core -> igl/")
"""

import sys
import time
from types import TracebackType
from typing import Optional, TextIO

# Global state for the timer
_start_time: Optional[float] = None
_output_stream: TextIO = sys.stdout
_verbose: bool = True


def init_timer(output_stream: Optional[TextIO] = None) -> None:
    """
    Initialize the program timer.

    If not called explicitly, it is called automatically on first log.

    Args:
        output_stream: Optional output stream (defaults to sys.stdout)
    """
    global _start_time, _output_stream
    _start_time = time.time()
    if output_stream is not None:
        _output_stream = output_stream


def set_verbose(verbose: bool) -> None:
    """
    Set verbose mode.

    Args:
        verbose: If True, verbose_only messages are printed too.
    """
    global _verbose
    _verbose = verbose


def is_verbose() -> bool:
    """Return whether verbose output is enabled."""
    return _verbose


def get_elapsed() -> float:
    """Get elapsed time in seconds since timer initialization."""
    if _start_time is None:
        init_timer()
    return time.time() - _start_time  # type: ignore


def format_timestamp() -> str:
    """Format the current elapsed time as MM:SS.cc."""
    elapsed = get_elapsed()
    minutes = int(elapsed // 60)
    seconds = elapsed % 60
    return f"{minutes:02d}:{seconds:05.2f}"


def _print(message: str) -> None:
    line = f"{format_timestamp()} {message}\n"
    _output_stream.write(line)
    _output_stream.flush()


def log(message: str, verbose_only: bool = False) -> None:
    """
    Log a message with timestamp.

    Args:
        message: Message to log
        verbose_only: If True, only print if verbose mode is enabled
    """
    if verbose_only and not _verbose:
        return
    _print(message)


def log_phase(phase: int, total: int, message: str, verbose_only: bool = False) -> None:
    """
    Log a build phase message formatted as ``[N/M] message``.

    Args:
        phase: Current phase number
        total: Total number of phases
        message: Phase description
        verbose_only: If True, only print if verbose mode is enabled
    """
    if verbose_only and not _verbose:
        return
    _print(f"[{phase}/{total}] {message}")


def log_detail(message: str, indent: int = 6, verbose_only: bool = False) -> None:
    """
    Log an indented detail message.

    Args:
        message: Detail message
        indent: Number of spaces to indent (default 6)
        verbose_only: If True, only print if verbose mode is enabled
    """
    if verbose_only and not _verbose:
        return
    _print(f"{' ' * indent}{message}")


def log_header(title: str, version: str) -> None:
    """Log the program header line followed by a blank line."""
    _print(f"{title} v{version}")
    _print("")


def log_error(message: str) -> None:
    """Log an error message."""
    _print(f"ERROR: {message}")


def log_warning(message: str) -> None:
    """Log a warning message."""
    _print(f"WARNING: {message}")


def log_build_complete(build_time: float, built: int, failed: int) -> None:
    """
    Log the closing summary line of a build.

    Args:
        build_time: Total build time in seconds
        built: Number of module groups installed
        failed: Number of module groups that failed
    """
    _print("")
    if failed:
        _print(f"Built {built} module group(s), {failed} failed in {build_time:.2f}s")
    else:
        _print(f"Built {built} module group(s) in {build_time:.2f}s")


class TimedLogger:
    """
    Context manager for logging an operation with its elapsed time.

    Usage:
        with TimedLogger("Resolving module groups", phase=(1, 3)) as step:
            step.detail("pyigl_core -> igl/")
        # Logs "Done (0.01s)" on success
    """

    def __init__(self, operation: str, phase: Optional[tuple[int, int]] = None, verbose_only: bool = False):
        self.operation = operation
        self.phase = phase
        self.verbose_only = verbose_only
        self.start_time = 0.0

    def __enter__(self) -> "TimedLogger":
        self.start_time = time.time()
        if self.phase:
            log_phase(self.phase[0], self.phase[1], f"{self.operation}...", self.verbose_only)
        else:
            log(f"{self.operation}...", self.verbose_only)
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        del exc_val, exc_tb  # Unused
        elapsed = time.time() - self.start_time
        if exc_type is None:
            log_detail(f"Done ({elapsed:.2f}s)", verbose_only=self.verbose_only)
        return None

    def detail(self, message: str) -> None:
        """Log a detail message within this operation."""
        log_detail(message, verbose_only=self.verbose_only)
