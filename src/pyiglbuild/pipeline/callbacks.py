"""Progress callback protocol for the module group pipeline.

Pool workers report every phase transition through this interface; the TUI
display and the plain-text reporter implement it.
"""

from typing import Protocol, runtime_checkable

from .. import output
from .models import GroupPhase


@runtime_checkable
class ProgressCallback(Protocol):
    """Protocol for receiving progress updates from pipeline pools."""

    def on_progress(self, task_name: str, phase: GroupPhase, detail: str) -> None:
        """Called when a group changes phase or reports status.

        Args:
            task_name: Target name of the group (e.g. "pyigl_copyleft_core").
            phase: Phase the group is in.
            detail: Human-readable status detail (e.g. "12 bindings", "Compiling...").
        """
        ...


class NullCallback:
    """No-op callback for tests and non-interactive use."""

    def on_progress(self, task_name: str, phase: GroupPhase, detail: str) -> None:
        pass


class TextCallback:
    """Plain-text callback for non-TTY output (CI logs, redirected output).

    Prints terminal states always, intermediate phases only in verbose mode.
    """

    def on_progress(self, task_name: str, phase: GroupPhase, detail: str) -> None:
        suffix = f" - {detail}" if detail else ""
        label = phase.value.replace("_", " ").capitalize()
        if phase == GroupPhase.FAILED:
            output.log_error(f"{task_name}: {label}{suffix}")
        elif phase == GroupPhase.INSTALLED:
            output.log_detail(f"{task_name}: {label}{suffix}")
        else:
            output.log_detail(f"{task_name}: {label}{suffix}", verbose_only=True)
