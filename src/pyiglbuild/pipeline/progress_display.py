"""Rich-based live progress display for the module group pipeline.

Renders one line per module group, updated as the group moves through its
sub-states:

    pyigl_core            Built        ✓ Built in 41.2s
    pyigl_copyleft_core   Glue         ⠙ Waiting for pyigl_core...
    pyigl_embree          Failed       ✗ (-, embree): no binding units found

Thread-safe: pool worker threads call on_progress() concurrently while the
display renders in the main thread.
"""

import threading
import time
from typing import Any

from rich.console import Console, Group
from rich.live import Live
from rich.table import Table
from rich.text import Text

from .models import GroupPhase

# Braille spinner frames for groups that are being worked on
_SPINNER_FRAMES = ("⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏")

_PHASE_LABELS: dict[GroupPhase, tuple[str, str]] = {
    GroupPhase.WAITING: ("Waiting", "dim"),
    GroupPhase.DISCOVERED: ("Discovered", "blue"),
    GroupPhase.GLUE_GENERATED: ("Glue", "blue"),
    GroupPhase.TARGET_ASSEMBLED: ("Assembled", "yellow"),
    GroupPhase.BUILT: ("Built", "magenta"),
    GroupPhase.INSTALLED: ("Installed", "green"),
    GroupPhase.FAILED: ("Failed", "red bold"),
}


class _GroupDisplayState:
    """Internal state for a single group's display line."""

    __slots__ = ("name", "subpath", "phase", "detail", "elapsed", "start_time")

    def __init__(self, name: str, subpath: str) -> None:
        self.name = name
        self.subpath = subpath
        self.phase = GroupPhase.WAITING
        self.detail: str = ""
        self.elapsed: float = 0.0
        self.start_time: float | None = None


class PipelineProgressDisplay:
    """Live table of module group progress using Rich.

    Implements ProgressCallback.

    Args:
        console: Rich Console instance for rendering. If None, creates a new one.
        title: Header line (e.g. "Building 3 module groups (Release)").
        refresh_per_second: Display refresh rate.
        verbose: Show each group's output subpath under its name.
    """

    def __init__(self, console: Console | None, title: str, refresh_per_second: int = 10, verbose: bool = False) -> None:
        self._console = console if console is not None else Console()
        self._title = title
        self._refresh_per_second = refresh_per_second
        self._verbose = verbose
        self._states: dict[str, _GroupDisplayState] = {}
        self._order: list[str] = []
        self._lock = threading.Lock()
        self._live: Live | None = None

    def register_group(self, name: str, subpath: str = "") -> None:
        """Register a group before the pipeline starts so it shows as Waiting."""
        with self._lock:
            if name not in self._states:
                self._states[name] = _GroupDisplayState(name, subpath)
                self._order.append(name)

    def on_progress(self, task_name: str, phase: GroupPhase, detail: str) -> None:
        """Update the display state for a group. Thread-safe."""
        with self._lock:
            state = self._states.get(task_name)
            if state is None:
                state = _GroupDisplayState(task_name, "")
                self._states[task_name] = state
                self._order.append(task_name)

            if state.start_time is None and (phase != GroupPhase.WAITING or detail):
                state.start_time = time.monotonic()

            state.phase = phase
            state.detail = detail
            if state.start_time is not None:
                state.elapsed = time.monotonic() - state.start_time

        if self._live is not None:
            self._live.update(self._render_display())

    def start(self) -> None:
        """Start the live display. Call before pipeline.run()."""
        self._live = Live(
            self._render_display(),
            console=self._console,
            refresh_per_second=self._refresh_per_second,
            transient=False,
        )
        self._live.start()

    def stop(self) -> None:
        """Stop the live display after a final render."""
        if self._live is not None:
            self._live.update(self._render_display())
            self._live.stop()
            self._live = None

    def _render_display(self) -> Group:
        header = Text(f"\n{self._title}\n", style="bold")
        return Group(header, self._render_table(), self._render_footer())

    def _render_table(self) -> Table:
        table = Table(show_header=False, show_edge=False, show_lines=False, box=None, padding=(0, 1), expand=False)
        table.add_column("Group", style="bold", no_wrap=True, min_width=28)
        table.add_column("Phase", no_wrap=True, min_width=12)
        table.add_column("Status", no_wrap=False, min_width=40)

        with self._lock:
            for name in self._order:
                state = self._states[name]
                table.add_row(self._format_name(state), self._format_phase(state), self._format_status(state))
                if self._verbose:
                    subpath = f"igl/{state.subpath}" if state.subpath else "igl/"
                    table.add_row(Text(f"  └ {subpath}", style="dim"), Text(""), Text(""))
        return table

    def _render_footer(self) -> Text:
        with self._lock:
            total = len(self._states)
            done_count = sum(1 for s in self._states.values() if s.phase == GroupPhase.INSTALLED)
            failed_count = sum(1 for s in self._states.values() if s.phase == GroupPhase.FAILED)
        active_count = total - done_count - failed_count

        footer_parts = [f"{total} groups"]
        if active_count > 0:
            footer_parts.append(f"{active_count} active")
        if done_count > 0:
            footer_parts.append(f"{done_count} installed")
        if failed_count > 0:
            footer_parts.append(f"{failed_count} failed")
        return Text(f"\n  {', '.join(footer_parts)}", style="dim")

    def _format_name(self, state: _GroupDisplayState) -> Text:
        if state.phase == GroupPhase.INSTALLED:
            return Text(state.name, style="green")
        if state.phase == GroupPhase.FAILED:
            return Text(state.name, style="red")
        if state.phase == GroupPhase.WAITING and state.start_time is None:
            return Text(state.name, style="dim")
        return Text(state.name, style="bold cyan")

    def _format_phase(self, state: _GroupDisplayState) -> Text:
        label, style = _PHASE_LABELS.get(state.phase, ("Unknown", "dim"))
        return Text(label, style=style)

    def _format_status(self, state: _GroupDisplayState) -> Text:
        if state.phase == GroupPhase.INSTALLED:
            return Text(f"✓ {state.elapsed:.1f}s", style="green")
        if state.phase == GroupPhase.FAILED:
            return Text(f"✗ {state.detail or 'Error'}", style="red")
        if state.start_time is None:
            return Text("")
        spinner = _SPINNER_FRAMES[int(time.monotonic() * 8) % len(_SPINNER_FRAMES)]
        return Text(f"{spinner} {state.detail or 'Working...'}", style="magenta")

    def get_snapshot(self) -> list[dict[str, Any]]:
        """Get a snapshot of current display states for testing."""
        with self._lock:
            return [
                {
                    "name": state.name,
                    "subpath": state.subpath,
                    "phase": state.phase,
                    "detail": state.detail,
                    "elapsed": state.elapsed,
                }
                for state in (self._states[name] for name in self._order)
            ]

    def __enter__(self) -> "PipelineProgressDisplay":
        self.start()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.stop()
