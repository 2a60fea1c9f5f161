"""Data models for the parallel module group pipeline.

Defines the core types used throughout the pipeline:
- GroupPhase: Enum tracking which sub-state a module group has reached
- GroupTask: The single owned record of one group's pipeline (descriptor,
  stage outputs, phase timestamps, failure)
- PipelineResult: Aggregated result of running the full pipeline
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from pyiglbuild.build.discovery import UnitManifest
    from pyiglbuild.build.executor import BuildArtifact
    from pyiglbuild.build.glue import GeneratedGlue
    from pyiglbuild.build.groups import GroupDescriptor
    from pyiglbuild.build.install import InstallResult
    from pyiglbuild.build.targets import BuildTarget


class GroupPhase(Enum):
    """Sub-state of a module group in the pipeline."""

    WAITING = "waiting"
    DISCOVERED = "discovered"
    GLUE_GENERATED = "glue_generated"
    TARGET_ASSEMBLED = "target_assembled"
    BUILT = "built"
    INSTALLED = "installed"
    FAILED = "failed"


# Successful progression; FAILED is terminal and outside the order
PHASE_ORDER: tuple[GroupPhase, ...] = (
    GroupPhase.WAITING,
    GroupPhase.DISCOVERED,
    GroupPhase.GLUE_GENERATED,
    GroupPhase.TARGET_ASSEMBLED,
    GroupPhase.BUILT,
    GroupPhase.INSTALLED,
)

TERMINAL_PHASES = (GroupPhase.INSTALLED, GroupPhase.FAILED)


def phase_reached(phase: GroupPhase, minimum: GroupPhase) -> bool:
    """True if phase is at or beyond minimum (never true for FAILED)."""
    if phase == GroupPhase.FAILED:
        return False
    return PHASE_ORDER.index(phase) >= PHASE_ORDER.index(minimum)


@dataclass
class GroupTask:
    """One module group travelling through the pipeline.

    Stage outputs are filled in as the group advances; each stage reads what
    the previous one left here.

    Attributes:
        descriptor: Resolved group
        dependencies: Names of tasks that must reach BUILT before this one is assembled
        phase: Current sub-state
        status_text: Human-readable status detail
        error: Exception that failed the task, if any
        error_message: Failure detail if phase is FAILED
        phase_times: Monotonic timestamp at which each sub-state was reached
        in_flight: True while a pool worker owns the task
        start_time: Timestamp when the task started processing (None if not started)
        elapsed: Elapsed seconds since start_time
        manifest: Discovery result
        glue: Generated glue
        target: Assembled build target
        artifact: Built module
        install_result: Install outcome
        warnings: Non-fatal problems reported for this group
    """

    descriptor: "GroupDescriptor"
    dependencies: list[str] = field(default_factory=list)
    phase: GroupPhase = GroupPhase.WAITING
    status_text: str = ""
    error: Optional[BaseException] = None
    error_message: str = ""
    phase_times: dict[GroupPhase, float] = field(default_factory=dict)
    in_flight: bool = False
    start_time: Optional[float] = None
    elapsed: float = 0.0
    manifest: Optional["UnitManifest"] = None
    glue: Optional["GeneratedGlue"] = None
    target: Optional["BuildTarget"] = None
    artifact: Optional["BuildArtifact"] = None
    install_result: Optional["InstallResult"] = None
    warnings: list[str] = field(default_factory=list)

    @property
    def name(self) -> str:
        """Task name (the group's target name)."""
        return self.descriptor.target_name

    @property
    def label(self) -> str:
        return self.descriptor.label

    def mark_started(self) -> None:
        """Record the start time for elapsed time tracking."""
        if self.start_time is None:
            self.start_time = time.monotonic()

    def update_elapsed(self) -> None:
        if self.start_time is not None:
            self.elapsed = time.monotonic() - self.start_time

    def enter_phase(self, phase: GroupPhase) -> None:
        """Move to a phase and record when it was reached."""
        self.phase = phase
        self.phase_times[phase] = time.monotonic()
        self.update_elapsed()

    def fail(self, error: str, exc: Optional[BaseException] = None) -> None:
        """Mark this task as failed with an error message."""
        self.error_message = error
        if exc is not None:
            self.error = exc
        self.enter_phase(GroupPhase.FAILED)

    def reached(self, phase: GroupPhase) -> bool:
        return phase_reached(self.phase, phase)

    def has_passed(self, phase: GroupPhase) -> bool:
        """True if the task is at or beyond phase, or was there before failing."""
        return phase in self.phase_times or phase_reached(self.phase, phase)


@dataclass
class PipelineResult:
    """Aggregated result of running the full pipeline.

    Attributes:
        tasks: Final state of all tasks after the pipeline completes
        total_elapsed: Total wall-clock time in seconds
        success: True if every task was installed
        first_error: The failure that aborted a fail-fast run, if any
    """

    tasks: list[GroupTask]
    total_elapsed: float
    success: bool
    first_error: Optional[BaseException] = None

    @property
    def completed_count(self) -> int:
        return sum(1 for t in self.tasks if t.phase == GroupPhase.INSTALLED)

    @property
    def failed_count(self) -> int:
        return sum(1 for t in self.tasks if t.phase == GroupPhase.FAILED)

    @property
    def failed_tasks(self) -> list[GroupTask]:
        return [t for t in self.tasks if t.phase == GroupPhase.FAILED]

    @property
    def aborted(self) -> bool:
        """True if a fail-fast abort stopped the run."""
        return self.first_error is not None
