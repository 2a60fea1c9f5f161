"""Parallel module group pipeline with a Rich live display.

Each enabled module group runs its own pipeline (discover -> glue -> assemble
-> build -> install) on static thread pools; the scheduler holds every group's
assembly back until the groups it links against are built.

Public API:
    ParallelPipeline: Runs GroupTasks through the pools.
    DependencyScheduler: Decides which group may start its next segment.
    PipelineProgressDisplay: Live table implementing ProgressCallback.
"""

import sys

from .callbacks import NullCallback, ProgressCallback, TextCallback
from .models import GroupPhase, GroupTask, PipelineResult, phase_reached
from .pipeline import ParallelPipeline, PipelineCancelledError
from .pools import BuildPool, GroupStages, InstallPool, PreparePool
from .progress_display import PipelineProgressDisplay
from .scheduler import CyclicDependencyError, DependencyScheduler


def is_tty() -> bool:
    """Check if stdout is a terminal (TTY)."""
    try:
        return sys.stdout.isatty()
    except (AttributeError, ValueError):
        return False


__all__ = [
    "BuildPool",
    "CyclicDependencyError",
    "DependencyScheduler",
    "GroupPhase",
    "GroupStages",
    "GroupTask",
    "InstallPool",
    "NullCallback",
    "ParallelPipeline",
    "PipelineCancelledError",
    "PipelineProgressDisplay",
    "PipelineResult",
    "PreparePool",
    "ProgressCallback",
    "TextCallback",
    "is_tty",
    "phase_reached",
]
