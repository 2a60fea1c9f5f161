"""Static thread pools for the module group pipeline.

Provides three resource-isolated thread pools:
- PreparePool: Filesystem work (binding unit discovery, glue generation)
- BuildPool: Target assembly and the external build (long, blocking)
- InstallPool: Entry point, interface manifest and install staging

Each pool wraps a ThreadPoolExecutor, runs its segment of the group's
pipeline through a GroupStages implementation and advances the task's phase
through the scheduler after each stage.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Protocol

from .callbacks import ProgressCallback
from .models import GroupPhase, GroupTask
from .scheduler import DependencyScheduler

logger = logging.getLogger(__name__)


class GroupStages(Protocol):
    """The per-group stage implementations the pools drive.

    Each stage reads its inputs from the task and stores its output back on
    the task; raising an exception fails the group.
    """

    def discover(self, task: GroupTask) -> None: ...

    def generate_glue(self, task: GroupTask) -> None: ...

    def assemble(self, task: GroupTask) -> None: ...

    def build(self, task: GroupTask) -> None: ...

    def install(self, task: GroupTask) -> None: ...


# (stage method, phase reached afterwards, status shown while it runs)
_Step = tuple[Callable[[GroupTask], None], GroupPhase, str]


class _StagePool:
    """ThreadPoolExecutor running a fixed sequence of stages per task.

    Args:
        max_workers: Maximum concurrent tasks.
    """

    thread_name_prefix = "stage"

    def __init__(self, max_workers: int) -> None:
        self._max_workers = max_workers
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=self.thread_name_prefix)
        self._shutdown = False
        self._lock = threading.Lock()

    def _steps(self, stages: GroupStages) -> list[_Step]:
        raise NotImplementedError

    def submit(
        self,
        task: GroupTask,
        stages: GroupStages,
        scheduler: DependencyScheduler,
        callback: ProgressCallback,
    ) -> Future[GroupPhase]:
        """Submit the task's next pipeline segment.

        Returns:
            Future resolving to the phase the task reached.

        Raises:
            RuntimeError: If the pool has been shut down.
        """
        with self._lock:
            if self._shutdown:
                raise RuntimeError(f"{type(self).__name__} has been shut down")
        return self._executor.submit(self._run, task, self._steps(stages), scheduler, callback)

    def _run(
        self,
        task: GroupTask,
        steps: list[_Step],
        scheduler: DependencyScheduler,
        callback: ProgressCallback,
    ) -> GroupPhase:
        for stage, reached, status in steps:
            callback.on_progress(task.name, task.phase, status)
            stage(task)
            scheduler.mark_phase(task.name, reached)
            callback.on_progress(task.name, reached, _describe(task, reached))
        return task.phase

    def shutdown(self, wait: bool = True, cancel_futures: bool = False) -> None:
        """Shut down the pool; running stages always finish."""
        with self._lock:
            self._shutdown = True
        self._executor.shutdown(wait=wait, cancel_futures=cancel_futures)

    def __enter__(self) -> "_StagePool":
        return self

    def __exit__(self, *args: Any) -> None:
        self.shutdown(wait=True, cancel_futures=True)


class PreparePool(_StagePool):
    """Runs discovery and glue generation."""

    thread_name_prefix = "prepare"

    def _steps(self, stages: GroupStages) -> list[_Step]:
        return [
            (stages.discover, GroupPhase.DISCOVERED, "Discovering binding units..."),
            (stages.generate_glue, GroupPhase.GLUE_GENERATED, "Generating glue..."),
        ]


class BuildPool(_StagePool):
    """Runs target assembly and the external build."""

    thread_name_prefix = "build"

    def _steps(self, stages: GroupStages) -> list[_Step]:
        return [
            (stages.assemble, GroupPhase.TARGET_ASSEMBLED, "Assembling target..."),
            (stages.build, GroupPhase.BUILT, "Compiling..."),
        ]


class InstallPool(_StagePool):
    """Runs entry point, manifest and install staging."""

    thread_name_prefix = "install"

    def _steps(self, stages: GroupStages) -> list[_Step]:
        return [(stages.install, GroupPhase.INSTALLED, "Installing...")]


def _describe(task: GroupTask, phase: GroupPhase) -> str:
    """Status detail shown after a stage completes."""
    if phase == GroupPhase.DISCOVERED and task.manifest is not None:
        return f"{len(task.manifest)} binding unit(s)"
    if phase == GroupPhase.BUILT and task.artifact is not None:
        if not task.artifact.rebuilt:
            return "Up to date"
        return f"Built in {task.artifact.build_time:.1f}s"
    if phase == GroupPhase.INSTALLED and task.install_result is not None:
        return str(task.install_result.destination)
    return ""
