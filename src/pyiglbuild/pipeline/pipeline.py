"""Pipeline orchestrator connecting scheduler + pools for parallel module group builds.

Coordinates the per-group pipeline (prepare -> build -> install) by:
1. Using DependencyScheduler to release groups whose dependencies are built
2. Submitting ready tasks to the pool matching their next segment
3. Blocking on the active futures until one completes (no busy-waiting)
4. Handling failures per the error policy: fail-fast stops scheduling new
   work and lets in-flight work finish; best-effort fails only the group and
   the groups that cannot link without it
5. Supporting Ctrl-C cancellation with graceful pool shutdown
"""

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, wait
from typing import Any, Optional

from .callbacks import ProgressCallback
from .models import GroupPhase, GroupTask, PipelineResult
from .pools import BuildPool, GroupStages, InstallPool, PreparePool, _StagePool
from .scheduler import DependencyScheduler

logger = logging.getLogger(__name__)

# Upper bound on how long the main loop blocks before re-checking cancellation
_WAIT_TIMEOUT = 0.25


class PipelineCancelledError(Exception):
    """Raised when the pipeline is cancelled via Ctrl-C or explicit cancellation."""

    pass


class ParallelPipeline:
    """Runs module group tasks through prepare, build and install pools.

    Args:
        prepare_workers: Number of concurrent discovery/glue workers.
        build_workers: Number of concurrent builds.
        install_workers: Number of concurrent installs.
        fail_fast: Stop scheduling new work after the first group failure.
    """

    def __init__(self, prepare_workers: int, build_workers: int, install_workers: int, fail_fast: bool = True) -> None:
        self._prepare_workers = prepare_workers
        self._build_workers = build_workers
        self._install_workers = install_workers
        self._fail_fast = fail_fast
        self._cancelled = False
        self._lock = threading.Lock()

    def run(self, tasks: list[GroupTask], stages: GroupStages, callback: ProgressCallback) -> PipelineResult:
        """Execute the pipeline on the given tasks.

        Returns when every task is INSTALLED or FAILED.

        Args:
            tasks: Group tasks to process.
            stages: Stage implementations.
            callback: Progress callback for reporting updates.

        Returns:
            PipelineResult with final task states; first_error is set when a
            fail-fast run was aborted.

        Raises:
            PipelineCancelledError: If the pipeline is cancelled via cancel().
        """
        start_time = time.monotonic()
        self._cancelled = False

        if not tasks:
            return PipelineResult(tasks=[], total_elapsed=0.0, success=True)

        scheduler = DependencyScheduler()
        for task in tasks:
            scheduler.add_task(task)
        scheduler.validate()

        active_futures: dict[Future[Any], str] = {}
        first_error: Optional[BaseException] = None

        with (
            PreparePool(max_workers=self._prepare_workers) as prepare_pool,
            BuildPool(max_workers=self._build_workers) as build_pool,
            InstallPool(max_workers=self._install_workers) as install_pool,
        ):
            pools: dict[GroupPhase, _StagePool] = {
                GroupPhase.WAITING: prepare_pool,
                GroupPhase.GLUE_GENERATED: build_pool,
                GroupPhase.BUILT: install_pool,
            }
            try:
                while not scheduler.all_done():
                    if self._is_cancelled():
                        self._cancel_active_futures(active_futures)
                        self._fail_remaining_tasks(scheduler, callback, "Pipeline cancelled")
                        raise PipelineCancelledError("Pipeline was cancelled")

                    if first_error is None:
                        self._fail_blocked_tasks(scheduler, callback)
                        for task in scheduler.get_ready_tasks():
                            self._submit_task(task, pools[task.phase], stages, scheduler, callback, active_futures)

                    if not active_futures:
                        reason = f"Aborted after failure: {first_error}" if first_error is not None else "Not schedulable"
                        self._fail_remaining_tasks(scheduler, callback, reason)
                        break

                    done, _ = wait(list(active_futures), timeout=_WAIT_TIMEOUT, return_when=FIRST_COMPLETED)
                    for future in done:
                        error = self._process_completed_future(future, active_futures, scheduler, callback)
                        if error is not None and self._fail_fast and first_error is None:
                            first_error = error
                            logger.debug("Fail-fast: stopping after %s", error)
                            self._cancel_active_futures(active_futures)

            except KeyboardInterrupt:
                self._cancel_active_futures(active_futures)
                self._fail_remaining_tasks(scheduler, callback, "Interrupted by user")
                raise

        total_elapsed = time.monotonic() - start_time
        all_tasks = scheduler.get_all_tasks()
        success = all(t.phase == GroupPhase.INSTALLED for t in all_tasks)
        return PipelineResult(tasks=all_tasks, total_elapsed=total_elapsed, success=success, first_error=first_error)

    def cancel(self) -> None:
        """Request pipeline cancellation. Thread-safe."""
        with self._lock:
            self._cancelled = True

    def _is_cancelled(self) -> bool:
        with self._lock:
            return self._cancelled

    def _submit_task(
        self,
        task: GroupTask,
        pool: _StagePool,
        stages: GroupStages,
        scheduler: DependencyScheduler,
        callback: ProgressCallback,
        active_futures: dict[Future[Any], str],
    ) -> None:
        task.mark_started()
        scheduler.set_in_flight(task.name, True)
        future = pool.submit(task, stages, scheduler, callback)
        active_futures[future] = task.name

    def _process_completed_future(
        self,
        future: Future[Any],
        active_futures: dict[Future[Any], str],
        scheduler: DependencyScheduler,
        callback: ProgressCallback,
    ) -> Optional[BaseException]:
        """Release a finished task; fail it if its segment raised.

        Returns:
            The exception that failed the task, or None.
        """
        task_name = active_futures.pop(future)
        task = scheduler.get_task(task_name)
        scheduler.set_in_flight(task_name, False)

        if future.cancelled():
            task.fail("Cancelled before it started")
            callback.on_progress(task_name, GroupPhase.FAILED, task.error_message)
            return None

        error = future.exception()
        if error is None:
            return None
        if isinstance(error, KeyboardInterrupt):
            raise error

        task.fail(str(error), error)
        callback.on_progress(task_name, GroupPhase.FAILED, str(error))
        return error

    def _fail_blocked_tasks(self, scheduler: DependencyScheduler, callback: ProgressCallback) -> None:
        for task, failed_dep in scheduler.get_blocked_tasks():
            task.fail(f"Dependency '{failed_dep}' failed")
            callback.on_progress(task.name, GroupPhase.FAILED, task.error_message)

    def _cancel_active_futures(self, active_futures: dict[Future[Any], str]) -> None:
        """Cancel queued futures; running stages finish on their own."""
        for future in active_futures:
            future.cancel()

    def _fail_remaining_tasks(self, scheduler: DependencyScheduler, callback: ProgressCallback, reason: str) -> None:
        for task in scheduler.get_all_tasks():
            if task.phase not in (GroupPhase.INSTALLED, GroupPhase.FAILED) and not task.in_flight:
                task.fail(reason)
                callback.on_progress(task.name, GroupPhase.FAILED, reason)
