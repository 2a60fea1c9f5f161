"""
Module group build orchestration for pyiglbuild projects.

The Orchestrator catalogs the enabled module groups, then drives one
pipeline per group through the parallel pipeline:

    discover -> generate glue -> assemble target -> build -> install

It implements the GroupStages protocol itself, so every stage has access to
the shared BuildContext, the umbrella target and the error collector while
the per-group state stays on the group's own GroupTask.
"""

import logging
import shutil
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from ..config import BuildConfig, ErrorPolicy
from ..pipeline.callbacks import NullCallback, ProgressCallback
from ..pipeline.models import GroupPhase, GroupTask
from ..pipeline.pipeline import ParallelPipeline, PipelineCancelledError
from .build_context import BuildContext
from .discovery import discover_units
from .error_collector import ErrorCollector, ErrorSeverity, GroupError
from .errors import OrchestrationAborted
from .executor import STAMP_SUFFIX, BuildExecutor, CompilerExecutor
from .glue import render_glue, write_glue
from .groups import CATALOG, CORE_NAME, GroupDescriptor, group_label, group_subpath, group_target_name, resolve_group
from .install import ENTRY_POINT_FILE, MANIFEST_SUFFIX, InstallDriver, ManifestGenerator, entry_point_text
from .targets import BuildTarget, UmbrellaTarget, assemble_target

logger = logging.getLogger(__name__)

# Discovery/glue and install are short; more workers than groups is pointless
_MAX_AUX_WORKERS = 4


class OrchestratorState(Enum):
    """Lifecycle of one orchestration run."""

    UNINITIALIZED = "uninitialized"
    GROUPS_CATALOGED = "groups_cataloged"
    AGGREGATED = "aggregated"
    DONE = "done"
    FAILED = "failed"


@dataclass
class OrchestrationResult:
    """Outcome of an orchestration run.

    Attributes:
        tasks: Final state of every enabled group, in catalog order
        umbrella: Aggregate target
        errors: Failures and warnings attributed to groups
        elapsed: Wall-clock seconds of the run
        state: DONE, or FAILED when a fail-fast run was aborted
    """

    tasks: list[GroupTask]
    umbrella: UmbrellaTarget
    errors: ErrorCollector = field(default_factory=ErrorCollector)
    elapsed: float = 0.0
    state: OrchestratorState = OrchestratorState.DONE

    @property
    def targets(self) -> list[BuildTarget]:
        """Assembled targets in catalog order."""
        return [t.target for t in self.tasks if t.target is not None]

    @property
    def installed(self) -> list[GroupTask]:
        return [t for t in self.tasks if t.phase == GroupPhase.INSTALLED]

    @property
    def failed(self) -> list[GroupTask]:
        return [t for t in self.tasks if t.phase == GroupPhase.FAILED]

    @property
    def success(self) -> bool:
        return self.state == OrchestratorState.DONE and not self.failed

    def get_task(self, target_name: str) -> GroupTask:
        """Get a group's task by target name.

        Raises:
            KeyError: If no enabled group has that target name
        """
        for task in self.tasks:
            if task.name == target_name:
                return task
        raise KeyError(f"Unknown target: {target_name}")

    def summary(self) -> str:
        """One line per group followed by the error summary."""
        lines = []
        for task in self.tasks:
            if task.phase == GroupPhase.INSTALLED:
                note = f" ({len(task.warnings)} warning(s))" if task.warnings else ""
                lines.append(f"✓ {task.name} -> {task.descriptor.install_destination}{note}")
            else:
                lines.append(f"✗ {task.name}: {task.error_message}")
        lines.append(f"Errors: {self.errors.format_summary()}")
        return "\n".join(lines)


class Orchestrator:
    """
    Orchestrates the build of every enabled module group.

    Args:
        config: Resolved build configuration
        executor: External build executor (default: CompilerExecutor)
        manifest_generator: Interface manifest producer (default: nanobind stubgen)
        callback: Progress callback for phase transitions
    """

    def __init__(
        self,
        config: BuildConfig,
        executor: Optional[BuildExecutor] = None,
        manifest_generator: Optional[ManifestGenerator] = None,
        callback: Optional[ProgressCallback] = None,
    ):
        self.config = config
        self.context = BuildContext.from_config(config)
        self.executor: BuildExecutor = executor if executor is not None else CompilerExecutor()
        self.install_driver = InstallDriver(self.context, manifest_generator)
        self.callback: ProgressCallback = callback if callback is not None else NullCallback()
        self.umbrella = UmbrellaTarget()
        self.errors = ErrorCollector()
        self.state = OrchestratorState.UNINITIALIZED
        self._tasks: list[GroupTask] = []
        self._pipeline: Optional[ParallelPipeline] = None

    @property
    def fail_fast(self) -> bool:
        return self.config.error_policy == ErrorPolicy.FAIL_FAST

    def catalog_groups(self) -> list[GroupTask]:
        """Resolve the catalog into one task per enabled group.

        Disabled groups are skipped silently. Every non-core group depends
        on the core group's target.
        """
        root_name = group_target_name("", CORE_NAME)
        tasks = []
        for prefix, name in CATALOG:
            descriptor = resolve_group(
                prefix,
                name,
                self.config.options,
                self.context.source_root,
                self.context.generated_root,
                self.context.output_root,
            )
            if descriptor is None:
                logger.debug("Module group %s is disabled", group_label(prefix, name))
                continue
            dependencies = [] if descriptor.is_root else [root_name]
            tasks.append(GroupTask(descriptor=descriptor, dependencies=dependencies))

        self._tasks = tasks
        self.state = OrchestratorState.GROUPS_CATALOGED
        logger.info("Cataloged %d module group(s): %s", len(tasks), ", ".join(t.name for t in tasks))
        return tasks

    def plan(self) -> list[GroupDescriptor]:
        """Resolve the enabled groups without touching the filesystem."""
        if self.state == OrchestratorState.UNINITIALIZED:
            self.catalog_groups()
        return [task.descriptor for task in self._tasks]

    def run(self) -> OrchestrationResult:
        """Build and install every enabled group.

        Returns:
            OrchestrationResult; under best-effort it lists skipped groups

        Raises:
            OrchestrationAborted: Under fail-fast, on the first group error
            PipelineCancelledError: If cancel() was called
            KeyboardInterrupt: On Ctrl-C, after queued work was cancelled
        """
        if self.state not in (OrchestratorState.UNINITIALIZED, OrchestratorState.GROUPS_CATALOGED):
            raise RuntimeError(f"Orchestrator already ran (state: {self.state.value})")
        if self.state == OrchestratorState.UNINITIALIZED:
            self.catalog_groups()

        start_time = time.monotonic()
        jobs = max(1, self.config.jobs)
        aux_workers = max(1, min(len(self._tasks), jobs, _MAX_AUX_WORKERS))
        self._pipeline = ParallelPipeline(
            prepare_workers=aux_workers,
            build_workers=jobs,
            install_workers=aux_workers,
            fail_fast=self.fail_fast,
        )

        logger.info("Building %d module group(s) with %d job(s), policy %s", len(self._tasks), jobs, self.config.error_policy)
        try:
            pipeline_result = self._pipeline.run(self._tasks, self, self.callback)
        except (PipelineCancelledError, KeyboardInterrupt):
            self.state = OrchestratorState.FAILED
            raise

        self._collect_failures(pipeline_result.tasks)
        self.state = OrchestratorState.AGGREGATED
        result = OrchestrationResult(
            tasks=pipeline_result.tasks,
            umbrella=self.umbrella,
            errors=self.errors,
            elapsed=time.monotonic() - start_time,
        )

        if pipeline_result.first_error is not None:
            self.state = OrchestratorState.FAILED
            result.state = OrchestratorState.FAILED
            raise OrchestrationAborted(pipeline_result.first_error, result)

        self.state = OrchestratorState.DONE
        result.state = OrchestratorState.DONE
        logger.info("Orchestration finished: %d installed, %d failed", len(result.installed), len(result.failed))
        return result

    def cancel(self) -> None:
        """Stop scheduling new work; running stages finish. Thread-safe."""
        if self._pipeline is not None:
            self._pipeline.cancel()

    def _collect_failures(self, tasks: list[GroupTask]) -> None:
        for task in tasks:
            if task.phase != GroupPhase.FAILED:
                continue
            if task.error is not None:
                self.errors.add_error(GroupError.from_exception(task.label, task.error))
            else:
                # Skipped because a dependency failed or the run was aborted
                self.errors.add_error(GroupError(ErrorSeverity.ERROR, task.label, "skipped", task.error_message))

    # GroupStages implementation; each runs on a pool worker thread

    def discover(self, task: GroupTask) -> None:
        task.manifest = discover_units(task.descriptor)

    def generate_glue(self, task: GroupTask) -> None:
        assert task.manifest is not None
        glue = render_glue(task.manifest.units)
        write_glue(task.descriptor, glue)
        task.glue = glue

    def assemble(self, task: GroupTask) -> None:
        assert task.manifest is not None
        task.target = assemble_target(task.descriptor, task.manifest, self.context, self.umbrella)

    def build(self, task: GroupTask) -> None:
        assert task.target is not None
        task.artifact = self.executor.build(task.target, self.context)

    def install(self, task: GroupTask) -> None:
        assert task.target is not None and task.artifact is not None
        result = self.install_driver.install(task.target, task.artifact)
        for message in result.warnings:
            task.warnings.append(message)
            self.errors.add_warning(task.label, "manifest", message, task.name)
        task.install_result = result

    def clean(self) -> list[Path]:
        """Remove the build directory and the generated files in the output tree.

        Hand-written files are left alone: an ``__init__.py`` is only removed
        when it still holds the generated re-export. Output directories are
        removed once empty.

        Returns:
            Paths that were removed
        """
        removed: list[Path] = []
        build_dir = self.config.build_dir
        if build_dir.is_dir():
            shutil.rmtree(build_dir)
            removed.append(build_dir)

        output_root = self.context.output_root
        # Deepest subpaths first (the output root last) so children empty out before their parents
        for prefix, name in sorted(CATALOG, key=lambda key: len(Path(group_subpath(*key)).parts), reverse=True):
            subpath = group_subpath(prefix, name)
            output_dir = output_root / subpath if subpath else output_root
            if not output_dir.is_dir():
                continue
            removed.extend(self._clean_output_dir(output_dir, output_root, group_target_name(prefix, name)))
            if output_dir.is_dir():
                left = sorted(p.name for p in output_dir.iterdir())
                logger.debug("Kept %s for %s, still holds: %s", output_dir, group_label(prefix, name), ", ".join(left))

        for path in removed:
            logger.debug("Removed %s", path)
        return removed

    def _clean_output_dir(self, output_dir: Path, output_root: Path, target_name: str) -> list[Path]:
        removed = []
        for path in sorted(output_dir.glob(f"{target_name}.*")):
            generated = (
                path.name == f"{target_name}{self.context.module_suffix}"
                or path.name == f"{target_name}{MANIFEST_SUFFIX}"
                or path.name.endswith((".so", ".pyd", ".partial", STAMP_SUFFIX))
            )
            if generated and path.is_file():
                path.unlink()
                removed.append(path)

        entry_point = output_dir / ENTRY_POINT_FILE
        if entry_point.is_file() and entry_point.read_text(encoding="utf-8") == entry_point_text(target_name):
            entry_point.unlink()
            removed.append(entry_point)

        # Remove the directory and any parents it leaves empty, up to the output root
        directory = output_dir
        while directory != output_root.parent and directory.is_dir() and not any(directory.iterdir()):
            directory.rmdir()
            removed.append(directory)
            directory = directory.parent
        return removed
