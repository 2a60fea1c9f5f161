"""External build executors.

The orchestrator never compiles anything itself. It hands each BuildTarget
to a BuildExecutor and gets back a BuildArtifact or a BuildFailedError.

CompilerExecutor is the default executor: one compile+link invocation of a
POSIX-style C++ compiler (g++/clang++) per module, with nanobind's headers
and its single-file runtime compiled in. The invocation blocks the calling
worker thread until the compiler exits.

A module is reused when it is newer than its sources, glue and project
headers and the stamp written next to it still matches the command line.
"""

import hashlib
import logging
import os
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

from ..subprocess_utils import format_tool_failure, run_tool
from .build_context import BuildContext
from .errors import ArtifactMissingError, ArtifactWriteError, BuildFailedError
from .groups import group_label
from .targets import BuildTarget

logger = logging.getLogger(__name__)

# Py_LIMITED_API value for a stable-ABI (abi3) module targeting Python 3.12
STABLE_ABI_VERSION_HEX = "0x030C0000"

STAMP_SUFFIX = ".stamp"


@dataclass(frozen=True)
class BuildArtifact:
    """Result of a successful module build.

    Attributes:
        target_name: Name of the built target
        path: Path of the compiled module
        rebuilt: False if the executor found the module up to date
        build_time: Seconds spent in the executor
    """

    target_name: str
    path: Path
    rebuilt: bool
    build_time: float


@runtime_checkable
class BuildExecutor(Protocol):
    """Protocol for anything that can turn a BuildTarget into a module."""

    def build(self, target: BuildTarget, context: BuildContext) -> BuildArtifact:
        """Build the target's module.

        Args:
            target: Target description
            context: Build-wide context

        Returns:
            The built artifact

        Raises:
            BuildFailedError: If the module could not be built
        """
        ...


@dataclass(frozen=True)
class ToolkitPaths:
    """Binding toolkit headers and sources compiled into every module."""

    include_dirs: tuple[Path, ...]
    sources: tuple[Path, ...]


def nanobind_toolkit() -> ToolkitPaths:
    """Locate nanobind's include directories and single-file runtime source.

    Raises:
        ImportError: If nanobind is not installed
    """
    try:
        import nanobind
    except ImportError:
        raise ImportError("nanobind is required to compile binding modules. Install with: pip install nanobind")

    package_dir = Path(nanobind.__file__).parent
    return ToolkitPaths(
        include_dirs=(Path(nanobind.include_dir()), package_dir / "ext" / "robin_map" / "include"),
        sources=(Path(nanobind.source_dir()) / "nb_combined.cpp",),
    )


def stamp_path_for(target: BuildTarget) -> Path:
    """File next to the module recording the command line that built it."""
    artifact = target.artifact_path
    return artifact.with_name(artifact.name + STAMP_SUFFIX)


def compute_command_hash(cmd: list[str]) -> str:
    """SHA256 of a command line. Argument order is significant."""
    hasher = hashlib.sha256()
    for arg in cmd:
        hasher.update(arg.encode("utf-8"))
        hasher.update(b"\x00")
    return hasher.hexdigest()


def project_headers(include_root: Path) -> list[Path]:
    """Every file under the project include root."""
    if not include_root.is_dir():
        return []
    return sorted(p for p in include_root.rglob("*") if p.is_file())


def _newest_mtime(paths: list[Path]) -> float:
    newest = 0.0
    for path in paths:
        try:
            newest = max(newest, path.stat().st_mtime)
        except OSError:
            return float("inf")  # A missing input always forces a rebuild
    return newest


class CompilerExecutor:
    """Builds each module with a single compiler invocation.

    Args:
        toolkit: Binding toolkit paths (default: located from nanobind on first build)
        force: Rebuild even when the module is up to date
    """

    def __init__(self, toolkit: ToolkitPaths | None = None, force: bool = False) -> None:
        self._toolkit = toolkit
        self._force = force

    @property
    def toolkit(self) -> ToolkitPaths:
        if self._toolkit is None:
            self._toolkit = nanobind_toolkit()
        return self._toolkit

    def is_up_to_date(self, target: BuildTarget, context: BuildContext) -> bool:
        """True if the module can be reused as is.

        That requires the module to be newer than every source, glue file and
        project header, and its stamp to match the current command line (so
        a different build type, ABI or link setting forces a rebuild).
        """
        artifact = target.artifact_path
        if self._force or not artifact.is_file():
            return False

        inputs = list(target.sources) + list(target.glue_files) + project_headers(context.include_root)
        if artifact.stat().st_mtime < _newest_mtime(inputs):
            return False

        try:
            recorded = stamp_path_for(target).read_text(encoding="utf-8").strip()
        except OSError:
            return False
        return recorded == compute_command_hash(self.command_for(target, context, _partial_path(artifact)))


    def command_for(self, target: BuildTarget, context: BuildContext, output: Path) -> list[str]:
        """Build the compiler command line for a target.

        Args:
            target: Target description
            context: Build-wide context
            output: File the compiler writes the module to

        Returns:
            Command line as a list of arguments
        """
        toolkit = self.toolkit
        defines = [f"-DPy_LIMITED_API={STABLE_ABI_VERSION_HEX}"] if context.stable_abi else []
        include_dirs = list(target.include_dirs) + list(toolkit.include_dirs) + [context.python_include]

        cmd = [context.compiler]
        cmd.extend(context.compile_flags)
        cmd.extend(defines)
        cmd.extend(f"-I{path}" for path in include_dirs)
        cmd.extend(str(source) for source in target.sources)
        cmd.extend(str(source) for source in toolkit.sources)
        cmd.extend(["-o", str(output)])
        cmd.extend(context.link_flags)
        for library in target.link_libraries:
            cmd.extend(context.linker_args_for(library))
        return cmd

    def build(self, target: BuildTarget, context: BuildContext) -> BuildArtifact:
        """Compile and link the target's module into its output directory."""
        label = group_label(*target.group)
        artifact = target.artifact_path
        start_time = time.monotonic()

        if self.is_up_to_date(target, context):
            logger.debug("%s is up to date", artifact)
            return BuildArtifact(target.name, artifact, rebuilt=False, build_time=0.0)

        try:
            target.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ArtifactWriteError(label, f"cannot create output directory: {e}", target.output_dir) from e

        # Compile to a temporary name so a failed link never leaves a half-written module
        partial = _partial_path(artifact)
        cmd = self.command_for(target, context, partial)

        try:
            result = run_tool(cmd, cwd=context.project_dir, timeout=context.build_timeout)
        except FileNotFoundError as e:
            raise BuildFailedError(label, f"compiler not found: {context.compiler}", context.compiler) from e
        except subprocess.TimeoutExpired as e:
            _discard(partial)
            raise BuildFailedError(label, f"build timed out after {e.timeout:.0f}s", target.name) from e

        if result.returncode != 0:
            _discard(partial)
            raise BuildFailedError(label, f"compilation failed ({format_tool_failure(result)})", target.name)
        if not partial.is_file():
            raise ArtifactMissingError(label, "compiler reported success but produced no module", partial)

        os.replace(partial, artifact)
        _write_stamp(target, cmd)
        elapsed = time.monotonic() - start_time
        logger.debug("Built %s in %.2fs", artifact, elapsed)
        return BuildArtifact(target.name, artifact, rebuilt=True, build_time=elapsed)


def _partial_path(artifact: Path) -> Path:
    return artifact.with_name(artifact.name + ".partial")


def _write_stamp(target: BuildTarget, cmd: list[str]) -> None:
    path = stamp_path_for(target)
    try:
        path.write_text(compute_command_hash(cmd) + "\n", encoding="utf-8")
    except OSError as e:
        # Without a stamp the next build recompiles
        logger.warning("Could not write build stamp %s: %s", path, e)


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Could not remove partial module %s: %s", path, e)
