"""Post-build install and interface manifest generation.

After the build executor produced a module, the InstallDriver:
1. writes the package entry point (__init__.py re-exporting the module)
2. asks nanobind's stub generator for the interface manifest (<target>.pyi),
   which imports the built module and so must run after the build
3. stages module, entry point and manifest into <install_prefix>/igl/<subpath>

Staging copies everything into a private directory first and only moves
files into the destination once all copies succeeded, so a failed install
leaves no new files behind.
"""

import logging
import os
import shutil
import subprocess
import sys
import tempfile
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

from ..subprocess_utils import format_tool_failure, run_tool
from .build_context import BuildContext
from .errors import ArtifactMissingError, ArtifactWriteError, ManifestError, ManifestWarning
from .executor import BuildArtifact
from .groups import group_label
from .targets import BuildTarget

logger = logging.getLogger(__name__)

ENTRY_POINT_FILE = "__init__.py"
MANIFEST_SUFFIX = ".pyi"
STUBGEN_TIMEOUT = 300.0


def entry_point_text(target_name: str) -> str:
    return f"from .{target_name} import *\n"


def manifest_path_for(target: BuildTarget) -> Path:
    return target.output_dir / f"{target.name}{MANIFEST_SUFFIX}"


class ManifestGenerator(Protocol):
    """Produces the interface manifest of a built module."""

    def generate(self, target: BuildTarget, artifact: BuildArtifact) -> Path:
        """Write the manifest and return its path.

        Raises:
            ManifestError: If the manifest could not be generated
        """
        ...


class StubGenerator:
    """Runs ``python -m nanobind.stubgen`` against a built module.

    Args:
        python: Interpreter used to import the module (default: the running one)
        timeout: Seconds allowed for stub generation
    """

    def __init__(self, python: Optional[str] = None, timeout: float = STUBGEN_TIMEOUT) -> None:
        self.python = python or sys.executable
        self.timeout = timeout

    def command_for(self, target: BuildTarget, output: Path) -> list[str]:
        return [self.python, "-m", "nanobind.stubgen", "-q", "-m", target.name, "-o", str(output)]

    def generate(self, target: BuildTarget, artifact: BuildArtifact) -> Path:
        label = group_label(*target.group)
        output = manifest_path_for(target)

        # The module is importable from the directory holding the built file
        env = os.environ.copy()
        module_dir = str(artifact.path.parent)
        env["PYTHONPATH"] = os.pathsep.join(p for p in (module_dir, env.get("PYTHONPATH", "")) if p)

        try:
            result = run_tool(self.command_for(target, output), cwd=artifact.path.parent, env=env, timeout=self.timeout)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ManifestError(label, f"stub generator did not run: {e}", target.name) from e
        if result.returncode != 0:
            raise ManifestError(label, f"stub generation failed ({format_tool_failure(result)})", target.name)
        if not output.is_file():
            raise ManifestError(label, "stub generator produced no manifest", output)
        return output


@dataclass(frozen=True)
class InstallResult:
    """Outcome of installing one module.

    Attributes:
        target_name: Installed target
        destination: Absolute install directory
        installed_files: Files now present in the destination
        manifest: Generated manifest in the output directory, None if generation failed
        warnings: Non-fatal problems (manifest failures)
    """

    target_name: str
    destination: Path
    installed_files: tuple[Path, ...]
    manifest: Optional[Path]
    warnings: tuple[str, ...] = ()


class InstallDriver:
    """Writes entry points and manifests for built modules and stages their install.

    Args:
        context: Build-wide context (install prefix, manifest policy)
        manifest_generator: Manifest producer (default: StubGenerator)
    """

    def __init__(self, context: BuildContext, manifest_generator: Optional[ManifestGenerator] = None) -> None:
        self.context = context
        self.manifest_generator = manifest_generator if manifest_generator is not None else StubGenerator()

    def destination_for(self, target: BuildTarget) -> Path:
        return self.context.install_prefix / target.install_destination

    def write_entry_point(self, target: BuildTarget) -> Path:
        """Write <output_dir>/__init__.py re-exporting the module.

        Raises:
            ArtifactWriteError: If the file cannot be written
        """
        path = target.output_dir / ENTRY_POINT_FILE
        content = entry_point_text(target.name)
        try:
            target.output_dir.mkdir(parents=True, exist_ok=True)
            if not path.is_file() or path.read_text(encoding="utf-8") != content:
                path.write_text(content, encoding="utf-8")
        except OSError as e:
            raise ArtifactWriteError(group_label(*target.group), f"failed to write entry point: {e}", path) from e
        return path

    def generate_manifest(self, target: BuildTarget, artifact: BuildArtifact) -> tuple[Optional[Path], Optional[str]]:
        """Generate the interface manifest of a built module.

        Returns:
            (manifest path, None) on success, (None, warning message) on a
            tolerated failure

        Raises:
            ManifestError: If generation failed and manifests are mandatory
        """
        try:
            return self.manifest_generator.generate(target, artifact), None
        except ManifestError as e:
            if self.context.require_manifest:
                raise
            message = f"{e} (installing without interface manifest)"
            logger.warning(message)
            warnings.warn(message, ManifestWarning, stacklevel=2)
            return None, message

    def stage(self, target: BuildTarget, files: list[Path], obsolete: tuple[str, ...] = ()) -> tuple[Path, ...]:
        """Copy files into the target's install destination, all or nothing.

        Files named in obsolete are removed from the destination once the new
        files are in place.

        Raises:
            ArtifactWriteError: If any file cannot be staged
        """
        label = group_label(*target.group)
        destination = self.destination_for(target)
        try:
            destination.mkdir(parents=True, exist_ok=True)
            staging = Path(tempfile.mkdtemp(prefix=f".{target.name}-staging-", dir=destination))
        except OSError as e:
            raise ArtifactWriteError(label, f"cannot prepare install destination: {e}", destination) from e

        try:
            staged = []
            for source in files:
                copy = staging / source.name
                shutil.copy2(source, copy)
                staged.append(copy)

            installed = []
            for copy in staged:
                final = destination / copy.name
                os.replace(copy, final)
                installed.append(final)
            for name in obsolete:
                stale = destination / name
                if stale.is_file():
                    stale.unlink()
                    logger.debug("Removed obsolete %s", stale)
        except OSError as e:
            raise ArtifactWriteError(label, f"failed to stage install: {e}", destination) from e
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        logger.debug("Installed %s to %s", [p.name for p in installed], destination)
        return tuple(installed)

    def _discard_manifest(self, target: BuildTarget) -> None:
        path = manifest_path_for(target)
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise ArtifactWriteError(group_label(*target.group), f"failed to remove stale manifest: {e}", path) from e
        logger.debug("Removed stale manifest %s", path)

    def install(self, target: BuildTarget, artifact: BuildArtifact) -> InstallResult:
        """Write the entry point, generate the manifest and stage all three files.

        Raises:
            ArtifactMissingError: If the built module does not exist
            ArtifactWriteError: If a file cannot be written or staged
            ManifestError: If manifest generation failed and manifests are mandatory
        """
        if not artifact.path.is_file():
            raise ArtifactMissingError(group_label(*target.group), "built module not found", artifact.path)

        entry_point = self.write_entry_point(target)
        manifest, warning = self.generate_manifest(target, artifact)

        files = [artifact.path, entry_point]
        obsolete: tuple[str, ...] = ()
        if manifest is not None:
            files.append(manifest)
        else:
            # A manifest left over from an earlier build describes a different module
            self._discard_manifest(target)
            obsolete = (manifest_path_for(target).name,)
        installed = self.stage(target, files, obsolete)

        return InstallResult(
            target_name=target.name,
            destination=self.destination_for(target),
            installed_files=installed,
            manifest=manifest,
            warnings=(warning,) if warning else (),
        )
