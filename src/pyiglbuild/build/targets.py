"""Build target assembly.

A BuildTarget is the complete, immutable description of one extension
module handed to the build executor: sources, include directories, upstream
link libraries and output/install locations.

The UmbrellaTarget is the aggregate "build everything enabled" node. It holds
the root (core) target plus a dependency edge to every other assembled
target. Group pipelines append to it from worker threads, so the edge list
is guarded by a lock and only ever grows.
"""

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .build_context import BuildContext
from .discovery import UnitManifest, check_unique_identifiers
from .errors import ConfigurationError
from .glue import DECLARATIONS_FILE, INVOCATIONS_FILE
from .groups import GroupDescriptor

UMBRELLA_TARGET_NAME = "pyigl"


@dataclass(frozen=True)
class BuildTarget:
    """Description of one extension module build.

    Attributes:
        name: Target name, also the module's import name
        group: (prefix, name) of the owning group
        sources: Entry file followed by the binding units
        include_dirs: The group's glue directory, the generated glue root (when
            different), then the project include root
        link_libraries: Upstream link targets
        output_dir: Directory receiving the built module
        install_destination: Install destination relative to the install prefix
        module_suffix: File suffix of the built module
        glue_files: Generated glue fragments included by the entry file
    """

    name: str
    group: tuple[str, str]
    sources: tuple[Path, ...]
    include_dirs: tuple[Path, ...]
    link_libraries: tuple[str, ...]
    output_dir: Path
    install_destination: str
    module_suffix: str
    glue_files: tuple[Path, ...] = ()

    @property
    def artifact_path(self) -> Path:
        """Where the build executor must leave the compiled module."""
        return self.output_dir / f"{self.name}{self.module_suffix}"


class UmbrellaTarget:
    """Aggregate target depending on every enabled non-core module.

    Thread-safe: group pipelines call add_dependency() concurrently.
    """

    def __init__(self, name: str = UMBRELLA_TARGET_NAME) -> None:
        self.name = name
        self._root: Optional[str] = None
        self._dependencies: list[str] = []
        self._lock = threading.Lock()

    def set_root(self, target_name: str) -> None:
        """Record the core target every dependency links against."""
        with self._lock:
            self._root = target_name

    def add_dependency(self, target_name: str) -> None:
        """Append a dependency edge (ignored if already present)."""
        with self._lock:
            if target_name not in self._dependencies:
                self._dependencies.append(target_name)

    @property
    def root(self) -> Optional[str]:
        with self._lock:
            return self._root

    @property
    def dependencies(self) -> tuple[str, ...]:
        """Dependency edges in the order they were added."""
        with self._lock:
            return tuple(self._dependencies)

    def __len__(self) -> int:
        with self._lock:
            return len(self._dependencies)

    def __repr__(self) -> str:
        return f"UmbrellaTarget(name={self.name!r}, root={self.root!r}, dependencies={list(self.dependencies)!r})"


def assemble_target(
    descriptor: GroupDescriptor,
    manifest: UnitManifest,
    context: BuildContext,
    umbrella: UmbrellaTarget,
) -> BuildTarget:
    """Assemble the build target of an enabled group and register it with the umbrella.

    Args:
        descriptor: The group
        manifest: The group's discovered units
        context: Build-wide context
        umbrella: Aggregate target to register non-core targets with

    Returns:
        The assembled BuildTarget

    Raises:
        ConfigurationError: If the manifest has no entry file
        DuplicateBindingError: If two units share an identifier
    """
    if manifest.entry_file is None:
        raise ConfigurationError(descriptor.label, "entry file not found", descriptor.entry_file)
    check_unique_identifiers(descriptor.label, manifest.units)

    # The entry file includes its glue by bare name, so the group's own glue directory comes first
    include_dirs = tuple(dict.fromkeys((descriptor.generated_dir, context.generated_root, context.include_root)))

    target = BuildTarget(
        name=descriptor.target_name,
        group=descriptor.key,
        sources=tuple(manifest.sources),
        include_dirs=include_dirs,
        link_libraries=descriptor.link_libraries,
        output_dir=descriptor.output_dir,
        install_destination=descriptor.install_destination,
        module_suffix=context.module_suffix,
        glue_files=(descriptor.generated_dir / DECLARATIONS_FILE, descriptor.generated_dir / INVOCATIONS_FILE),
    )

    if descriptor.is_root:
        umbrella.set_root(target.name)
    else:
        umbrella.add_dependency(target.name)
    return target
