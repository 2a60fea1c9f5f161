"""Build Context - Aggregated build configuration.

This module defines:
- BuildContext: everything the pipeline stages need to know about the build
  as a whole, created once by the orchestrator from the BuildConfig

Design:
    BuildConfig flows from CLI -> orchestrator. The orchestrator resolves it
    once into a BuildContext (absolute roots, profile flags, interpreter
    include directory, extension suffix). BuildContext is immutable and
    shared read-only by every group pipeline; per-group state lives in the
    GroupDescriptor, never here.
"""

import sys
import sysconfig
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from .build_profiles import BuildType, ProfileFlags, get_profile, platform_compile_flags, platform_link_flags

if TYPE_CHECKING:
    from pyiglbuild.config import BuildConfig

STABLE_ABI_MIN_PYTHON = (3, 12)


def extension_suffix(stable_abi: bool) -> str:
    """File suffix of a compiled extension module.

    Args:
        stable_abi: Whether the module targets the stable ABI

    Returns:
        ".abi3.so" / ".pyd" for stable ABI builds, else the interpreter's EXT_SUFFIX
    """
    if stable_abi:
        return ".pyd" if sys.platform == "win32" else ".abi3.so"
    return sysconfig.get_config_var("EXT_SUFFIX") or (".pyd" if sys.platform == "win32" else ".so")


@dataclass(frozen=True)
class BuildContext:
    """Build-wide context shared by all group pipelines.

    Attributes:
        project_dir: Project root directory
        build_type: Build type (for display)
        profile_flags: Resolved flags of the build type
        source_root: Root of the binding unit sources
        include_root: Project include root
        generated_root: Root of the generated glue include tree
        output_root: Root receiving the built modules
        install_prefix: Install prefix (installs land in install_prefix/igl/...)
        python_include: Interpreter header directory
        stable_abi: Whether modules target the stable ABI
        module_suffix: File suffix of the built modules
        compiler: C++ compiler executable
        link_args: Linker arguments per upstream link target
        build_timeout: Seconds allowed per module build, None for no limit
        require_manifest: Whether manifest failures are fatal
    """

    project_dir: Path
    build_type: BuildType
    profile_flags: ProfileFlags
    source_root: Path
    include_root: Path
    generated_root: Path
    output_root: Path
    install_prefix: Path
    python_include: Path
    stable_abi: bool
    module_suffix: str
    compiler: str
    link_args: dict[str, tuple[str, ...]]
    build_timeout: float | None
    require_manifest: bool

    @classmethod
    def from_config(cls, config: "BuildConfig") -> "BuildContext":
        """Create the context from a resolved BuildConfig.

        Binding modules only support the stable ABI from Python 3.12 on;
        older interpreters silently get a regular build.
        """
        stable_abi = config.stable_abi and sys.version_info >= STABLE_ABI_MIN_PYTHON
        return cls(
            project_dir=config.project_dir,
            build_type=config.build_type,
            profile_flags=get_profile(config.build_type),
            source_root=config.source_dir,
            include_root=config.include_dir,
            generated_root=config.generated_dir,
            output_root=config.output_dir,
            install_prefix=config.install_prefix,
            python_include=Path(sysconfig.get_paths()["include"]),
            stable_abi=stable_abi,
            module_suffix=extension_suffix(stable_abi),
            compiler=config.compiler,
            link_args=dict(config.link_args),
            build_timeout=config.build_timeout,
            require_manifest=config.require_manifest,
        )

    @property
    def compile_flags(self) -> tuple[str, ...]:
        """Platform flags followed by the profile's optimization flags."""
        return platform_compile_flags() + self.profile_flags.compile_flags

    @property
    def link_flags(self) -> tuple[str, ...]:
        """Extension-module link mode followed by the profile's link flags."""
        return platform_link_flags() + self.profile_flags.link_flags

    def linker_args_for(self, library: str) -> tuple[str, ...]:
        """Linker arguments for an upstream link target (none for header-only targets)."""
        return self.link_args.get(library, ())
