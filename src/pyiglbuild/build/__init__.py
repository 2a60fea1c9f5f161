"""
Build system components for pyiglbuild.

This package provides the per-group build stages:
- Module group catalog and resolution
- Binding unit discovery and glue generation
- Target assembly and the external build executor
- Install staging and interface manifest generation

The Orchestrator lives in pyiglbuild.build.orchestrator; it depends on the
configuration module and is imported from there directly.
"""

from .discovery import BindingUnit, UnitManifest, discover_units
from .errors import (
    ArtifactMissingError,
    ArtifactWriteError,
    BuildFailedError,
    ConfigurationError,
    DuplicateBindingError,
    GroupBuildError,
    ManifestError,
    ManifestWarning,
    OrchestrationAborted,
)
from .glue import GeneratedGlue, render_glue, write_glue
from .groups import CATALOG, GroupDescriptor, resolve_group
from .targets import BuildTarget, UmbrellaTarget, assemble_target

__all__ = [
    "ArtifactMissingError",
    "ArtifactWriteError",
    "BindingUnit",
    "BuildFailedError",
    "BuildTarget",
    "CATALOG",
    "ConfigurationError",
    "DuplicateBindingError",
    "GeneratedGlue",
    "GroupBuildError",
    "GroupDescriptor",
    "ManifestError",
    "ManifestWarning",
    "OrchestrationAborted",
    "UmbrellaTarget",
    "UnitManifest",
    "assemble_target",
    "discover_units",
    "render_glue",
    "resolve_group",
    "write_glue",
]
