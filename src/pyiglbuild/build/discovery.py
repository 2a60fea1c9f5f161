"""Binding unit discovery.

Scans a module group's source directory (non-recursively) and returns a
typed, ordered UnitManifest: the group's entry file plus one BindingUnit per
remaining source file. Discovery only reads the filesystem.

A unit's identifier is its file name up to the first dot, so
``src/copyleft/marching_tets.cpp`` becomes ``marching_tets`` and is expected to
define ``bind_marching_tets(nb::module_ &m)``.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from .errors import ConfigurationError, DuplicateBindingError
from .groups import GroupDescriptor

logger = logging.getLogger(__name__)

BINDING_SUFFIXES: tuple[str, ...] = (".cpp",)


@dataclass(frozen=True)
class BindingUnit:
    """One source file contributing a single registration function.

    Attributes:
        identifier: Name used to derive the registration function
        path: Absolute source path
    """

    identifier: str
    path: Path

    @property
    def function_name(self) -> str:
        """Registration function defined by the unit."""
        return f"bind_{self.identifier}"


@dataclass(frozen=True)
class UnitManifest:
    """Result of discovering one group's sources.

    Attributes:
        entry_file: The group's entry file (None when nothing was found)
        units: Binding units ordered by file name
    """

    entry_file: Path | None
    units: tuple[BindingUnit, ...] = field(default_factory=tuple)

    @property
    def identifiers(self) -> list[str]:
        return [unit.identifier for unit in self.units]

    @property
    def sources(self) -> list[Path]:
        """Entry file followed by every unit source."""
        head = [self.entry_file] if self.entry_file is not None else []
        return head + [unit.path for unit in self.units]

    def __len__(self) -> int:
        return len(self.units)


def unit_identifier(path: Path) -> str:
    """Identifier of a binding unit: file name up to the first dot."""
    return path.name.split(".", 1)[0]


def check_unique_identifiers(group: str, units: Iterable[BindingUnit]) -> None:
    """Ensure no two units resolve to the same identifier.

    Raises:
        DuplicateBindingError: Naming the identifier and both files
    """
    seen: dict[str, Path] = {}
    for unit in units:
        previous = seen.get(unit.identifier)
        if previous is not None:
            raise DuplicateBindingError(
                group,
                f"binding identifier '{unit.identifier}' defined by both {previous.name} and {unit.path.name}",
                unit.identifier,
            )
        seen[unit.identifier] = unit.path


def scan_units(source_dir: Path, entry_file_name: str, suffixes: tuple[str, ...] = BINDING_SUFFIXES) -> UnitManifest:
    """Scan a directory without judging the result.

    A missing directory yields an empty manifest.

    Args:
        source_dir: Directory to scan
        entry_file_name: Base name of the entry file to exclude from units
        suffixes: File suffixes that mark binding units

    Returns:
        UnitManifest ordered by file name
    """
    if not source_dir.is_dir():
        return UnitManifest(entry_file=None)

    entry_file = None
    units = []
    for path in sorted(source_dir.iterdir(), key=lambda p: p.name):
        if not path.is_file() or path.suffix not in suffixes:
            continue
        if path.name == entry_file_name:
            entry_file = path.resolve()
            continue
        units.append(BindingUnit(identifier=unit_identifier(path), path=path.resolve()))

    return UnitManifest(entry_file=entry_file, units=tuple(units))


def discover_units(descriptor: GroupDescriptor, suffixes: tuple[str, ...] = BINDING_SUFFIXES) -> UnitManifest:
    """Discover the binding units of an enabled group.

    Args:
        descriptor: The enabled group
        suffixes: File suffixes that mark binding units

    Returns:
        UnitManifest with the entry file and at least one unit

    Raises:
        ConfigurationError: If the source directory, the entry file or every unit is missing
        DuplicateBindingError: If two units share an identifier
    """
    source_dir = descriptor.source_dir
    if not source_dir.is_dir():
        raise ConfigurationError(descriptor.label, "source directory does not exist", source_dir)

    manifest = scan_units(source_dir, descriptor.entry_file.name, suffixes)
    logger.debug("%s sources: %s", descriptor.label, [str(p) for p in manifest.sources])

    if manifest.entry_file is None:
        raise ConfigurationError(descriptor.label, "entry file not found", descriptor.entry_file)
    if not manifest.units:
        raise ConfigurationError(descriptor.label, "no binding units found", source_dir)

    check_unique_identifiers(descriptor.label, manifest.units)
    return manifest
