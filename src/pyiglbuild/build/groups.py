"""Module group catalog and resolution.

A module group is one libigl component that gets its own extension module:
the always-present core plus the optional copyleft / restricted / plain
extras. Resolution turns a (prefix, name) pair and the caller's option flags
into a GroupDescriptor, the single record that travels through the group's
pipeline, or into None when the group is disabled.

Naming rules (the same ones the libigl CMake options use):
    option flag     LIBIGL{_PREFIX}_{NAME}     LIBIGL_COPYLEFT_CGAL
    target name     pyigl{_prefix}_{name}      pyigl_copyleft_cgal
    upstream lib    igl{_prefix}::{name}       igl_copyleft::cgal
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

CORE_NAME = "core"
CORE_LIBRARY = "igl::core"
INSTALL_ROOT = "igl"
ENTRY_FILE_NAME = "module.cpp"

VALID_PREFIXES = ("", "copyleft", "restricted")

# Build order of the catalog; core first since every other group links against it
CATALOG: tuple[tuple[str, str], ...] = (
    ("", "core"),
    ("copyleft", "core"),
    ("copyleft", "cgal"),
    ("", "embree"),
    ("copyleft", "tetgen"),
    ("restricted", "triangle"),
)

OPTION_DESCRIPTIONS: dict[tuple[str, str], str] = {
    ("copyleft", "core"): "Build target igl_copyleft::core",
    ("copyleft", "cgal"): "Build target igl_copyleft::cgal",
    ("", "embree"): "Build target igl::embree",
    ("copyleft", "tetgen"): "Build target igl_copyleft::tetgen",
    ("restricted", "triangle"): "Build target igl_restricted::triangle",
}


def _check_prefix(prefix: str) -> None:
    if prefix not in VALID_PREFIXES:
        raise ValueError(f"Unknown module group prefix '{prefix}' (expected one of: {VALID_PREFIXES})")


def is_root_group(prefix: str, name: str) -> bool:
    """True for the ("", "core") group every other group depends on."""
    return prefix == "" and name == CORE_NAME


def group_label(prefix: str, name: str) -> str:
    """Human-readable group label used in errors and summaries."""
    return f"({prefix}, {name})" if prefix else f"(-, {name})"


def group_option_name(prefix: str, name: str) -> Optional[str]:
    """Option flag controlling the group, or None for the always-on root group."""
    _check_prefix(prefix)
    if is_root_group(prefix, name):
        return None
    prefix_part = f"_{prefix.upper()}" if prefix else ""
    return f"LIBIGL{prefix_part}_{name.upper()}"


def group_subpath(prefix: str, name: str) -> str:
    """Output subpath of a group relative to the output / install root.

    core without prefix -> "", core with prefix -> the prefix,
    anything else -> "{prefix}/{name}" or just "{name}" without prefix.
    """
    _check_prefix(prefix)
    if name == CORE_NAME:
        return prefix
    if prefix:
        return f"{prefix}/{name}"
    return name


def group_target_name(prefix: str, name: str) -> str:
    """Deterministic target slug, e.g. pyigl_copyleft_core."""
    _check_prefix(prefix)
    prefix_part = f"_{prefix}" if prefix else ""
    return f"pyigl{prefix_part}_{name}"


def group_link_libraries(prefix: str, name: str) -> tuple[str, ...]:
    """Upstream link targets: igl::core always, plus the group's own library."""
    _check_prefix(prefix)
    if name == CORE_NAME and not prefix:
        return (CORE_LIBRARY,)
    prefix_part = f"_{prefix}" if prefix else ""
    return (CORE_LIBRARY, f"igl{prefix_part}::{name}")


def default_options() -> dict[str, bool]:
    """Every optional group's flag, defaulting to enabled."""
    options = {}
    for prefix, name in CATALOG:
        option = group_option_name(prefix, name)
        if option is not None:
            options[option] = True
    return options


@dataclass(frozen=True)
class GroupDescriptor:
    """Resolved state of one enabled module group.

    Attributes:
        prefix: "", "copyleft" or "restricted"
        name: Group name (e.g. "core", "cgal")
        subpath: Output subpath ("" for the root group)
        target_name: Build target name (e.g. "pyigl_copyleft_core")
        option_name: Controlling option flag, None for the root group
        link_libraries: Upstream link targets
        source_dir: Directory holding the group's binding units and entry file
        generated_dir: Directory receiving the generated glue
        output_dir: Directory receiving the module, entry point and manifest
        install_destination: Install destination relative to the install prefix
    """

    prefix: str
    name: str
    subpath: str
    target_name: str
    option_name: Optional[str]
    link_libraries: tuple[str, ...]
    source_dir: Path
    generated_dir: Path
    output_dir: Path
    install_destination: str

    @property
    def key(self) -> tuple[str, str]:
        return (self.prefix, self.name)

    @property
    def label(self) -> str:
        return group_label(self.prefix, self.name)

    @property
    def is_root(self) -> bool:
        return is_root_group(self.prefix, self.name)

    @property
    def entry_file(self) -> Path:
        return self.source_dir / ENTRY_FILE_NAME


def _under(root: Path, subpath: str) -> Path:
    return root / subpath if subpath else root


def is_group_enabled(prefix: str, name: str, options: Mapping[str, bool]) -> bool:
    """Resolve enablement: the root group always, others only when their flag is set."""
    option = group_option_name(prefix, name)
    if option is None:
        return True
    return bool(options.get(option, False))


def resolve_group(
    prefix: str,
    name: str,
    options: Mapping[str, bool],
    source_root: Path,
    generated_root: Path,
    output_root: Path,
) -> Optional[GroupDescriptor]:
    """Resolve one (prefix, name) pair into a descriptor.

    Args:
        prefix: Group prefix
        name: Group name
        options: Option flags by name (missing flags count as disabled)
        source_root: Project source root (e.g. <project>/src)
        generated_root: Generated include root (e.g. <build>/include)
        output_root: Module output root (e.g. <project>/igl)

    Returns:
        The descriptor, or None if the group is disabled

    Raises:
        ValueError: If the prefix is unknown
    """
    if not is_group_enabled(prefix, name, options):
        return None

    subpath = group_subpath(prefix, name)
    return GroupDescriptor(
        prefix=prefix,
        name=name,
        subpath=subpath,
        target_name=group_target_name(prefix, name),
        option_name=group_option_name(prefix, name),
        link_libraries=group_link_libraries(prefix, name),
        source_dir=_under(source_root, subpath),
        generated_dir=_under(generated_root, subpath),
        output_dir=_under(output_root, subpath),
        install_destination=f"{INSTALL_ROOT}/{subpath}" if subpath else INSTALL_ROOT,
    )
