"""Build configuration loading.

Configuration comes from four layers, later ones winning:
    1. built-in defaults
    2. pyiglbuild.ini in the project directory
    3. environment variables named after module option flags (LIBIGL_EMBREE=OFF)
    4. command-line defines (-D LIBIGL_EMBREE=OFF) and flags

The INI file is read with configparser:

    [build]
    build_type = Release
    error_policy = fail-fast
    require_manifest = no

    [modules]
    LIBIGL_COPYLEFT_CGAL = OFF

    [link]
    igl_copyleft::cgal = -lgmp -lmpfr
"""

import configparser
import logging
import os
import shlex
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional, Sequence

from .build.build_profiles import BuildType
from .build.groups import default_options

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "pyiglbuild.ini"

_TRUE_VALUES = frozenset({"1", "on", "yes", "true", "y"})
_FALSE_VALUES = frozenset({"0", "off", "no", "false", "n"})


class ConfigError(ValueError):
    """Raised when the build configuration is invalid."""


class ErrorPolicy(Enum):
    """What a group failure does to the rest of the orchestration."""

    FAIL_FAST = "fail-fast"
    BEST_EFFORT = "best-effort"

    def __str__(self) -> str:
        return self.value


def parse_bool(value: str, key: str) -> bool:
    """Parse a CMake/configparser style boolean (ON/OFF, yes/no, 1/0...).

    Raises:
        ConfigError: If the value is not a recognized boolean
    """
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigError(f"Invalid boolean for {key}: '{value}'")


def parse_define(text: str) -> tuple[str, str]:
    """Split a ``NAME=VALUE`` define (``NAME`` alone means ON).

    Raises:
        ConfigError: If the name is empty
    """
    name, sep, value = text.partition("=")
    name = name.strip()
    if not name:
        raise ConfigError(f"Invalid define '{text}' (expected NAME=VALUE)")
    return name, value.strip() if sep else "ON"


@dataclass(frozen=True)
class BuildConfig:
    """Fully resolved build configuration.

    Attributes:
        project_dir: Project root directory
        build_type: Build type selecting the profile flags
        error_policy: Fail-fast or best-effort
        require_manifest: Whether manifest generation failures are fatal
        jobs: Number of parallel builds (>= 1)
        source_dir: Root of the binding unit sources
        include_dir: Project include root
        build_dir: Build directory (generated glue lives under build_dir/include)
        output_dir: Output root receiving the modules (igl/ by default)
        install_prefix: Prefix under which igl/{subpath} is installed
        compiler: C++ compiler executable
        stable_abi: Build against the stable Python ABI
        build_timeout: Seconds allowed per module build, None for no limit
        options: Module option flags by name
        link_args: Linker arguments per upstream link target
    """

    project_dir: Path
    build_type: BuildType = BuildType.RELEASE
    error_policy: ErrorPolicy = ErrorPolicy.FAIL_FAST
    require_manifest: bool = False
    jobs: int = 1
    source_dir: Path = Path("src")
    include_dir: Path = Path("include")
    build_dir: Path = Path("build")
    output_dir: Path = Path("igl")
    install_prefix: Path = Path("build/install")
    compiler: str = "c++"
    stable_abi: bool = True
    build_timeout: Optional[float] = None
    options: Mapping[str, bool] = field(default_factory=default_options)
    link_args: Mapping[str, tuple[str, ...]] = field(default_factory=dict)

    @property
    def generated_dir(self) -> Path:
        """Root of the generated glue include tree."""
        return self.build_dir / "include"

    def with_overrides(self, **changes: object) -> "BuildConfig":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)  # type: ignore[arg-type]


def _resolve(project_dir: Path, value: str) -> Path:
    path = Path(value).expanduser()
    return path if path.is_absolute() else project_dir / path


def _default_jobs() -> int:
    return max(1, os.cpu_count() or 1)


def _apply_option(options: dict[str, bool], name: str, value: str, origin: str) -> None:
    if name not in options:
        known = ", ".join(sorted(options))
        raise ConfigError(f"Unknown module option '{name}' from {origin} (known: {known})")
    options[name] = parse_bool(value, name)


def load_config(
    project_dir: Path,
    defines: Optional[Sequence[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
    config_file: Optional[Path] = None,
) -> BuildConfig:
    """Load the build configuration for a project.

    Args:
        project_dir: Project root directory
        defines: ``NAME=VALUE`` option overrides from the command line
        environ: Environment to read option overrides from (default os.environ)
        config_file: Explicit INI file (default <project_dir>/pyiglbuild.ini)

    Returns:
        The resolved BuildConfig

    Raises:
        ConfigError: On unknown options or invalid values
    """
    project_dir = Path(project_dir).resolve()
    environ = os.environ if environ is None else environ
    ini_path = config_file if config_file is not None else project_dir / CONFIG_FILE_NAME

    # "=" only, link target names contain "::"; optionxform=str keeps keys case-sensitive
    parser = configparser.ConfigParser(delimiters=("=",), inline_comment_prefixes=(";", "#"), interpolation=None)
    parser.optionxform = str  # type: ignore[assignment,method-assign]
    if ini_path.exists():
        logger.debug("Reading build configuration from %s", ini_path)
        try:
            parser.read(ini_path, encoding="utf-8")
        except configparser.Error as e:
            raise ConfigError(f"Failed to parse {ini_path}: {e}") from e
    elif config_file is not None:
        raise ConfigError(f"Configuration file not found: {config_file}")

    build = parser["build"] if parser.has_section("build") else {}

    try:
        build_type = BuildType.parse(build.get("build_type", BuildType.RELEASE.value))
    except ValueError as e:
        raise ConfigError(str(e)) from e

    policy_value = build.get("error_policy", ErrorPolicy.FAIL_FAST.value).strip().lower()
    try:
        error_policy = ErrorPolicy(policy_value)
    except ValueError:
        raise ConfigError(f"Invalid error_policy '{policy_value}' (expected fail-fast or best-effort)") from None

    try:
        jobs = int(build.get("jobs", "0"))
        timeout = float(build.get("build_timeout", "0"))
    except ValueError as e:
        raise ConfigError(f"Invalid number in [build]: {e}") from e
    if jobs < 0:
        raise ConfigError(f"jobs must be >= 0, got {jobs}")

    options = default_options()
    if parser.has_section("modules"):
        for name, value in parser["modules"].items():
            _apply_option(options, name, value, ini_path.name)
    for name in list(options):
        if name in environ:
            _apply_option(options, name, environ[name], "environment")
    for define in defines or ():
        name, value = parse_define(define)
        _apply_option(options, name, value, "command line")

    link_args: dict[str, tuple[str, ...]] = {}
    if parser.has_section("link"):
        for library, args in parser["link"].items():
            link_args[library] = tuple(shlex.split(args))

    return BuildConfig(
        project_dir=project_dir,
        build_type=build_type,
        error_policy=error_policy,
        require_manifest=parse_bool(build.get("require_manifest", "no"), "require_manifest"),
        jobs=jobs or _default_jobs(),
        source_dir=_resolve(project_dir, build.get("source_dir", "src")),
        include_dir=_resolve(project_dir, build.get("include_dir", "include")),
        build_dir=_resolve(project_dir, build.get("build_dir", "build")),
        output_dir=_resolve(project_dir, build.get("output_dir", "igl")),
        install_prefix=_resolve(project_dir, build.get("install_prefix", "build/install")),
        compiler=build.get("compiler", "c++"),
        stable_abi=parse_bool(build.get("stable_abi", "yes"), "stable_abi"),
        build_timeout=timeout or None,
        options=options,
        link_args=link_args,
    )
