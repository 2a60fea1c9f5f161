"""Build Profile Configuration.

This module maps CMake-style build types to the compile and link flags the
build executor hands to the compiler.

Design:
    Each profile declares all optimization/debug flags it controls. The
    flags every native module needs regardless of profile (language standard,
    position independent code, symbol visibility, platform link mode) live in
    BASE_COMPILE_FLAGS / platform_link_flags(), so profiles stay declarative.
"""

import sys
from dataclasses import dataclass
from enum import Enum


class BuildType(Enum):
    """Build type enum, spelled the way CMAKE_BUILD_TYPE spells it."""

    RELEASE = "Release"
    DEBUG = "Debug"
    MIN_SIZE_REL = "MinSizeRel"
    REL_WITH_DEB_INFO = "RelWithDebInfo"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: str) -> "BuildType":
        """Parse a build type name case-insensitively.

        Raises:
            ValueError: If the name is not a known build type
        """
        for build_type in cls:
            if build_type.value.lower() == value.strip().lower():
                return build_type
        choices = ", ".join(b.value for b in cls)
        raise ValueError(f"Unknown build type '{value}' (expected one of: {choices})")


@dataclass(frozen=True)
class ProfileFlags:
    """Flags contributed by one build type.

    Attributes:
        name: Build type name (matches BuildType value)
        description: Human-readable profile description
        compile_flags: Optimization/debug flags for compilation
        link_flags: Flags for the link step
    """

    name: str
    description: str
    compile_flags: tuple[str, ...]
    link_flags: tuple[str, ...]


# C++17 for return value optimization, below C++20 for embree
BASE_COMPILE_FLAGS: tuple[str, ...] = (
    "-std=c++17",
    "-fPIC",
    "-fvisibility=hidden",
)

# std::filesystem::path needs 10.15 on macOS
MACOS_DEPLOYMENT_TARGET = "10.15"


PROFILES: dict[BuildType, ProfileFlags] = {
    BuildType.RELEASE: ProfileFlags(
        name="Release",
        description="Optimized build without assertions (default)",
        compile_flags=("-O3", "-DNDEBUG"),
        link_flags=("-s",) if sys.platform.startswith("linux") else (),
    ),
    BuildType.DEBUG: ProfileFlags(
        name="Debug",
        description="Unoptimized build with debug symbols",
        compile_flags=("-O0", "-g"),
        link_flags=(),
    ),
    BuildType.MIN_SIZE_REL: ProfileFlags(
        name="MinSizeRel",
        description="Size-optimized build without assertions",
        compile_flags=("-Os", "-DNDEBUG"),
        link_flags=("-s",) if sys.platform.startswith("linux") else (),
    ),
    BuildType.REL_WITH_DEB_INFO: ProfileFlags(
        name="RelWithDebInfo",
        description="Optimized build with debug symbols",
        compile_flags=("-O2", "-g", "-DNDEBUG"),
        link_flags=(),
    ),
}


def get_profile(build_type: BuildType) -> ProfileFlags:
    """Get the flags for a build type."""
    return PROFILES[build_type]


def platform_compile_flags() -> tuple[str, ...]:
    """Compile flags every module needs on the current platform."""
    if sys.platform == "darwin":
        return BASE_COMPILE_FLAGS + (f"-mmacosx-version-min={MACOS_DEPLOYMENT_TARGET}",)
    return BASE_COMPILE_FLAGS


def platform_link_flags() -> tuple[str, ...]:
    """Link flags that turn the objects into a loadable extension module."""
    if sys.platform == "darwin":
        return ("-bundle", "-undefined", "dynamic_lookup")
    return ("-shared",)
