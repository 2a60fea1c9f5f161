"""Unit tests for build types and their compiler flag profiles."""

from unittest.mock import patch

import pytest

from pyiglbuild.build.build_profiles import (
    BASE_COMPILE_FLAGS,
    PROFILES,
    BuildType,
    get_profile,
    platform_compile_flags,
    platform_link_flags,
)


class TestBuildType:
    @pytest.mark.parametrize("text", ["Release", "release", " RELEASE "])
    def test_parse_case_insensitive(self, text):
        assert BuildType.parse(text) == BuildType.RELEASE

    def test_parse_all(self):
        for build_type in BuildType:
            assert BuildType.parse(build_type.value) == build_type

    def test_parse_unknown(self):
        with pytest.raises(ValueError, match="expected one of: Release, Debug, MinSizeRel, RelWithDebInfo"):
            BuildType.parse("Fast")

    def test_str(self):
        assert str(BuildType.REL_WITH_DEB_INFO) == "RelWithDebInfo"


class TestProfiles:
    def test_every_build_type_has_profile(self):
        assert set(PROFILES) == set(BuildType)
        for build_type, profile in PROFILES.items():
            assert profile.name == build_type.value

    def test_release_is_optimized(self):
        assert "-O3" in get_profile(BuildType.RELEASE).compile_flags
        assert "-DNDEBUG" in get_profile(BuildType.RELEASE).compile_flags

    def test_debug_keeps_assertions(self):
        flags = get_profile(BuildType.DEBUG).compile_flags
        assert "-g" in flags
        assert "-DNDEBUG" not in flags

    def test_cxx_standard(self):
        assert "-std=c++17" in BASE_COMPILE_FLAGS


class TestPlatformFlags:
    def test_linux(self):
        with patch("pyiglbuild.build.build_profiles.sys.platform", "linux"):
            assert platform_compile_flags() == BASE_COMPILE_FLAGS
            assert platform_link_flags() == ("-shared",)

    def test_macos(self):
        with patch("pyiglbuild.build.build_profiles.sys.platform", "darwin"):
            assert platform_compile_flags()[-1].startswith("-mmacosx-version-min=")
            assert platform_link_flags() == ("-bundle", "-undefined", "dynamic_lookup")
