"""Unit tests for module group naming and resolution."""

from pathlib import Path

import pytest

from pyiglbuild.build.groups import (
    CATALOG,
    default_options,
    group_label,
    group_link_libraries,
    group_option_name,
    group_subpath,
    group_target_name,
    is_group_enabled,
    resolve_group,
)


def _resolve(prefix: str, name: str, options: dict[str, bool], root: Path):
    return resolve_group(prefix, name, options, root / "src", root / "build" / "include", root / "igl")


class TestNamingRules:
    """Deterministic names derived from (prefix, name)."""

    @pytest.mark.parametrize(
        "prefix, name, expected",
        [
            ("", "core", "pyigl_core"),
            ("copyleft", "core", "pyigl_copyleft_core"),
            ("copyleft", "cgal", "pyigl_copyleft_cgal"),
            ("", "embree", "pyigl_embree"),
            ("restricted", "triangle", "pyigl_restricted_triangle"),
        ],
    )
    def test_target_name(self, prefix, name, expected):
        """Target slug is pyigl{_prefix}_{name}."""
        assert group_target_name(prefix, name) == expected

    @pytest.mark.parametrize(
        "prefix, name, expected",
        [
            ("", "core", ""),
            ("copyleft", "core", "copyleft"),
            ("copyleft", "cgal", "copyleft/cgal"),
            ("", "embree", "embree"),
            ("copyleft", "tetgen", "copyleft/tetgen"),
            ("restricted", "triangle", "restricted/triangle"),
        ],
    )
    def test_subpath(self, prefix, name, expected):
        """Core maps to its prefix, other groups to prefix/name."""
        assert group_subpath(prefix, name) == expected

    def test_option_names(self):
        """Option flags are LIBIGL{_PREFIX}_{NAME}; the root group has none."""
        assert group_option_name("", "core") is None
        assert group_option_name("copyleft", "core") == "LIBIGL_COPYLEFT_CORE"
        assert group_option_name("", "embree") == "LIBIGL_EMBREE"
        assert group_option_name("restricted", "triangle") == "LIBIGL_RESTRICTED_TRIANGLE"

    def test_link_libraries(self):
        """Every group links igl::core; non-root groups add their own library."""
        assert group_link_libraries("", "core") == ("igl::core",)
        assert group_link_libraries("copyleft", "core") == ("igl::core", "igl_copyleft::core")
        assert group_link_libraries("", "embree") == ("igl::core", "igl::embree")
        assert group_link_libraries("copyleft", "cgal") == ("igl::core", "igl_copyleft::cgal")

    def test_labels(self):
        assert group_label("", "core") == "(-, core)"
        assert group_label("copyleft", "cgal") == "(copyleft, cgal)"

    def test_unknown_prefix_raises(self):
        """Unknown prefixes are rejected."""
        with pytest.raises(ValueError, match="Unknown module group prefix"):
            group_target_name("proprietary", "core")
        with pytest.raises(ValueError, match="Unknown module group prefix"):
            group_subpath("proprietary", "core")


class TestCatalog:
    """The fixed catalog and its default options."""

    def test_core_comes_first(self):
        assert CATALOG[0] == ("", "core")

    def test_catalog_keys_unique(self):
        assert len(set(CATALOG)) == len(CATALOG)

    def test_default_options_all_enabled(self):
        """Every optional group defaults to ON."""
        options = default_options()
        assert len(options) == len(CATALOG) - 1
        assert all(options.values())


class TestResolveGroup:
    """Resolution of (prefix, name) into descriptors."""

    def test_root_group_always_enabled(self, tmp_path):
        """Core without prefix resolves even with no options at all."""
        descriptor = _resolve("", "core", {}, tmp_path)
        assert descriptor is not None
        assert descriptor.is_root
        assert descriptor.subpath == ""
        assert descriptor.option_name is None
        assert descriptor.source_dir == tmp_path / "src"
        assert descriptor.output_dir == tmp_path / "igl"
        assert descriptor.install_destination == "igl"

    def test_disabled_group_resolves_to_none(self, tmp_path):
        """A disabled group leaves nothing behind."""
        assert _resolve("copyleft", "core", {"LIBIGL_COPYLEFT_CORE": False}, tmp_path) is None
        assert not (tmp_path / "igl").exists()

    def test_missing_flag_counts_as_disabled(self, tmp_path):
        assert not is_group_enabled("", "embree", {})
        assert _resolve("", "embree", {}, tmp_path) is None

    def test_enabled_group_paths(self, tmp_path):
        """Source, generated and output directories all follow the subpath."""
        descriptor = _resolve("copyleft", "cgal", {"LIBIGL_COPYLEFT_CGAL": True}, tmp_path)
        assert descriptor is not None
        assert descriptor.target_name == "pyigl_copyleft_cgal"
        assert descriptor.source_dir == tmp_path / "src" / "copyleft" / "cgal"
        assert descriptor.generated_dir == tmp_path / "build" / "include" / "copyleft" / "cgal"
        assert descriptor.output_dir == tmp_path / "igl" / "copyleft" / "cgal"
        assert descriptor.install_destination == "igl/copyleft/cgal"
        assert descriptor.entry_file == tmp_path / "src" / "copyleft" / "cgal" / "module.cpp"
        assert descriptor.key == ("copyleft", "cgal")
        assert descriptor.label == "(copyleft, cgal)"

    def test_resolution_does_not_touch_filesystem(self, tmp_path):
        _resolve("", "embree", {"LIBIGL_EMBREE": True}, tmp_path)
        assert list(tmp_path.iterdir()) == []
