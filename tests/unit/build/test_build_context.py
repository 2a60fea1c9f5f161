"""Unit tests for BuildContext creation."""

import sys
from unittest.mock import patch

from pyiglbuild.build.build_context import BuildContext, extension_suffix
from pyiglbuild.build.build_profiles import BuildType


class TestExtensionSuffix:
    def test_stable_abi_posix(self):
        with patch("pyiglbuild.build.build_context.sys.platform", "linux"):
            assert extension_suffix(True) == ".abi3.so"

    def test_stable_abi_windows(self):
        with patch("pyiglbuild.build.build_context.sys.platform", "win32"):
            assert extension_suffix(True) == ".pyd"

    def test_regular_build_uses_interpreter_suffix(self):
        with patch("pyiglbuild.build.build_context.sysconfig.get_config_var", return_value=".cpython-312-x86_64-linux-gnu.so"):
            assert extension_suffix(False) == ".cpython-312-x86_64-linux-gnu.so"


class TestFromConfig:
    def test_roots_follow_config(self, make_config, project_dir):
        context = BuildContext.from_config(make_config())

        assert context.source_root == project_dir / "src"
        assert context.include_root == project_dir / "include"
        assert context.generated_root == project_dir / "build" / "include"
        assert context.output_root == project_dir / "igl"
        assert context.install_prefix == project_dir / "install"

    def test_profile_flags(self, make_config):
        context = BuildContext.from_config(make_config(build_type=BuildType.DEBUG))
        assert context.compile_flags[-2:] == ("-O0", "-g")
        assert "-std=c++17" in context.compile_flags

    def test_stable_abi_needs_python_312(self, make_config):
        context = BuildContext.from_config(make_config(stable_abi=True))
        assert context.stable_abi is (sys.version_info >= (3, 12))

    def test_stable_abi_disabled(self, make_config):
        context = BuildContext.from_config(make_config(stable_abi=False))
        assert context.stable_abi is False
        assert context.module_suffix == extension_suffix(False)

    def test_linker_args(self, make_config):
        context = BuildContext.from_config(make_config(link_args={"igl::embree": ("-lembree4",)}))
        assert context.linker_args_for("igl::embree") == ("-lembree4",)
        assert context.linker_args_for("igl::core") == ()
