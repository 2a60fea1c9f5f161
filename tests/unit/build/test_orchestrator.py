"""End-to-end tests for the module group orchestrator.

The external collaborators are faked: FakeExecutor writes a placeholder
module instead of compiling and FakeManifestGenerator writes a one-line stub.
Everything else (discovery, glue, assembly, scheduling, install staging) runs
for real against a project in tmp_path.
"""

import logging
import os

import pytest

from pyiglbuild.build.error_collector import ErrorSeverity
from pyiglbuild.build.errors import DuplicateBindingError, OrchestrationAborted
from pyiglbuild.build.executor import stamp_path_for
from pyiglbuild.build.glue import DECLARATIONS_FILE
from pyiglbuild.build.orchestrator import Orchestrator, OrchestratorState
from pyiglbuild.config import ErrorPolicy
from pyiglbuild.pipeline.models import PHASE_ORDER, GroupPhase


def _orchestrator(config, fake_executor, fake_manifests, callback=None) -> Orchestrator:
    return Orchestrator(config, executor=fake_executor, manifest_generator=fake_manifests, callback=callback)


def _add_duplicate(project_dir) -> None:
    (project_dir / "src" / "copyleft" / "marching_cubes.v2.cpp").write_text("void bind_marching_cubes(nb::module_ &m) {}\n")


class TestCatalog:
    """Group cataloging before anything runs."""

    def test_all_groups_enabled(self, make_config, fake_executor, fake_manifests):
        options = {"LIBIGL_COPYLEFT_CGAL": True, "LIBIGL_EMBREE": True, "LIBIGL_COPYLEFT_TETGEN": True, "LIBIGL_RESTRICTED_TRIANGLE": True}
        orchestrator = _orchestrator(make_config(options), fake_executor, fake_manifests)
        tasks = orchestrator.catalog_groups()

        assert [t.name for t in tasks] == [
            "pyigl_core",
            "pyigl_copyleft_core",
            "pyigl_copyleft_cgal",
            "pyigl_embree",
            "pyigl_copyleft_tetgen",
            "pyigl_restricted_triangle",
        ]
        assert tasks[0].dependencies == []
        assert all(t.dependencies == ["pyigl_core"] for t in tasks[1:])
        assert orchestrator.state == OrchestratorState.GROUPS_CATALOGED

    def test_plan_touches_nothing(self, make_config, project_dir, fake_executor, fake_manifests):
        orchestrator = _orchestrator(make_config(), fake_executor, fake_manifests)
        descriptors = orchestrator.plan()

        assert [d.target_name for d in descriptors] == ["pyigl_core", "pyigl_copyleft_core"]
        assert not (project_dir / "build").exists()
        assert not (project_dir / "igl").exists()
        assert fake_executor.built == []


class TestEndToEnd:
    """The two reference scenarios plus ordering guarantees."""

    def test_copyleft_enabled(self, make_config, project_dir, fake_executor, fake_manifests):
        """Core and copyleft core are both built; the umbrella lists copyleft core."""
        result = _orchestrator(make_config(), fake_executor, fake_manifests).run()

        assert result.success
        assert result.state == OrchestratorState.DONE
        assert [t.name for t in result.targets] == ["pyigl_core", "pyigl_copyleft_core"]

        core = result.get_task("pyigl_core")
        copyleft = result.get_task("pyigl_copyleft_core")
        assert core.descriptor.subpath == ""
        assert copyleft.descriptor.subpath == "copyleft"
        assert copyleft.dependencies == ["pyigl_core"]
        assert "igl::core" in copyleft.target.link_libraries

        assert result.umbrella.root == "pyigl_core"
        assert result.umbrella.dependencies == ("pyigl_copyleft_core",)

        install_root = project_dir / "install" / "igl"
        assert (install_root / "__init__.py").read_text() == "from .pyigl_core import *\n"
        assert (install_root / "copyleft" / "__init__.py").read_text() == "from .pyigl_copyleft_core import *\n"
        assert (install_root / "copyleft" / "pyigl_copyleft_core.pyi").is_file()

    def test_copyleft_disabled(self, make_config, project_dir, fake_executor, fake_manifests):
        """Only core is built; no copyleft directories appear anywhere."""
        config = make_config({"LIBIGL_COPYLEFT_CORE": False})
        result = _orchestrator(config, fake_executor, fake_manifests).run()

        assert result.success
        assert [t.name for t in result.targets] == ["pyigl_core"]
        assert result.umbrella.dependencies == ()
        assert fake_executor.built == ["pyigl_core"]
        assert not (project_dir / "igl" / "copyleft").exists()
        assert not (project_dir / "build" / "include" / "copyleft").exists()
        assert not (project_dir / "install" / "igl" / "copyleft").exists()
        assert result.errors.get_errors() == []

    def test_glue_counts_match_units(self, make_config, project_dir, fake_executor, fake_manifests):
        result = _orchestrator(make_config(), fake_executor, fake_manifests).run()

        core = result.get_task("pyigl_core")
        assert core.glue.declaration_count == core.glue.invocation_count == len(core.manifest) == 3
        declarations = (project_dir / "build" / "include" / DECLARATIONS_FILE).read_text()
        assert declarations.count("extern void bind_") == 3

    def test_core_built_before_other_groups_assembled(self, make_config, write_sources, project_dir, fake_executor, fake_manifests):
        """Core reaches BUILT before any other group reaches TARGET_ASSEMBLED."""
        write_sources(project_dir / "src", "embree", ["ambient_occlusion"])
        write_sources(project_dir / "src", "restricted/triangle", ["triangulate"])
        config = make_config({"LIBIGL_EMBREE": True, "LIBIGL_RESTRICTED_TRIANGLE": True}, jobs=4)
        result = _orchestrator(config, fake_executor, fake_manifests).run()

        assert result.success
        core_built = result.get_task("pyigl_core").phase_times[GroupPhase.BUILT]
        for task in result.tasks[1:]:
            assert core_built < task.phase_times[GroupPhase.TARGET_ASSEMBLED]
        assert fake_executor.built[0] == "pyigl_core"

    def test_phase_timestamps_are_monotonic(self, make_config, fake_executor, fake_manifests):
        result = _orchestrator(make_config(), fake_executor, fake_manifests).run()

        for task in result.tasks:
            times = [task.phase_times[phase] for phase in PHASE_ORDER[1:]]
            assert times == sorted(times)

    def test_rerun_keeps_glue_untouched(self, make_config, project_dir, fake_executor, fake_manifests):
        """A second build with unchanged sources does not rewrite the glue."""
        _orchestrator(make_config(), fake_executor, fake_manifests).run()
        glue = project_dir / "build" / "include" / "copyleft" / DECLARATIONS_FILE
        os.utime(glue, (1_000_000_000, 1_000_000_000))

        result = _orchestrator(make_config(), fake_executor, fake_manifests).run()
        assert result.success
        assert glue.stat().st_mtime == 1_000_000_000

    def test_orchestrator_runs_once(self, make_config, fake_executor, fake_manifests):
        orchestrator = _orchestrator(make_config(), fake_executor, fake_manifests)
        orchestrator.run()
        with pytest.raises(RuntimeError, match="already ran"):
            orchestrator.run()


class TestErrorPolicies:
    """Fail-fast and best-effort handling of group failures."""

    def test_fail_fast_aborts(self, make_config, project_dir, fake_executor, fake_manifests):
        """The first group error aborts the orchestration."""
        _add_duplicate(project_dir)
        orchestrator = _orchestrator(make_config(), fake_executor, fake_manifests)

        with pytest.raises(OrchestrationAborted) as exc_info:
            orchestrator.run()

        assert isinstance(exc_info.value.cause, DuplicateBindingError)
        assert orchestrator.state == OrchestratorState.FAILED
        assert exc_info.value.result.state == OrchestratorState.FAILED
        assert "pyigl_copyleft_core" not in fake_executor.built
        assert all(t.phase in (GroupPhase.INSTALLED, GroupPhase.FAILED) for t in exc_info.value.result.tasks)

    def test_best_effort_skips_failing_group(self, make_config, project_dir, fake_executor, fake_manifests):
        """A duplicate identifier fails only its own group."""
        _add_duplicate(project_dir)
        config = make_config(error_policy=ErrorPolicy.BEST_EFFORT)
        result = _orchestrator(config, fake_executor, fake_manifests).run()

        assert not result.success
        assert result.state == OrchestratorState.DONE
        assert [t.name for t in result.installed] == ["pyigl_core"]
        assert [t.name for t in result.failed] == ["pyigl_copyleft_core"]
        assert isinstance(result.get_task("pyigl_copyleft_core").error, DuplicateBindingError)
        assert not (project_dir / "build" / "include" / "copyleft").exists()

        errors = result.errors.get_errors_for_group("(copyleft, core)")
        assert len(errors) == 1
        assert errors[0].severity == ErrorSeverity.FATAL
        assert errors[0].phase == "discover"
        assert errors[0].subject == "marching_cubes"

    def test_best_effort_core_failure_blocks_others(self, make_config, fake_executor, fake_manifests):
        """When core fails to build, every other group is skipped."""
        fake_executor.fail_on.add("pyigl_core")
        config = make_config(error_policy=ErrorPolicy.BEST_EFFORT)
        result = _orchestrator(config, fake_executor, fake_manifests).run()

        assert result.installed == []
        copyleft = result.get_task("pyigl_copyleft_core")
        assert copyleft.phase == GroupPhase.FAILED
        assert "pyigl_core" in copyleft.error_message
        assert not copyleft.has_passed(GroupPhase.TARGET_ASSEMBLED)
        assert result.errors.get_error_count() == {"warnings": 0, "errors": 1, "fatal": 1, "total": 2}

    def test_best_effort_non_core_build_failure(self, make_config, write_sources, project_dir, fake_executor, fake_manifests):
        write_sources(project_dir / "src", "embree", ["ambient_occlusion"])
        fake_executor.fail_on.add("pyigl_embree")
        config = make_config({"LIBIGL_EMBREE": True}, error_policy=ErrorPolicy.BEST_EFFORT)
        result = _orchestrator(config, fake_executor, fake_manifests).run()

        assert sorted(t.name for t in result.installed) == ["pyigl_copyleft_core", "pyigl_core"]
        assert [t.name for t in result.failed] == ["pyigl_embree"]
        assert "(-, embree)" in result.summary()

    @pytest.mark.filterwarnings("ignore::pyiglbuild.build.errors.ManifestWarning")
    def test_manifest_failure_is_a_warning(self, make_config, project_dir, fake_executor, fake_manifests):
        """Modules are installed without manifests and the warning is reported."""
        fake_manifests.fail = True
        result = _orchestrator(make_config(), fake_executor, fake_manifests).run()

        assert result.success
        assert result.errors.has_warnings()
        assert not result.errors.has_fatal_errors()
        assert all(len(t.warnings) == 1 for t in result.tasks)
        assert not (project_dir / "install" / "igl" / "pyigl_core.pyi").exists()


class TestClean:
    """Removing generated files."""

    def test_clean_removes_generated_files(self, make_config, project_dir, fake_executor, fake_manifests):
        _orchestrator(make_config(), fake_executor, fake_manifests).run()
        hand_written = project_dir / "igl" / "README.md"
        hand_written.write_text("keep me")

        removed = Orchestrator(make_config()).clean()

        assert project_dir / "build" in removed
        assert not (project_dir / "build").exists()
        assert not (project_dir / "igl" / "copyleft").exists()
        assert not (project_dir / "igl" / "__init__.py").exists()
        assert hand_written.read_text() == "keep me"
        assert (project_dir / "src" / "module.cpp").is_file()

    def test_clean_logs_kept_directories(self, make_config, project_dir, fake_executor, fake_manifests, caplog):
        _orchestrator(make_config(), fake_executor, fake_manifests).run()
        (project_dir / "igl" / "copyleft" / "notes.txt").write_text("keep me")

        with caplog.at_level(logging.DEBUG, logger="pyiglbuild.build.orchestrator"):
            Orchestrator(make_config()).clean()

        kept = [r.getMessage() for r in caplog.records if r.getMessage().startswith("Kept")]
        assert any("(copyleft, core)" in message and "notes.txt" in message for message in kept)
        assert (project_dir / "igl" / "copyleft" / "notes.txt").is_file()

    def test_clean_removes_build_stamps(self, make_config, project_dir, fake_executor, fake_manifests):
        result = _orchestrator(make_config(), fake_executor, fake_manifests).run()
        stamp = stamp_path_for(result.get_task("pyigl_core").target)
        stamp.write_text("0" * 64 + "\n")

        removed = Orchestrator(make_config()).clean()
        assert stamp in removed
        assert not stamp.exists()

    def test_clean_keeps_edited_entry_point(self, make_config, project_dir, fake_executor, fake_manifests):
        _orchestrator(make_config(), fake_executor, fake_manifests).run()
        entry_point = project_dir / "igl" / "__init__.py"
        entry_point.write_text("from .pyigl_core import *\n__all__ = []\n")

        Orchestrator(make_config()).clean()
        assert entry_point.is_file()

    def test_clean_on_fresh_project(self, make_config):
        assert Orchestrator(make_config()).clean() == []
