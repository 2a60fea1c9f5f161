"""Pytest configuration and fixtures for pyiglbuild tests.

Besides the shared project fixtures, this conftest addresses Python 3.13
compatibility issues with pytest's capture fixtures. Python 3.13 changed how
stdout/stderr are handled, causing "I/O operation on closed file" errors
during test teardown. This is a known issue: https://github.com/pytest-dev/pytest/issues/11439
"""

import sys
import threading
import warnings
from pathlib import Path
from typing import Callable

import pytest

from pyiglbuild.build.build_context import BuildContext
from pyiglbuild.build.errors import BuildFailedError, ManifestError
from pyiglbuild.build.executor import BuildArtifact
from pyiglbuild.build.groups import default_options, group_label
from pyiglbuild.build.install import manifest_path_for
from pyiglbuild.build.targets import BuildTarget
from pyiglbuild.config import BuildConfig, ErrorPolicy

# Suppress ResourceWarnings from file cleanup in Python 3.13
if sys.version_info >= (3, 13):
    warnings.filterwarnings("ignore", category=ResourceWarning)


@pytest.fixture(autouse=True)
def _restore_stdio():  # noqa: PT004
    """Ensure stdout/stderr are always restored after each test.

    This prevents "I/O operation on closed file" errors in Python 3.13
    when tests raise exceptions that close stdout/stderr.
    """
    yield

    # Restore if they were closed during the test
    if sys.stdout.closed:
        sys.stdout = sys.__stdout__
    if sys.stderr.closed:
        sys.stderr = sys.__stderr__


@pytest.hookimpl(hookwrapper=True, tryfirst=True)
def pytest_runtest_call(item):  # noqa: ARG001
    """Wrap test execution to handle stdout/stderr closure gracefully."""
    yield

    # After test execution, ensure streams aren't closed
    if hasattr(sys.stdout, "closed") and sys.stdout.closed:
        sys.stdout = sys.__stdout__
    if hasattr(sys.stderr, "closed") and sys.stderr.closed:
        sys.stderr = sys.__stderr__


@pytest.hookimpl(hookwrapper=True, trylast=True)
def pytest_runtest_teardown(item):  # noqa: ARG001
    """Ensure streams are restored during teardown phase."""
    yield

    # Final restoration after teardown
    if hasattr(sys.stdout, "closed") and sys.stdout.closed:
        sys.stdout = sys.__stdout__
    if hasattr(sys.stderr, "closed") and sys.stderr.closed:
        sys.stderr = sys.__stderr__


# ─── Project fixtures ─────────────────────────────────────────────────────────

ENTRY_FILE_TEXT = '#include "BINDING_DECLARATIONS.in"\nNB_MODULE(pyigl, m) {\n#include "BINDING_INVOCATIONS.in"\n}\n'


def write_group_sources(source_root: Path, subpath: str, units: list[str], entry: bool = True) -> Path:
    """Create a group's source directory with an entry file and binding units."""
    source_dir = source_root / subpath if subpath else source_root
    source_dir.mkdir(parents=True, exist_ok=True)
    if entry:
        (source_dir / "module.cpp").write_text(ENTRY_FILE_TEXT, encoding="utf-8")
    for unit in units:
        (source_dir / f"{unit}.cpp").write_text(f"void bind_{unit}(nb::module_ &m) {{}}\n", encoding="utf-8")
    return source_dir


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """A project with sources for core and copyleft core."""
    source_root = tmp_path / "src"
    write_group_sources(source_root, "", ["adjacency_list", "cotmatrix", "massmatrix"])
    write_group_sources(source_root, "copyleft", ["marching_cubes"])
    (tmp_path / "include").mkdir()
    return tmp_path


@pytest.fixture
def make_config(project_dir: Path) -> Callable[..., BuildConfig]:
    """Factory for a BuildConfig rooted in project_dir.

    Only LIBIGL_COPYLEFT_CORE is enabled unless options say otherwise.
    """

    def _make(options: dict[str, bool] | None = None, **overrides: object) -> BuildConfig:
        resolved = {name: False for name in default_options()}
        resolved["LIBIGL_COPYLEFT_CORE"] = True
        resolved.update(options or {})
        config = BuildConfig(
            project_dir=project_dir,
            error_policy=ErrorPolicy.FAIL_FAST,
            jobs=2,
            source_dir=project_dir / "src",
            include_dir=project_dir / "include",
            build_dir=project_dir / "build",
            output_dir=project_dir / "igl",
            install_prefix=project_dir / "install",
            options=resolved,
        )
        return config.with_overrides(**overrides) if overrides else config

    return _make


@pytest.fixture
def context(make_config: Callable[..., BuildConfig]) -> BuildContext:
    return BuildContext.from_config(make_config())


class FakeExecutor:
    """Build executor that writes a placeholder module instead of compiling."""

    def __init__(self) -> None:
        self.fail_on: set[str] = set()
        self.built: list[str] = []
        self._lock = threading.Lock()

    def build(self, target: BuildTarget, context: BuildContext) -> BuildArtifact:
        if target.name in self.fail_on:
            raise BuildFailedError(group_label(*target.group), "compilation failed (exit code 1)", target.name)
        target.output_dir.mkdir(parents=True, exist_ok=True)
        target.artifact_path.write_bytes(b"\x7fELF placeholder")
        with self._lock:
            self.built.append(target.name)
        return BuildArtifact(target.name, target.artifact_path, rebuilt=True, build_time=0.0)


class FakeManifestGenerator:
    """Manifest generator that writes a one-line stub, or fails on request."""

    def __init__(self) -> None:
        self.fail = False
        self.generated: list[str] = []

    def generate(self, target: BuildTarget, artifact: BuildArtifact) -> Path:
        if self.fail:
            raise ManifestError(group_label(*target.group), "stub generation failed (exit code 1)", target.name)
        path = manifest_path_for(target)
        path.write_text(f"# stubs for {target.name}\n", encoding="utf-8")
        self.generated.append(target.name)
        return path


@pytest.fixture
def fake_executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def fake_manifests() -> FakeManifestGenerator:
    return FakeManifestGenerator()


@pytest.fixture
def write_sources() -> Callable[..., Path]:
    """write_group_sources as a fixture, for tests that lay out their own groups."""
    return write_group_sources
