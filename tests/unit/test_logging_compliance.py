"""Unit tests for logging compliance across the codebase.

These tests enforce that library code reports diagnostics through the logging
module and leaves user-facing output to cli.py and output.py.
"""

import ast
import re
from pathlib import Path

import pytest

SRC_DIR = Path(__file__).parent.parent.parent / "src" / "pyiglbuild"

# Modules that legitimately write to the console
USER_FACING = {"cli.py", "output.py"}


def _library_files() -> list[Path]:
    files = [p for p in SRC_DIR.rglob("*.py") if "__pycache__" not in p.parts]
    assert files, f"No Python files found in {SRC_DIR}"
    return files


class TestLoggingCompliance:
    """Test cases for logging vs print statement compliance."""

    def test_no_print_statements_in_library_code(self):
        """Library modules never call print(); the CLI decides what reaches the console."""
        violations = []
        for file_path in _library_files():
            if file_path.name in USER_FACING:
                continue
            tree = ast.parse(file_path.read_text(encoding="utf-8"))
            for node in ast.walk(tree):
                if isinstance(node, ast.Call) and isinstance(node.func, ast.Name) and node.func.id == "print":
                    violations.append(f"{file_path}:{node.lineno}")

        if violations:
            pytest.fail(f"Found {len(violations)} print() calls in library code:\n" + "\n".join(violations) + "\n\nUse logging instead.")

    def test_no_direct_stdout_writes(self):
        """Only output.py writes to stdout directly."""
        violations = []
        for file_path in _library_files():
            if file_path.name in USER_FACING:
                continue
            for line_num, line in enumerate(file_path.read_text(encoding="utf-8").split("\n"), start=1):
                if line.strip().startswith("#"):
                    continue
                if re.search(r"\bstdout\s*\.\s*write\s*\(", line):
                    violations.append(f"{file_path}:{line_num}: {line.strip()}")

        if violations:
            pytest.fail(f"Found {len(violations)} direct stdout writes:\n" + "\n".join(violations))

    def test_module_loggers_use_module_name(self):
        """Every module that logs declares logger = logging.getLogger(__name__)."""
        missing = []
        for file_path in _library_files():
            if file_path.name in USER_FACING:
                continue
            content = file_path.read_text(encoding="utf-8")
            if re.search(r"\blogger\.(debug|info|warning|error|exception)\(", content) and "logger = logging.getLogger(__name__)" not in content:
                missing.append(str(file_path))

        if missing:
            pytest.fail("Modules logging without a module-level logger:\n" + "\n".join(missing))

    def test_no_root_logger_calls(self):
        """Library code logs through its module logger, never the root logger."""
        violations = []
        for file_path in _library_files():
            for line_num, line in enumerate(file_path.read_text(encoding="utf-8").split("\n"), start=1):
                if re.search(r"\blogging\.(debug|info|warning|error|exception)\(", line):
                    violations.append(f"{file_path}:{line_num}: {line.strip()}")

        if violations:
            pytest.fail("Root logger calls found:\n" + "\n".join(violations))
