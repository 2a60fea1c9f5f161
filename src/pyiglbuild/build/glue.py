"""Glue generation for module entry files.

Each group's entry file (module.cpp) includes two generated fragments:

    #include "BINDING_DECLARATIONS.in"    // extern void bind_foo(nb::module_ &m);
    ...
    NB_MODULE(pyigl_core, m) {
    #include "BINDING_INVOCATIONS.in"     //     bind_foo(m);
    }

The fragments are written under <build>/include/<subpath>/. A fragment whose
content is unchanged is not rewritten, so its timestamp never triggers a
recompilation of the entry file.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from .discovery import BindingUnit
from .errors import ArtifactWriteError
from .groups import GroupDescriptor

logger = logging.getLogger(__name__)

DECLARATIONS_FILE = "BINDING_DECLARATIONS.in"
INVOCATIONS_FILE = "BINDING_INVOCATIONS.in"


@dataclass(frozen=True)
class GeneratedGlue:
    """Declaration and invocation text for one group."""

    declarations: str
    invocations: str

    @property
    def declaration_count(self) -> int:
        return len(self.declarations.splitlines())

    @property
    def invocation_count(self) -> int:
        return len(self.invocations.splitlines())


def declaration_line(unit: BindingUnit) -> str:
    return f"extern void {unit.function_name}(nb::module_ &m);\n"


def invocation_line(unit: BindingUnit) -> str:
    return f"    {unit.function_name}(m);\n"


def render_glue(units: Sequence[BindingUnit]) -> GeneratedGlue:
    """Render glue text for units, keeping their order."""
    return GeneratedGlue(
        declarations="".join(declaration_line(unit) for unit in units),
        invocations="".join(invocation_line(unit) for unit in units),
    )


def _write_if_changed(path: Path, content: str) -> bool:
    try:
        if path.is_file() and path.read_bytes() == content.encode("utf-8"):
            return False
    except OSError:
        pass  # Unreadable counts as changed; the write below reports real failures
    path.write_bytes(content.encode("utf-8"))
    return True


def write_glue(descriptor: GroupDescriptor, glue: GeneratedGlue) -> tuple[Path, Path]:
    """Write a group's glue fragments into its generated directory.

    Args:
        descriptor: The group owning the glue
        glue: Rendered glue text

    Returns:
        Paths of the declarations and invocations fragments

    Raises:
        ArtifactWriteError: If the directory or a fragment cannot be written
    """
    generated_dir = descriptor.generated_dir
    declarations_path = generated_dir / DECLARATIONS_FILE
    invocations_path = generated_dir / INVOCATIONS_FILE

    try:
        generated_dir.mkdir(parents=True, exist_ok=True)
        changed = _write_if_changed(declarations_path, glue.declarations)
        changed = _write_if_changed(invocations_path, glue.invocations) or changed
    except OSError as e:
        raise ArtifactWriteError(descriptor.label, f"failed to write glue: {e}", generated_dir) from e

    if changed:
        logger.debug("%s: wrote glue for %d binding(s) to %s", descriptor.label, glue.declaration_count, generated_dir)
    else:
        logger.debug("%s: glue unchanged in %s", descriptor.label, generated_dir)
    return declarations_path, invocations_path
