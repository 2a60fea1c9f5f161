"""Error taxonomy for module group builds.

Every group-local failure derives from GroupBuildError and carries the
group's (prefix, name) label plus the offending path or identifier, so a
summary can attribute it without extra bookkeeping.
"""

from pathlib import Path
from typing import Optional, Union


class GroupBuildError(Exception):
    """Base class for errors that stop one module group's pipeline.

    Attributes:
        group: Group label, e.g. "(copyleft, core)"
        subject: Offending path or identifier, if any
        phase: Pipeline phase the error belongs to (e.g. "discover", "build")
    """

    phase = "build"

    def __init__(self, group: str, message: str, subject: Optional[Union[str, Path]] = None):
        self.group = group
        self.subject = str(subject) if subject is not None else None
        self.message = message
        detail = f" [{self.subject}]" if self.subject else ""
        super().__init__(f"{group}: {message}{detail}")


class ConfigurationError(GroupBuildError):
    """An enabled group is misconfigured (missing sources, no units, no entry file)."""

    phase = "discover"


class DuplicateBindingError(GroupBuildError):
    """Two binding units of one group resolve to the same identifier."""

    phase = "discover"


class ArtifactWriteError(GroupBuildError):
    """A generated file (glue, entry point, staged install file) could not be written."""

    phase = "write"


class BuildFailedError(GroupBuildError):
    """The external build executor failed to produce the module."""

    phase = "build"


class ArtifactMissingError(GroupBuildError):
    """The built module is not where the target says it should be."""

    phase = "install"


class ManifestError(GroupBuildError):
    """Interface manifest generation failed while manifests are mandatory."""

    phase = "manifest"


class ManifestWarning(UserWarning):
    """Interface manifest generation failed; the module is installed without it."""


class OrchestrationAborted(Exception):
    """Raised under the fail-fast policy when a group error stops the whole run.

    Attributes:
        cause: The first fatal group error
        result: The orchestration result at the moment of the abort
    """

    def __init__(self, cause: BaseException, result: object = None):
        self.cause = cause
        self.result = result
        super().__init__(f"Build aborted: {cause}")
