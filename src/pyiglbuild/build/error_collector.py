"""
Error Collector - Structured error collection for parallel group pipelines.

Worker threads report group failures and manifest warnings here; the
orchestrator turns the collection into the aggregate summary printed at the
end of a best-effort run.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .errors import GroupBuildError

logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    """Severity level of a group error."""

    WARNING = "warning"
    ERROR = "error"
    FATAL = "fatal"


@dataclass
class GroupError:
    """Single error or warning attributed to a module group."""

    severity: ErrorSeverity
    group: str
    phase: str  # "discover", "write", "build", "install", "manifest"
    error_message: str
    subject: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    @classmethod
    def from_exception(cls, group: str, exc: BaseException, severity: ErrorSeverity = ErrorSeverity.FATAL) -> "GroupError":
        """Build a record from a raised exception."""
        if isinstance(exc, GroupBuildError):
            return cls(severity=severity, group=exc.group, phase=exc.phase, error_message=exc.message, subject=exc.subject)
        return cls(severity=severity, group=group, phase="internal", error_message=f"{type(exc).__name__}: {exc}")

    def format(self) -> str:
        """Format as a human-readable string."""
        lines = [f"[{self.severity.value.upper()}] {self.group} {self.phase}: {self.error_message}"]
        if self.subject:
            lines.append(f"  At: {self.subject}")
        return "\n".join(lines)


class ErrorCollector:
    """Collects group errors reported from pipeline worker threads."""

    def __init__(self) -> None:
        self.errors: list[GroupError] = []
        self.lock = threading.Lock()

    def add_error(self, error: GroupError) -> None:
        """Add an error to the collection."""
        with self.lock:
            self.errors.append(error)
        logger.debug("Recorded %s in %s/%s: %s", error.severity.value, error.group, error.phase, error.error_message)

    def add_warning(self, group: str, phase: str, message: str, subject: Optional[str] = None) -> None:
        """Record a non-fatal warning for a group."""
        self.add_error(GroupError(ErrorSeverity.WARNING, group, phase, message, subject))

    def get_errors(self, severity: Optional[ErrorSeverity] = None) -> list[GroupError]:
        """Get all errors, optionally filtered by severity."""
        with self.lock:
            if severity:
                return [e for e in self.errors if e.severity == severity]
            return self.errors.copy()

    def get_errors_for_group(self, group: str) -> list[GroupError]:
        """Get the errors attributed to one group."""
        with self.lock:
            return [e for e in self.errors if e.group == group]

    def has_fatal_errors(self) -> bool:
        with self.lock:
            return any(e.severity == ErrorSeverity.FATAL for e in self.errors)

    def has_warnings(self) -> bool:
        with self.lock:
            return any(e.severity == ErrorSeverity.WARNING for e in self.errors)

    def get_error_count(self) -> dict[str, int]:
        """Get count of errors by severity."""
        with self.lock:
            return {
                "warnings": sum(1 for e in self.errors if e.severity == ErrorSeverity.WARNING),
                "errors": sum(1 for e in self.errors if e.severity == ErrorSeverity.ERROR),
                "fatal": sum(1 for e in self.errors if e.severity == ErrorSeverity.FATAL),
                "total": len(self.errors),
            }

    def format_errors(self) -> str:
        """Format all errors plus a severity summary line."""
        with self.lock:
            if not self.errors:
                return "No errors"
            lines = [err.format() for err in self.errors]
        lines.append(f"Summary: {self.format_summary()}")
        return "\n".join(lines)

    def format_summary(self) -> str:
        """Format a brief summary such as ``1 fatal, 2 warnings``."""
        counts = self.get_error_count()
        if counts["total"] == 0:
            return "No errors"

        parts = []
        if counts["fatal"] > 0:
            parts.append(f"{counts['fatal']} fatal")
        if counts["errors"] > 0:
            parts.append(f"{counts['errors']} errors")
        if counts["warnings"] > 0:
            parts.append(f"{counts['warnings']} warnings")
        return ", ".join(parts)
