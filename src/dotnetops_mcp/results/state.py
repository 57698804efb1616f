"""Operation log, diagnostics and result types.

An operation fails when it logs an error; the log therefore doubles as the
failure signal and as the record returned to callers.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .trx import UnitTestResult


class OperationStatus(str, Enum):
    """Final status of an operation run."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class MessageLevel(str, Enum):
    """Operation log message levels."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


_LOGGING_LEVELS = {
    MessageLevel.DEBUG: logging.DEBUG,
    MessageLevel.INFO: logging.INFO,
    MessageLevel.WARNING: logging.WARNING,
    MessageLevel.ERROR: logging.ERROR,
}


@dataclass
class LogEntry:
    """Single operation log message."""

    level: MessageLevel
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"level": self.level.value, "message": self.message}


class OperationLog:
    """Log sink for one operation run.

    Forwards to a standard logger and keeps the entries so they can be
    returned with the result.
    """

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger
        self.entries: list[LogEntry] = []

    def log(self, level: MessageLevel, message: str) -> None:
        self.entries.append(LogEntry(level, message))
        self._logger.log(_LOGGING_LEVELS[level], message)

    def debug(self, message: str) -> None:
        self.log(MessageLevel.DEBUG, message)

    def info(self, message: str) -> None:
        self.log(MessageLevel.INFO, message)

    def warning(self, message: str) -> None:
        self.log(MessageLevel.WARNING, message)

    def error(self, message: str) -> None:
        self.log(MessageLevel.ERROR, message)

    @property
    def has_errors(self) -> bool:
        """Whether any error was logged."""
        return any(e.level == MessageLevel.ERROR for e in self.entries)

    def messages(self, min_level: MessageLevel = MessageLevel.DEBUG) -> list[LogEntry]:
        """Entries at or above a level."""
        order = list(MessageLevel)
        threshold = order.index(min_level)
        return [e for e in self.entries if order.index(e.level) >= threshold]


class DiagnosticSeverity(str, Enum):
    """MSBuild diagnostic severity levels."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass
class Diagnostic:
    """Parsed MSBuild diagnostic (error/warning)."""

    severity: DiagnosticSeverity
    code: str
    message: str
    file: str | None = None
    line: int | None = None
    column: int | None = None
    project: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "severity": self.severity.value,
            "code": self.code,
            "message": self.message,
        }
        if self.file:
            result["file"] = self.file
        if self.line is not None:
            result["line"] = self.line
        if self.column is not None:
            result["column"] = self.column
        if self.project:
            result["project"] = self.project
        return result


# Format: path(line,col): severity code: message [project]
MSBUILD_DIAGNOSTIC_PATTERN = re.compile(
    r"^(?P<file>[^(]+)\((?P<line>\d+),(?P<col>\d+)\):\s*"
    r"(?P<severity>error|warning|info)\s+(?P<code>\w+):\s*"
    r"(?P<message>.+?)(?:\s+\[(?P<project>[^\]]+)\])?$",
    re.IGNORECASE,
)

# Without location: [tool :] severity code: message [project]
MSBUILD_SIMPLE_PATTERN = re.compile(
    r"^(?:[^:]+:\s*)?(?P<severity>error|warning|info)\s+(?P<code>[A-Z]+\d+):\s*"
    r"(?P<message>.+?)(?:\s+\[(?P<project>[^\]]+)\])?$",
    re.IGNORECASE,
)


def parse_msbuild_output(output: str) -> list[Diagnostic]:
    """Parse MSBuild console output into structured diagnostics.

    Identical diagnostics are reported once; MSBuild repeats them in its
    closing summary.
    """
    diagnostics: list[Diagnostic] = []
    seen: set[tuple[Any, ...]] = set()

    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue

        diagnostic: Diagnostic | None = None
        match = MSBUILD_DIAGNOSTIC_PATTERN.match(line)
        if match:
            diagnostic = Diagnostic(
                severity=DiagnosticSeverity(match.group("severity").lower()),
                code=match.group("code"),
                message=match.group("message"),
                file=match.group("file").strip(),
                line=int(match.group("line")),
                column=int(match.group("col")),
                project=match.group("project"),
            )
        else:
            match = MSBUILD_SIMPLE_PATTERN.match(line)
            if match:
                diagnostic = Diagnostic(
                    severity=DiagnosticSeverity(match.group("severity").lower()),
                    code=match.group("code"),
                    message=match.group("message"),
                    project=match.group("project"),
                )

        if diagnostic is None:
            continue
        key = (
            diagnostic.severity,
            diagnostic.code,
            diagnostic.message,
            diagnostic.file,
            diagnostic.line,
            diagnostic.column,
        )
        if key in seen:
            continue
        seen.add(key)
        diagnostics.append(diagnostic)

    return diagnostics


class OperationError(Exception):
    """Failure that aborts an operation."""

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        self.exit_code = exit_code

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {"error": str(self)}
        if self.exit_code is not None:
            result["exitCode"] = self.exit_code
        return result


@dataclass
class OperationResult:
    """Result of an operation run."""

    operation: str
    status: OperationStatus
    description: str = ""
    exit_code: int | None = None
    duration_ms: float = 0.0
    diagnostics: list[Diagnostic] = field(default_factory=list)
    messages: list[LogEntry] = field(default_factory=list)
    tests: list[UnitTestResult] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.status == OperationStatus.SUCCEEDED

    @property
    def errors(self) -> list[Diagnostic]:
        """Get only error diagnostics."""
        return [d for d in self.diagnostics if d.severity == DiagnosticSeverity.ERROR]

    @property
    def warnings(self) -> list[Diagnostic]:
        """Get only warning diagnostics."""
        return [d for d in self.diagnostics if d.severity == DiagnosticSeverity.WARNING]

    @property
    def error_messages(self) -> list[str]:
        """Errors written to the operation log."""
        return [m.message for m in self.messages if m.level == MessageLevel.ERROR]

    def to_dict(self, include_debug: bool = False) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        min_level = MessageLevel.DEBUG if include_debug else MessageLevel.INFO
        order = list(MessageLevel)
        result: dict[str, Any] = {
            "operation": self.operation,
            "status": self.status.value,
            "success": self.success,
            "durationMs": round(self.duration_ms, 2),
            "errorCount": len(self.errors),
            "warningCount": len(self.warnings),
            "messages": [
                m.to_dict()
                for m in self.messages
                if order.index(m.level) >= order.index(min_level)
            ],
        }
        if self.description:
            result["description"] = self.description
        if self.exit_code is not None:
            result["exitCode"] = self.exit_code
        if self.diagnostics:
            result["diagnostics"] = [d.to_dict() for d in self.diagnostics]
        if self.tests:
            from .trx import TestRunSummary

            result["tests"] = [t.to_dict() for t in self.tests]
            result["testSummary"] = TestRunSummary.from_results(self.tests).to_dict()
        if self.data:
            result["data"] = self.data
        return result

    def to_summary(self) -> str:
        """Generate human-readable summary."""
        if self.status == OperationStatus.CANCELLED:
            status = f"[CANCELLED] {self.operation} cancelled"
        elif self.success:
            status = f"[OK] {self.operation} succeeded"
        else:
            status = f"[FAILED] {self.operation} failed"

        parts = [status]
        if self.description:
            parts.append(f"  {self.description}")
        parts.append(f"  Duration: {self.duration_ms:.0f}ms")
        if self.exit_code is not None:
            parts.append(f"  Exit code: {self.exit_code}")
        if self.errors:
            parts.append(f"  Errors: {len(self.errors)}")
        if self.warnings:
            parts.append(f"  Warnings: {len(self.warnings)}")

        for err in self.errors[:5]:
            location = ""
            if err.file:
                location = err.file
                if err.line:
                    location += f"({err.line},{err.column or 0})"
                location += ": "
            parts.append(f"    {location}{err.code}: {err.message}")
        if len(self.errors) > 5:
            parts.append(f"    ... and {len(self.errors) - 5} more errors")

        if self.tests:
            from .trx import TestRunSummary

            parts.append(f"  Tests: {TestRunSummary.from_results(self.tests)}")

        for message in self.error_messages:
            parts.append(f"  ! {message}")

        return "\n".join(parts)
