"""Operation results, test results and package metadata."""

from .nuspec import NuspecMetadata, read_nuspec
from .state import (
    Diagnostic,
    DiagnosticSeverity,
    LogEntry,
    MessageLevel,
    OperationError,
    OperationLog,
    OperationResult,
    OperationStatus,
    parse_msbuild_output,
)
from .trx import (
    TestRunSummary,
    UnitTestResult,
    UnitTestStatus,
    parse_duration,
    parse_trx,
    record_unit_test_results,
)

__all__ = [
    "Diagnostic",
    "DiagnosticSeverity",
    "LogEntry",
    "MessageLevel",
    "NuspecMetadata",
    "OperationError",
    "OperationLog",
    "OperationResult",
    "OperationStatus",
    "TestRunSummary",
    "UnitTestResult",
    "UnitTestStatus",
    "parse_duration",
    "parse_msbuild_output",
    "parse_trx",
    "read_nuspec",
    "record_unit_test_results",
]
