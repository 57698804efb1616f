"""Operation base class.

An operation is a dataclass of its parameters plus an async ``execute``.
``run`` wraps ``execute`` with the bookkeeping every operation shares: a
fresh log, timing, diagnostics gathered from tool output, and conversion of
failures into an :class:`OperationResult`.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, fields
from typing import Any, ClassVar

from ..arguments import format_command, is_blank
from ..context import OperationContext
from ..results.state import (
    Diagnostic,
    OperationError,
    OperationLog,
    OperationResult,
    OperationStatus,
    parse_msbuild_output,
)
from ..results.trx import UnitTestResult

logger = logging.getLogger(__name__)

URL_PATTERN = re.compile(r"^(https?|file)://", re.IGNORECASE)


@dataclass(kw_only=True)
class Operation:
    """Base for all operations."""

    namespace: ClassVar[str] = ""
    script_alias: ClassVar[str] = ""
    summary: ClassVar[str] = ""

    log: OperationLog = field(init=False, repr=False, compare=False)
    exit_code: int | None = field(default=None, init=False, repr=False, compare=False)
    diagnostics: list[Diagnostic] = field(default_factory=list, init=False, repr=False, compare=False)
    tests: list[UnitTestResult] = field(default_factory=list, init=False, repr=False, compare=False)
    data: dict[str, Any] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.log = OperationLog(logging.getLogger(type(self).__module__))

    @classmethod
    def qualified_name(cls) -> str:
        """Name as used in scripts, e.g. ``DotNet::Build``."""
        return f"{cls.namespace}::{cls.script_alias}"

    @classmethod
    def parameters(cls) -> list[str]:
        """Names of the operation's input fields."""
        return [f.name for f in fields(cls) if f.init]

    # Logging shortcuts

    def log_debug(self, message: str) -> None:
        self.log.debug(message)

    def log_info(self, message: str) -> None:
        self.log.info(message)

    def log_warning(self, message: str) -> None:
        self.log.warning(message)

    def log_error(self, message: str) -> None:
        self.log.error(message)

    def log_process_output(self, text: str) -> None:
        """Handle one stdout line of a child process."""
        self.log_debug(text)

    def log_process_error(self, text: str) -> None:
        """Handle one stderr line of a child process."""
        self.log_error(text)

    def describe(self) -> str:
        """One-line description of what the operation will do."""
        return self.qualified_name()

    async def execute(self, context: OperationContext) -> None:
        raise NotImplementedError

    async def run(self, context: OperationContext) -> OperationResult:
        """Execute the operation and collect its outcome.

        Failures are reported through the result, never raised: an operation
        fails when it logs an error or raises :class:`OperationError`.
        """
        self.log = OperationLog(logging.getLogger(type(self).__module__))
        self.exit_code = None
        self.diagnostics = []
        self.tests = []
        self.data = {}

        name = self.qualified_name()
        logger.info(f"Running {name}: {self.describe()}")
        status = OperationStatus.SUCCEEDED
        start = time.monotonic()

        try:
            await self.execute(context)
        except OperationError as e:
            self.log_error(str(e))
            if e.exit_code is not None:
                self.exit_code = e.exit_code
        except asyncio.TimeoutError:
            self.log_error(f"Process did not finish within {context.config.timeout:.0f} seconds.")
        except asyncio.CancelledError:
            self.log_warning(f"{name} was cancelled.")
            status = OperationStatus.CANCELLED
        except FileNotFoundError as e:
            self.log_error(f"Executable not found: {e.filename or e}")
        except PermissionError as e:
            self.log_error(f"Permission denied: {e.filename or e}")
        except Exception as e:
            logger.exception(f"{name} raised")
            self.log_error(f"{name} failed: {e}")

        if status == OperationStatus.SUCCEEDED and self.log.has_errors:
            status = OperationStatus.FAILED

        duration_ms = (time.monotonic() - start) * 1000
        logger.info(f"{name} finished: {status.value} in {duration_ms:.0f}ms")

        return OperationResult(
            operation=name,
            status=status,
            description=self.describe(),
            exit_code=self.exit_code,
            duration_ms=duration_ms,
            diagnostics=list(self.diagnostics),
            messages=list(self.log.entries),
            tests=list(self.tests),
            data=dict(self.data),
        )

    async def execute_command_line(
        self,
        context: OperationContext,
        argv: Sequence[str],
        cwd: str | None = None,
        log_argv: Sequence[str] | None = None,
        secrets: Iterable[str | None] = (),
    ) -> int:
        """Run a child process, routing its output through the operation log.

        Args:
            context: Execution context
            argv: Executable and arguments
            cwd: Working directory (defaults to the context's)
            log_argv: Arguments to show in the log instead of argv
            secrets: Values masked when the command is logged

        Returns:
            Process exit code
        """
        workdir = cwd or context.working_directory
        shown = format_command(log_argv or argv, secrets, windows=context.is_windows)
        self.log_debug(f"Executing: {shown}")
        self.log_debug(f"Working directory: {workdir}")

        result = await context.runner.run(
            list(argv),
            cwd=workdir,
            env=context.child_environment(),
            timeout=context.config.timeout,
            on_stdout=self.log_process_output,
            on_stderr=self.log_process_error,
        )

        seen = {(d.severity, d.code, d.message, d.file, d.line) for d in self.diagnostics}
        for diagnostic in parse_msbuild_output(result.output):
            key = (diagnostic.severity, diagnostic.code, diagnostic.message, diagnostic.file, diagnostic.line)
            if key not in seen:
                seen.add(key)
                self.diagnostics.append(diagnostic)

        self.exit_code = result.exit_code
        return result.exit_code

    def resolve_package_source(self, context: OperationContext, value: str | None) -> str | None:
        """Map a package source name, URL or local path to a feed location.

        Logs an error and returns None when the source is unknown.
        """
        if value is None or is_blank(value):
            return None
        value = value.strip()

        if URL_PATTERN.match(value):
            return value

        for name, url in context.config.package_sources.items():
            if name.lower() == value.lower():
                self.log_debug(f"Package source \"{value}\" resolved to {url}")
                return url

        local = context.resolve_path(value)
        if os.path.exists(local):
            return local

        self.log_error(f"Package source \"{value}\" not found.")
        return None

    def ensure_working_directory(self, context: OperationContext) -> None:
        self.log_debug(f"Ensuring working directory {context.working_directory} exists...")
        context.ensure_directory(context.working_directory)
