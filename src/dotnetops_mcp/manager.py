"""Operation manager - singleton serializing operation runs per workspace.

Provides:
- One running operation per workspace
- The last result of every workspace
- Cancellation of the running process
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable

from .config import ToolConfig
from .context import OperationContext
from .operations.base import Operation
from .process import ProcessRunner
from .results.state import OperationResult

logger = logging.getLogger(__name__)


class OperationManager:
    """Singleton manager for operation runs across workspaces.

    Usage:
        manager = OperationManager()
        result = await manager.run("/path/to/workspace", DotNetBuildOperation(project_path="App.sln"))
    """

    _instance: OperationManager | None = None

    def __new__(cls) -> OperationManager:
        """Singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self) -> None:
        if self._initialized:
            return
        self._runners: dict[str, ProcessRunner] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._results: dict[str, OperationResult] = {}
        self._last_result: OperationResult | None = None
        self._listeners: list[Callable[[str, OperationResult], None]] = []
        self._initialized = True

    @classmethod
    def reset(cls) -> None:
        """Drop the singleton (used by tests)."""
        cls._instance = None

    def _normalize_path(self, path: str) -> str:
        return os.path.normcase(os.path.normpath(os.path.abspath(path)))

    def _runner(self, key: str) -> ProcessRunner:
        if key not in self._runners:
            self._runners[key] = ProcessRunner()
        return self._runners[key]

    def _lock(self, key: str) -> asyncio.Lock:
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    def on_result(self, listener: Callable[[str, OperationResult], None]) -> None:
        """Register a listener called with (workspace, result) after each run."""
        self._listeners.append(listener)

    def _notify(self, workspace: str, result: OperationResult) -> None:
        for listener in self._listeners:
            try:
                listener(workspace, result)
            except Exception:
                logger.exception("Operation result listener error")

    def is_running(self, workspace: str) -> bool:
        return self._lock(self._normalize_path(workspace)).locked()

    async def run(
        self,
        workspace: str,
        operation: Operation,
        config: ToolConfig | None = None,
    ) -> OperationResult:
        """Run an operation in a workspace, waiting for any run in progress.

        Args:
            workspace: Working directory of the operation
            operation: Operation to run
            config: Tool configuration (process-wide config when None)

        Returns:
            Operation result
        """
        key = self._normalize_path(workspace)
        lock = self._lock(key)
        if lock.locked():
            logger.info(f"Waiting for running operation in {workspace}")

        async with lock:
            context = OperationContext(
                working_directory=workspace,
                config=config,
                runner=self._runner(key),
            )
            result = await operation.run(context)

        self._results[key] = result
        self._last_result = result
        self._notify(workspace, result)
        return result

    def cancel(self, workspace: str | None = None) -> bool:
        """Kill the running process of a workspace (or of every workspace).

        Returns:
            True if a process was killed
        """
        if workspace is not None:
            runner = self._runners.get(self._normalize_path(workspace))
            return runner.cancel() if runner else False

        cancelled = False
        for runner in self._runners.values():
            cancelled = runner.cancel() or cancelled
        return cancelled

    def last_result(self, workspace: str | None = None) -> OperationResult | None:
        """Result of the most recent run (in a workspace, or anywhere)."""
        if workspace is None:
            return self._last_result
        return self._results.get(self._normalize_path(workspace))
