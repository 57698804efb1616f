"""Execution context shared by operations.

Carries the working directory, tool configuration, environment and the
process runner that an operation needs, and resolves paths the way the
target platform does.
"""

from __future__ import annotations

import ntpath
import os
import posixpath
from collections.abc import Mapping
from pathlib import Path

from .config import ToolConfig, get_config
from .process import ProcessRunner

EXT_DIRECTORY_NAME = ".dotnet-ext"
TEMP_DIRECTORY_NAME = "Temp"


class OperationContext:
    """Working directory, configuration and process runner for one run."""

    def __init__(
        self,
        working_directory: str | Path | None = None,
        config: ToolConfig | None = None,
        runner: ProcessRunner | None = None,
        environ: Mapping[str, str] | None = None,
        is_windows: bool | None = None,
    ) -> None:
        self.config = config if config is not None else get_config()
        self.runner = runner if runner is not None else ProcessRunner()
        self.environ: Mapping[str, str] = os.environ if environ is None else environ
        self.is_windows = os.name == "nt" if is_windows is None else is_windows
        self.working_directory = str(working_directory or os.getcwd())

    @property
    def base_working_directory(self) -> str:
        return str(self.config.base_directory)

    @property
    def _pathmod(self):
        return ntpath if self.is_windows else posixpath

    def combine_path(self, *parts: str) -> str:
        """Join path segments with the target platform's separator rules."""
        return self._pathmod.join(*parts)

    def resolve_path(self, path: str | None, base: str | None = None) -> str:
        """Resolve a path relative to the working directory (or a base).

        Args:
            path: Absolute or relative path; empty means the base
            base: Optional base, itself resolved against the working directory

        Returns:
            Absolute path
        """
        root = self.resolve_path(base) if base else self.working_directory
        if not path or not path.strip():
            return root
        if path.startswith("~"):
            path = os.path.expanduser(path)
        if self._pathmod.isabs(path):
            return path
        return self._pathmod.normpath(self._pathmod.join(root, path))

    def get_environment_variable(self, name: str) -> str | None:
        value = self.environ.get(name)
        if value is None and self.is_windows:
            # Windows variable names are case-insensitive
            lowered = name.lower()
            for key, candidate in self.environ.items():
                if key.lower() == lowered:
                    return candidate
        return value

    def file_exists(self, path: str | None) -> bool:
        return bool(path) and os.path.isfile(path)

    def directory_exists(self, path: str | None) -> bool:
        return bool(path) and os.path.isdir(path)

    def ensure_directory(self, path: str) -> str:
        """Create a directory (and parents) if missing."""
        os.makedirs(path, exist_ok=True)
        return path

    @property
    def ext_directory(self) -> str:
        """Directory for downloaded tools and extracted files."""
        return self.ensure_directory(
            os.path.join(self.base_working_directory, EXT_DIRECTORY_NAME)
        )

    @property
    def temp_directory(self) -> str:
        """Directory for transient output such as test result files."""
        return self.ensure_directory(
            os.path.join(self.base_working_directory, TEMP_DIRECTORY_NAME)
        )

    def child_environment(self) -> dict[str, str]:
        """Environment passed to child processes."""
        return dict(self.environ)
