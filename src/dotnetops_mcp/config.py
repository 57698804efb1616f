"""Server-scoped tool configuration.

Values come from environment variables and act as the defaults for every
operation that does not set the corresponding path explicitly.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT: float = 3600.0


@dataclass
class ToolConfig:
    """Locations of external tools and working storage."""

    dotnet_path: str | None = None
    """Default dotnet executable (DOTNETOPS_DOTNET_PATH)."""

    nuget_path: str | None = None
    """Default nuget.exe (DOTNETOPS_NUGET_PATH)."""

    devenv_path: str | None = None
    """Default devenv.exe (DOTNETOPS_DEVENV_PATH)."""

    msbuild_tools_path: str | None = None
    """Directory containing MSBuild.exe (DOTNETOPS_MSBUILD_TOOLS_PATH)."""

    vstest_path: str | None = None
    """Default vstest.console.exe (DOTNETOPS_VSTEST_PATH)."""

    vswhere_path: str | None = None
    """Explicit vswhere.exe (DOTNETOPS_VSWHERE_PATH)."""

    base_directory: Path = field(default_factory=lambda: Path.home() / ".dotnetops")
    """Base working directory for downloaded tools and temp files."""

    package_sources: dict[str, str] = field(default_factory=dict)
    """Named NuGet package sources mapped to feed URLs."""

    vs_targets_zip: str | None = None
    """Zip of Visual Studio MSBuild targets for VSToolsPath=embedded."""

    timeout: float = DEFAULT_TIMEOUT
    """Per-process timeout in seconds."""

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ToolConfig:
        """Load configuration from environment variables.

        Raises:
            ValueError: If DOTNETOPS_PACKAGE_SOURCES or DOTNETOPS_TIMEOUT is invalid
        """
        env = os.environ if environ is None else environ

        def value(name: str) -> str | None:
            raw = env.get(name)
            return raw.strip() if raw and raw.strip() else None

        sources: dict[str, str] = {}
        raw_sources = value("DOTNETOPS_PACKAGE_SOURCES")
        if raw_sources:
            try:
                parsed = json.loads(raw_sources)
            except json.JSONDecodeError as e:
                raise ValueError(f"DOTNETOPS_PACKAGE_SOURCES is not valid JSON: {e}") from e
            if not isinstance(parsed, dict) or not all(
                isinstance(k, str) and isinstance(v, str) for k, v in parsed.items()
            ):
                raise ValueError("DOTNETOPS_PACKAGE_SOURCES must map names to URLs")
            sources = parsed

        timeout = DEFAULT_TIMEOUT
        raw_timeout = value("DOTNETOPS_TIMEOUT")
        if raw_timeout:
            try:
                timeout = float(raw_timeout)
            except ValueError as e:
                raise ValueError(f"Invalid DOTNETOPS_TIMEOUT: {raw_timeout}") from e
            if timeout <= 0:
                raise ValueError(f"Invalid DOTNETOPS_TIMEOUT: {raw_timeout}")

        base_dir = value("DOTNETOPS_BASE_DIR")

        config = cls(
            dotnet_path=value("DOTNETOPS_DOTNET_PATH"),
            nuget_path=value("DOTNETOPS_NUGET_PATH"),
            devenv_path=value("DOTNETOPS_DEVENV_PATH"),
            msbuild_tools_path=value("DOTNETOPS_MSBUILD_TOOLS_PATH"),
            vstest_path=value("DOTNETOPS_VSTEST_PATH"),
            vswhere_path=value("DOTNETOPS_VSWHERE_PATH"),
            package_sources=sources,
            vs_targets_zip=value("DOTNETOPS_VSTARGETS_ZIP"),
            timeout=timeout,
        )
        if base_dir:
            config.base_directory = Path(base_dir).expanduser()
        return config

    def to_dict(self) -> dict[str, object]:
        """Convert to dictionary for JSON serialization."""
        return {
            "dotnetPath": self.dotnet_path,
            "nugetPath": self.nuget_path,
            "devenvPath": self.devenv_path,
            "msbuildToolsPath": self.msbuild_tools_path,
            "vstestPath": self.vstest_path,
            "vswherePath": self.vswhere_path,
            "baseDirectory": str(self.base_directory),
            "packageSources": sorted(self.package_sources),
            "timeout": self.timeout,
        }


# Global configuration (loaded lazily, replaced at startup)
_config: ToolConfig | None = None


def get_config() -> ToolConfig:
    """Get current tool configuration, loading it from the environment once."""
    global _config
    if _config is None:
        _config = ToolConfig.from_env()
    return _config


def set_config(config: ToolConfig | None) -> None:
    """Replace the global configuration (None reloads from the environment)."""
    global _config
    _config = config
    if config is not None:
        logger.debug(f"Tool configuration set: {config.to_dict()}")
