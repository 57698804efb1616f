"""Project root detection.

The working directory for operations comes from, in order:
1. MCP roots announced by the client (``roots/list``)
2. The DOTNETOPS_PROJECT_ROOT environment variable
3. An explicit ``--project`` path
4. The startup CWD, searched upwards for .NET markers with ``--project-from-cwd``
5. The startup CWD as is
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import unquote, urlparse

if TYPE_CHECKING:
    from mcp.server.fastmcp import Context

logger = logging.getLogger(__name__)

# Marker globs, most specific first
PROJECT_MARKERS: tuple[tuple[str, ...], ...] = (
    ("*.sln", "*.slnx"),
    ("*.csproj", "*.vbproj", "*.fsproj"),
    ("global.json",),
    (".git",),
)


@dataclass
class ProjectRootConfig:
    """Settings that decide which directory operations run in."""

    startup_cwd: Path | None = None
    """CWD captured when the server started."""

    use_project_from_cwd: bool = False
    """Search upwards from the startup CWD for project markers."""

    explicit_project_path: Path | None = None
    """Path given with --project."""

    env_var_names: tuple[str, ...] = field(default_factory=lambda: ("DOTNETOPS_PROJECT_ROOT",))
    """Environment variables naming the project root."""


_config: ProjectRootConfig = ProjectRootConfig()


def configure_project_root(
    *,
    use_project_from_cwd: bool = False,
    explicit_project_path: str | Path | None = None,
    startup_cwd: str | Path | None = None,
) -> None:
    """Set project root detection options (called once at startup)."""
    global _config
    _config = ProjectRootConfig(
        use_project_from_cwd=use_project_from_cwd,
        explicit_project_path=Path(explicit_project_path) if explicit_project_path else None,
        startup_cwd=Path(startup_cwd) if startup_cwd else None,
    )
    logger.debug(
        f"Project root configured: use_cwd={use_project_from_cwd}, "
        f"explicit={explicit_project_path}, startup_cwd={startup_cwd}"
    )


def get_config() -> ProjectRootConfig:
    return _config


def parse_file_uri(uri: str) -> Path | None:
    """Convert a file:// URI into an absolute path.

    Drive-letter URIs (file:///C:/src) and UNC hosts (file://server/share)
    are mapped to Windows paths when running on Windows.

    Returns:
        Absolute path, or None for non-file or relative URIs
    """
    parsed = urlparse(str(uri))
    if parsed.scheme != "file":
        logger.warning(f"Not a file URI: {uri}")
        return None

    path_str = unquote(parsed.path)
    if sys.platform == "win32":
        if len(path_str) > 2 and path_str[0] == "/" and path_str[2] == ":":
            path_str = path_str[1:]
        if parsed.netloc:
            path_str = f"\\\\{parsed.netloc}{path_str}"

    path = Path(path_str)
    if not path.is_absolute():
        logger.warning(f"Parsed path is not absolute: {path}")
        return None
    return path


def find_dotnet_project_root(start_dir: Path | None = None) -> Path:
    """Walk up from a directory to the nearest .NET project root.

    Each marker group is tried over the whole ancestor chain before the
    next, so a solution higher up wins over a project file lower down.
    Falls back to the start directory.
    """
    current = (start_dir or Path.cwd()).resolve()
    chain = [current, *current.parents]

    for patterns in PROJECT_MARKERS:
        for directory in chain:
            if any(any(directory.glob(pattern)) for pattern in patterns):
                return directory

    return current


def _is_dir(path: Path | None) -> bool:
    return path is not None and path.exists() and path.is_dir()


def _root_from_settings(config: ProjectRootConfig) -> Path | None:
    for env_var in config.env_var_names:
        env_value = os.environ.get(env_var)
        if not env_value:
            continue
        path = Path(env_value)
        if _is_dir(path):
            logger.info(f"Using project root from {env_var}: {path}")
            return path
        logger.warning(f"{env_var}={env_value} - path does not exist or is not a directory")

    if config.explicit_project_path:
        if _is_dir(config.explicit_project_path):
            logger.info(f"Using explicit project path: {config.explicit_project_path}")
            return config.explicit_project_path
        logger.warning(f"Explicit project path not valid: {config.explicit_project_path}")

    if config.startup_cwd:
        if config.use_project_from_cwd:
            root = find_dotnet_project_root(config.startup_cwd)
            logger.info(f"Using project root from CWD search: {root}")
            return root
        logger.info(f"Using startup CWD: {config.startup_cwd}")
        return config.startup_cwd

    return None


async def get_project_root(ctx: Context | None = None) -> Path | None:
    """Determine the project root, asking the MCP client first.

    Args:
        ctx: MCP context of the current tool call, if any

    Returns:
        Project root, or None if no source yields one
    """
    if ctx is not None:
        try:
            roots = (await ctx.session.list_roots()).roots
        except Exception as e:
            # Clients without roots support reject the request
            logger.info(f"Could not get roots from client: {e}")
            roots = []
        if roots:
            uri = str(roots[0].uri)
            path = parse_file_uri(uri)
            if _is_dir(path):
                logger.info(f"Using project root from MCP client: {path}")
                return path
            logger.warning(f"MCP root path invalid or not accessible: {uri}")

    root = _root_from_settings(get_config())
    if root is None:
        logger.warning("Could not determine project root from any source")
    return root


def get_project_root_sync() -> Path | None:
    """Determine the project root without asking an MCP client."""
    return _root_from_settings(get_config())
