"""Summary of the tools available on this machine."""

from __future__ import annotations

import logging
import os
import shutil
from typing import Any

from ..context import EXT_DIRECTORY_NAME, OperationContext
from ..results.state import OperationLog
from .dotnet import find_dotnet_paths
from .msbuild import find_msbuild_using_registry
from .vswhere import find_vswhere

logger = logging.getLogger(__name__)


async def locate_tools(context: OperationContext) -> dict[str, Any]:
    """Report where each external tool would be taken from.

    Nothing is downloaded or installed; vswhere queries are not run.
    """
    log = OperationLog(logger)
    config = context.config

    dotnet_candidates = [path async for path in find_dotnet_paths(context, log)]
    dotnet = config.dotnet_path or (dotnet_candidates[0] if dotnet_candidates else None)

    search_path = context.get_environment_variable("PATH")
    nuget = config.nuget_path or shutil.which("nuget.exe", path=search_path)
    if nuget is None:
        cached = os.path.join(context.base_working_directory, EXT_DIRECTORY_NAME, "nuget.exe")
        nuget = cached if os.path.isfile(cached) else None

    msbuild = config.msbuild_tools_path
    if msbuild is None and context.is_windows:
        msbuild = find_msbuild_using_registry()

    return {
        "platform": "windows" if context.is_windows else "posix",
        "dotnet": dotnet,
        "dotnetCandidates": dotnet_candidates,
        "nuget": nuget,
        "msbuildToolsPath": msbuild,
        "vswhere": find_vswhere(context) if context.is_windows else None,
        "devenv": config.devenv_path,
        "vstest": config.vstest_path,
        "baseDirectory": context.base_working_directory,
        "packageSources": sorted(config.package_sources),
    }
