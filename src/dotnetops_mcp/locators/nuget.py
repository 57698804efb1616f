"""Locating (or fetching) nuget.exe."""

from __future__ import annotations

import logging
import os
import shutil

from ..context import OperationContext
from .download import download_file

logger = logging.getLogger(__name__)

NUGET_EXE_URL = "https://dist.nuget.org/win-x86-commandline/latest/nuget.exe"


async def get_nuget_exe_path(context: OperationContext, explicit: str | None = None) -> str:
    """Find nuget.exe, downloading the official build as a last resort.

    Order: explicit path, DOTNETOPS_NUGET_PATH, PATH, cached copy in
    the .dotnet-ext directory, download.
    """
    if explicit and explicit.strip():
        return context.resolve_path(explicit.strip())

    if context.config.nuget_path:
        return context.config.nuget_path

    on_path = shutil.which("nuget.exe", path=context.get_environment_variable("PATH"))
    if on_path:
        logger.debug(f"nuget.exe found on PATH: {on_path}")
        return on_path

    cached = os.path.join(context.ext_directory, "nuget.exe")
    if os.path.isfile(cached):
        return cached

    return await download_file(NUGET_EXE_URL, cached)
