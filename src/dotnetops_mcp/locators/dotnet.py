"""Locating and installing the dotnet CLI."""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING

from ..context import OperationContext
from ..results.state import OperationError, OperationLog
from ..utils.version import read_global_json_sdk_version
from .download import download_file

if TYPE_CHECKING:
    from ..operations.base import Operation

logger = logging.getLogger(__name__)

INSTALL_SCRIPT_URLS = {
    "dotnet-install.sh": "https://dot.net/v1/dotnet-install.sh",
    "dotnet-install.ps1": "https://dot.net/v1/dotnet-install.ps1",
}
DEFAULT_CHANNEL = "STS"


async def _dotnet_on_path(context: OperationContext) -> bool:
    try:
        result = await context.runner.run(
            ["dotnet", "--info"],
            cwd=context.working_directory,
            env=context.child_environment(),
            timeout=context.config.timeout,
        )
    except OSError as e:
        logger.debug(f"dotnet --info failed: {e}")
        return False
    return result.exit_code == 0


async def find_dotnet_paths(context: OperationContext, log: OperationLog) -> AsyncIterator[str]:
    """Yield candidate dotnet executables, most preferred first."""
    if context.is_windows:
        local_app_data = context.get_environment_variable("LocalAppData")
        if local_app_data and local_app_data.strip():
            path = context.combine_path(local_app_data, "Microsoft", "dotnet", "dotnet.exe")
            log.debug(f"Searching for dotnet at {path}...")
            if context.file_exists(path):
                yield path

        program_files = context.get_environment_variable("ProgramFiles")
        if program_files and program_files.strip():
            path = context.combine_path(program_files, "dotnet", "dotnet.exe")
            log.debug(f"Searching for dotnet at {path}...")
            if context.file_exists(path):
                yield path
    else:
        if await _dotnet_on_path(context):
            yield "dotnet"

        home = context.get_environment_variable("HOME")
        if home and home.strip():
            path = context.combine_path(home, ".dotnet", "dotnet")
            log.debug(f"Searching for dotnet at {path}...")
            if context.file_exists(path):
                yield path

    log.debug("Searching for dotnet in PATH environment variable...")
    path_dirs = context.get_environment_variable("PATH")
    if path_dirs and path_dirs.strip():
        separator = ";" if context.is_windows else ":"
        binary = "dotnet.exe" if context.is_windows else "dotnet"
        for entry in path_dirs.split(separator):
            entry = entry.strip()
            if not entry:
                continue
            name = os.path.basename(entry.rstrip("\\/").replace("\\", "/"))
            if name in ("dotnet", ".dotnet"):
                path = context.combine_path(entry, binary)
                if context.file_exists(path):
                    yield path


def find_global_json(context: OperationContext, start: str | None) -> str | None:
    """Find the nearest global.json at or above a directory.

    The search stops at the base working directory or the filesystem root.
    """
    base = os.path.normcase(os.path.normpath(context.base_working_directory))
    path = start
    while path:
        if os.path.normcase(os.path.normpath(path)) == base:
            return None
        candidate = context.combine_path(path, "global.json")
        if context.file_exists(candidate):
            return candidate
        parent = os.path.dirname(path.rstrip("\\/")) if len(path) > 1 else ""
        if not parent or parent == path:
            return None
        path = parent
    return None


async def install_dotnet(
    operation: Operation,
    context: OperationContext,
    project_path: str | None,
    ensure: str,
) -> None:
    """Run Microsoft's dotnet-install script for a channel or global.json.

    Args:
        operation: Operation that receives the installer output
        context: Execution context
        project_path: Project file or directory used to find global.json
        ensure: "auto" to follow global.json (else the STS channel),
            or a channel name such as "8.0"

    Raises:
        OperationError: If the installer fails
    """
    operation.log_info("Ensuring dotnet SDK is present...")

    global_json: str | None = None
    channel = DEFAULT_CHANNEL
    if ensure.strip().lower() == "auto":
        start = project_path
        if start and os.path.splitext(start)[1]:
            start = os.path.dirname(start)
        global_json = find_global_json(context, start)
        if global_json:
            operation.log_debug(f"Found global.json at {global_json}.")
            sdk_version = read_global_json_sdk_version(global_json)
            if sdk_version:
                operation.log_debug(f"global.json requests SDK {sdk_version}.")
    else:
        channel = ensure.strip()

    script_name = "dotnet-install.ps1" if context.is_windows else "dotnet-install.sh"
    script_path = os.path.join(context.ext_directory, script_name)
    if not os.path.isfile(script_path):
        await download_file(INSTALL_SCRIPT_URLS[script_name], script_path)

    if context.is_windows:
        argv = [
            "powershell.exe", "-NoProfile", "-NonInteractive",
            "-ExecutionPolicy", "Bypass", "-File", script_path, "-NoPath",
        ]
        argv += ["-JSonFile", global_json] if global_json else ["-Channel", channel]
    else:
        argv = ["bash", script_path, "--no-path"]
        argv += ["--jsonfile", global_json] if global_json else ["--channel", channel]

    exit_code = await operation.execute_command_line(context, argv)
    if exit_code != 0:
        raise OperationError("Failure installing .NET SDK.", exit_code)

    operation.log_info(".NET SDK installed/verified.")
