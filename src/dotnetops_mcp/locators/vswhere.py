"""Visual Studio component discovery with vswhere.exe.

vswhere documentation: https://github.com/Microsoft/vswhere/wiki
"""

from __future__ import annotations

import ntpath
import shutil
import xml.etree.ElementTree as ET
from typing import TYPE_CHECKING

from ..context import OperationContext

if TYPE_CHECKING:
    from ..operations.base import Operation

VSWHERE_BASE_ARGS: tuple[str, ...] = (
    "-products", "*", "-nologo", "-format", "xml", "-utf8", "-latest", "-sort",
)

# Component requirements for the tools located through vswhere
MSBUILD_REQUIREMENTS: tuple[str, ...] = (
    "-requires", "Microsoft.Component.MSBuild", "-find", "**\\MSBuild.exe",
)
DEVENV_REQUIREMENTS: tuple[str, ...] = ("-find", "**\\devenv.exe")
VSTEST_REQUIREMENTS: tuple[str, ...] = (
    "-requiresAny",
    "-requires",
    "Microsoft.VisualStudio.PackageGroup.TestTools.Core",
    "Microsoft.VisualStudio.Component.TestTools.BuildTools",
    "-find",
    "**\\vstest.console.exe",
)


def find_vswhere(context: OperationContext) -> str | None:
    """Locate vswhere.exe: configured path, installer directory, then PATH."""
    if context.config.vswhere_path:
        return context.config.vswhere_path

    program_files = context.get_environment_variable("ProgramFiles(x86)")
    if program_files:
        path = context.combine_path(
            program_files, "Microsoft Visual Studio", "Installer", "vswhere.exe"
        )
        if context.file_exists(path):
            return path

    return shutil.which("vswhere.exe", path=context.get_environment_variable("PATH"))


def select_vswhere_file(xml_text: str) -> str | None:
    """Pick the preferred file from vswhere's XML output.

    ARM64 binaries are skipped and x86 ones preferred over amd64.
    """
    if not xml_text or not xml_text.strip():
        return None
    root = ET.fromstring(xml_text)

    files = [
        (element.text or "").strip()
        for element in root.iter()
        if element.tag.rsplit("}", 1)[-1] == "file"
    ]
    files = [f for f in files if f and "arm64" not in f.lower()]
    files.sort(key=lambda f: 1 if "amd64" in f.lower() else 0)
    return files[0] if files else None


async def find_using_vswhere(
    operation: Operation,
    context: OperationContext,
    args: tuple[str, ...] | list[str],
    return_file: bool = False,
) -> str | None:
    """Run vswhere and return the directory (or file) it finds.

    Args:
        operation: Operation whose log receives vswhere's output
        context: Execution context
        args: Component requirements and -find pattern
        return_file: Return the file path instead of its directory

    Returns:
        Located path, None if not found
    """
    if not context.is_windows:
        operation.log_warning("vswhere.exe is only supported on Windows.")
        return None

    vswhere = find_vswhere(context)
    if not vswhere:
        operation.log_warning("vswhere.exe could not be found; Visual Studio Installer may not be installed.")
        return None

    argv = [vswhere, *VSWHERE_BASE_ARGS, *args]
    cwd = ntpath.dirname(vswhere) or context.working_directory
    operation.log_debug(f"Process: {vswhere}")
    operation.log_debug(f"Arguments: {' '.join(argv[1:])}")
    operation.log_debug(f"Working directory: {cwd}")

    result = await context.runner.run(
        argv,
        cwd=cwd,
        env=context.child_environment(),
        timeout=context.config.timeout,
        on_stderr=operation.log_process_error,
    )
    if result.exit_code != 0:
        operation.log_warning(f"vswhere.exe exited with code {result.exit_code}.")
        return None

    try:
        path = select_vswhere_file(result.stdout)
    except ET.ParseError as e:
        operation.log_warning(f"Could not parse vswhere.exe output: {e}")
        return None

    if not path:
        return None
    # vswhere always reports Windows paths
    return path if return_file else ntpath.dirname(path)
