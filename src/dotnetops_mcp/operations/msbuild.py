"""MSBuild::Build-Project operation."""

from __future__ import annotations

import logging
import ntpath
import os
from dataclasses import dataclass, field
from typing import ClassVar

from ..arguments import is_blank, split_arguments
from ..context import OperationContext
from ..locators.msbuild import find_msbuild_using_registry
from ..locators.vswhere import MSBUILD_REQUIREMENTS, find_using_vswhere
from ..results.state import OperationError
from .base import Operation

logger = logging.getLogger(__name__)

MSBUILD_NOT_FOUND = (
    "Could not determine MSBuildToolsPath value on this server. To resolve this issue, ensure "
    "that MSBuild is available on this server (e.g. by installing the Visual Studio Build Tools) "
    "and retry the build, or set DOTNETOPS_MSBUILD_TOOLS_PATH to the location of the MSBuild "
    "tools. For example, the tools included with Visual Studio 2022 could be installed to "
    r"C:\Program Files\Microsoft Visual Studio\2022\BuildTools\MSBuild\Current\Bin"
)


@dataclass(kw_only=True)
class MSBuildBuildProjectOperation(Operation):
    """Builds a project or solution using MSBuild."""

    namespace: ClassVar[str] = "MSBuild"
    script_alias: ClassVar[str] = "Build-Project"
    summary: ClassVar[str] = "Builds a project or solution using MSBuild."

    project_path: str
    configuration: str = "Release"
    platform: str | None = None
    msbuild_properties: list[str] = field(default_factory=list)
    """Additional key=value properties."""

    additional_arguments: str | None = None
    msbuild_tools_path: str | None = None
    """Directory containing MSBuild.exe; discovered when not set."""

    target_directory: str | None = None

    def describe(self) -> str:
        return f"Build {self.project_path} with {self.configuration} configuration"

    def log_process_output(self, text: str) -> None:
        if ": error " in text:
            self.log_error(text)
        elif ": warning " in text:
            self.log_warning(text)
        else:
            self.log_debug(text)

    async def get_msbuild_tools_path(self, context: OperationContext) -> str | None:
        if not is_blank(self.msbuild_tools_path):
            self.log_debug(f"MSBuildToolsPath: {self.msbuild_tools_path}")
            return self.msbuild_tools_path

        if context.config.msbuild_tools_path:
            self.log_debug(f"MSBuildToolsPath: {context.config.msbuild_tools_path}")
            return context.config.msbuild_tools_path

        path = await find_using_vswhere(self, context, MSBUILD_REQUIREMENTS)
        if path:
            self.log_debug(f"MSBuildToolsPath: {path}")
            return path

        self.log_debug("Could not find MSBuildToolsPath using vswhere.exe, falling back to registry...")
        path = find_msbuild_using_registry() if context.is_windows else None
        if path:
            self.log_debug(f"MSBuildToolsPath: {path}")
            return path

        self.log_error(MSBUILD_NOT_FOUND)
        return None

    def build_arguments(self, context: OperationContext, project: str) -> list[str]:
        config = f"Configuration={self.configuration}"
        if not is_blank(self.platform):
            config += f";Platform={self.platform}"
        properties = ";".join(p for p in self.msbuild_properties if p and p.strip())
        if properties:
            config += f";{properties}"

        argv = [project, f"/p:{config}"]
        if not is_blank(self.target_directory):
            target = context.resolve_path(self.target_directory).rstrip("\\")
            argv.append(f"/p:OutDir={target}\\")
        argv += split_arguments(self.additional_arguments, windows=context.is_windows)
        return argv

    async def execute(self, context: OperationContext) -> None:
        project = context.resolve_path(self.project_path)
        self.log_info(f"Building {project}...")

        working_dir = (ntpath if context.is_windows else os.path).dirname(project)
        if not context.directory_exists(working_dir):
            raise OperationError(f"Directory {working_dir} does not exist.")

        tools_path = await self.get_msbuild_tools_path(context)
        if tools_path is None:
            return

        msbuild = context.combine_path(tools_path, "MSBuild.exe" if context.is_windows else "msbuild")
        argv = [msbuild, *self.build_arguments(context, project)]
        self.log_debug(f"Process: {msbuild}")

        exit_code = await self.execute_command_line(context, argv, cwd=working_dir)
        if exit_code != 0:
            self.log_error(f"Build failed (msbuild returned {exit_code}).")
