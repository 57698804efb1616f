"""DevEnv::Build operation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import ClassVar

from ..arguments import is_blank, split_arguments
from ..context import OperationContext
from ..locators.vswhere import DEVENV_REQUIREMENTS, find_using_vswhere
from .base import Operation

logger = logging.getLogger(__name__)


@dataclass(kw_only=True)
class DevEnvBuildOperation(Operation):
    """Builds a project or solution with Visual Studio (devenv.exe)."""

    namespace: ClassVar[str] = "DevEnv"
    script_alias: ClassVar[str] = "Build"
    summary: ClassVar[str] = "Builds a project or solution using devenv.exe."

    project_path: str
    configuration: str = "Release"
    additional_arguments: str | None = None
    devenv_path: str | None = None

    def describe(self) -> str:
        return f"DevEnv.exe Build {self.project_path} ({self.configuration})."

    async def get_devenv_path(self, context: OperationContext) -> str | None:
        if not is_blank(self.devenv_path):
            return self.devenv_path
        if context.config.devenv_path:
            return context.config.devenv_path
        return await find_using_vswhere(self, context, DEVENV_REQUIREMENTS, return_file=True)

    async def execute(self, context: OperationContext) -> None:
        devenv = await self.get_devenv_path(context)
        if not devenv:
            self.log_error("DevEnvPath is not set and could not find devenv.exe using vswhere.")
            return

        argv = [
            devenv,
            context.resolve_path(self.project_path),
            "/build",
            self.configuration,
            *split_arguments(self.additional_arguments, windows=context.is_windows),
        ]
        exit_code = await self.execute_command_line(context, argv)
        if exit_code != 0:
            self.log_error(f"devenv.exe returned exit code {exit_code}.")
