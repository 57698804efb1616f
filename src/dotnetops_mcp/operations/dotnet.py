"""dotnet CLI operations: Build, Publish, Pack, Test and Tool."""

from __future__ import annotations

import logging
import os
import re
import uuid
import zipfile
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar

from ..arguments import is_blank, split_arguments
from ..context import OperationContext
from ..locators.dotnet import find_dotnet_paths, install_dotnet
from ..locators.vswhere import MSBUILD_REQUIREMENTS, find_using_vswhere
from ..results.trx import record_unit_test_results
from .base import Operation

logger = logging.getLogger(__name__)

WARNING_PATTERN = re.compile(r"\bwarning\b")

NOTHING_TO_RESTORE = "Nothing to do. None of the projects specified contain packages to restore."
WEB_TARGETS_PATTERN = re.compile(
    r"(error MSB4019: The imported project)(.*)(Web(Applications)?\\Microsoft\.)(.*)(\.targets)"
)
MSB4062 = "error MSB4062"

DOTNET_NOT_FOUND_TIP = (
    "[TIP] This error usually means that the .NET SDK is not installed on this server. "
    "Try downloading/installing .NET SDK on this server or set ensure_dotnet_installed "
    "to have dotnet installed when running this operation, and retry the build. "
    "If .NET is installed, set DOTNETOPS_DOTNET_PATH to the location of dotnet.exe "
    "(or dotnet on Linux)."
)
EXAMPLE_VSTOOLS_PATH = (
    r"C:\Program Files\Microsoft Visual Studio\2022\Enterprise\MSBuild\Microsoft\VisualStudio\v17.0"
)


class DotNetVerbosity(str, Enum):
    """dotnet --verbosity levels."""

    QUIET = "quiet"
    MINIMAL = "minimal"
    NORMAL = "normal"
    DETAILED = "detailed"
    DIAGNOSTIC = "diagnostic"


@dataclass(kw_only=True)
class DotNetOperation(Operation):
    """Base for operations that run the dotnet CLI."""

    namespace: ClassVar[str] = "DotNet"

    additional_arguments: str | None = None
    """Extra arguments appended to the command line."""

    ensure_dotnet_installed: str | None = None
    """Run dotnet-install first: "auto" (follow global.json) or a channel."""

    dotnet_path: str | None = None
    """Full path of dotnet; discovered when not set."""

    def log_process_output(self, text: str) -> None:
        if WARNING_PATTERN.search(text):
            self.log_warning(text)
        else:
            self.log_debug(text)

    def extra_arguments(self, context: OperationContext) -> list[str]:
        return split_arguments(self.additional_arguments, windows=context.is_windows)

    async def get_dotnet_exe_path(
        self,
        context: OperationContext,
        project_path: str | None = None,
        log_error: bool = True,
    ) -> str | None:
        """Resolve the dotnet executable.

        Order: explicit path, DOTNETOPS_DOTNET_PATH, discovery (after
        running dotnet-install when requested).
        """
        if not is_blank(self.dotnet_path):
            self.log_debug(f"dotnet path specified as: {self.dotnet_path}")
            return self.dotnet_path

        if context.config.dotnet_path:
            self.log_debug(f"dotnet path configured as: {context.config.dotnet_path}")
            return context.config.dotnet_path

        if not is_blank(self.ensure_dotnet_installed):
            await install_dotnet(self, context, project_path, self.ensure_dotnet_installed or "")

        self.log_debug("dotnet path is not specified; attempting to find dotnet...")
        async for path in find_dotnet_paths(context, self.log):
            self.log_debug(f"dotnet path: {path}")
            return path

        if log_error:
            self.log_error("Could find dotnet on this server.")
            self.log_info(DOTNET_NOT_FOUND_TIP)
        return None

    def append_package_source(
        self, context: OperationContext, argv: list[str], value: str | None, option: str = "--source"
    ) -> bool:
        """Append a resolved package source; False when it could not be resolved."""
        if is_blank(value):
            return True
        url = self.resolve_package_source(context, value)
        if url is None:
            return False
        argv += [option, url]
        return True


@dataclass(kw_only=True)
class DotNetBuildOrPublishOperation(DotNetOperation):
    """Shared implementation of ``dotnet build`` and ``dotnet publish``."""

    command_name: ClassVar[str] = ""

    project_path: str
    """Project file, solution file, or a directory containing one."""

    configuration: str | None = None
    package_source: str | None = None
    """NuGet source used to restore packages (name, URL or path)."""

    version: str | None = None
    framework: str | None = None
    runtime: str | None = None
    output: str | None = None
    """Output directory for the build."""

    vs_tools_path: str | None = None
    """MSBuild VSToolsPath: "embedded", "search" or a directory."""

    force: bool = False
    """Force dependency resolution."""

    verbosity: DotNetVerbosity = DotNetVerbosity.MINIMAL
    continuous_integration_build: bool = True

    _nothing_to_do: bool = field(default=False, init=False, repr=False, compare=False)
    _web_targets: bool = field(default=False, init=False, repr=False, compare=False)
    _msb4062: bool = field(default=False, init=False, repr=False, compare=False)

    def describe(self) -> str:
        text = f"dotnet {self.command_name} {self.project_path}"
        details = []
        if not is_blank(self.framework):
            details.append(f"Framework: {self.framework}")
        if not is_blank(self.output):
            details.append(f"Output: {self.output}")
        if details:
            text += f" ({', '.join(details)})"
        return text

    def _watch(self, text: str) -> None:
        if not self._nothing_to_do and NOTHING_TO_RESTORE in text:
            self._nothing_to_do = True
        if not self._web_targets and WEB_TARGETS_PATTERN.search(text):
            self._web_targets = True
        if not self._msb4062 and MSB4062 in text:
            self._msb4062 = True

    def log_process_output(self, text: str) -> None:
        self._watch(text)
        super().log_process_output(text)

    def log_process_error(self, text: str) -> None:
        self._watch(text)
        super().log_process_error(text)

    async def resolve_vs_tools_path(self, context: OperationContext) -> str | None:
        value = (self.vs_tools_path or "").strip()
        if value == "embedded":
            zip_path = context.config.vs_targets_zip
            if not zip_path or not os.path.isfile(zip_path):
                self.log_warning(
                    "VSToolsPath is set to \"embedded\", but DOTNETOPS_VSTARGETS_ZIP "
                    "does not name a targets archive."
                )
                return None
            target = os.path.join(context.ext_directory, "vstools")
            self.log_debug(f"Extracting {zip_path} to {target}...")
            with zipfile.ZipFile(zip_path) as archive:
                archive.extractall(target)
            return target

        if value == "search":
            self.log_debug('VSToolsPath is set to "search", so using vswhere.exe to search...')
            found = await find_using_vswhere(self, context, MSBUILD_REQUIREMENTS)
            if found is None:
                self.log_warning('VSToolsPath is set to "search", but a location could not be found.')
            else:
                self.log_debug(f"Found path: {found}")
            return found

        return value or None

    async def execute(self, context: OperationContext) -> None:
        self._nothing_to_do = self._web_targets = self._msb4062 = False

        project_path = context.resolve_path(self.project_path)
        dotnet = await self.get_dotnet_exe_path(context, project_path)
        if not dotnet:
            return

        argv = [dotnet, self.command_name, project_path]
        if not is_blank(self.configuration):
            argv += ["--configuration", self.configuration]
        if not is_blank(self.framework):
            argv += ["--framework", self.framework]
        if not is_blank(self.runtime):
            argv += ["--runtime", self.runtime]
        if not is_blank(self.output):
            argv += ["--output", context.resolve_path(self.output)]
        if not is_blank(self.version):
            argv.append(f"-p:Version={self.version}")

        if not is_blank(self.vs_tools_path):
            vs_tools = await self.resolve_vs_tools_path(context)
            if vs_tools:
                argv.append(f"-p:VSToolsPath={vs_tools}")

        if self.force:
            argv.append("--force")
        if self.verbosity != DotNetVerbosity.MINIMAL:
            argv += ["--verbosity", DotNetVerbosity(self.verbosity).value]
        if not self.append_package_source(context, argv, self.package_source):
            return
        if self.continuous_integration_build:
            argv.append("-p:ContinuousIntegrationBuild=true")
        argv += self.extra_arguments(context)

        self.ensure_working_directory(context)
        exit_code = await self.execute_command_line(context, argv)

        if exit_code == 0:
            self.log_debug("dotnet exited successfully (exitcode=0)")
            return

        self.log_error(f"dotnet did not exit successfully (exitcode={exit_code}).")
        self._log_failure_tips()

    def _log_failure_tips(self) -> None:
        if self._nothing_to_do and not is_blank(self.package_source):
            self.log_info(
                "[TIP] It doesn't look like any NuGet packages were restored during the build process. "
                f"This usually means that the package source specified ({self.package_source}) "
                "does not contain the required packages, which may lead to this build error."
            )

        if self._web_targets and is_blank(self.vs_tools_path):
            self.log_info(
                "[TIP] It looks like this project requires MSBuild targets that are typically part of "
                'Visual Studio. To resolve this, set vs_tools_path to "embedded", which will instruct '
                "MSBuild to use the common MSBuild targets from DOTNETOPS_VSTARGETS_ZIP."
            )
        elif self._msb4062 or self._web_targets:
            if (self.vs_tools_path or "").strip() == "embedded":
                self.log_info(
                    '[TIP] Unfortunately, it looks like "embedded" didn\'t work as the VSToolsPath. '
                    'If Visual Studio is installed on this server, try using "search" or entering the '
                    f"location (e.g. {EXAMPLE_VSTOOLS_PATH}) and then DevEnv::Build (which uses Visual "
                    "Studio). If Visual Studio is not installed, try using the MSBuild::Build-Project "
                    "operation first."
                )
            else:
                self.log_info(
                    "[TIP] Unfortunately, it looks like dotnet still isn't able to resolve the targets "
                    "specified in VSToolsPath. Try switching to the MSBuild::Build-Project or "
                    "DevEnv::Build operation instead."
                )


@dataclass(kw_only=True)
class DotNetBuildOperation(DotNetBuildOrPublishOperation):
    """Builds a project or solution using ``dotnet build``."""

    script_alias: ClassVar[str] = "Build"
    summary: ClassVar[str] = "Builds a .NET Core/Framework/Standard project using dotnet build."
    command_name: ClassVar[str] = "build"


@dataclass(kw_only=True)
class DotNetPublishOperation(DotNetBuildOrPublishOperation):
    """Publishes a project using ``dotnet publish``."""

    script_alias: ClassVar[str] = "Publish"
    summary: ClassVar[str] = "Publishes a .NET Core/Framework/Standard project using dotnet publish."
    command_name: ClassVar[str] = "publish"


@dataclass(kw_only=True)
class DotNetPackOperation(DotNetOperation):
    """Creates a NuGet package using ``dotnet pack``."""

    script_alias: ClassVar[str] = "Pack"
    summary: ClassVar[str] = "Creates a NuGet package from a .NET project using dotnet pack."

    project_path: str
    configuration: str | None = None
    package_source: str | None = None
    output: str | None = None
    """Directory to place built packages in."""

    package_id: str | None = None
    package_version: str | None = None
    version_suffix: str | None = None
    include_symbols: bool = False
    include_source: bool = False
    verbosity: DotNetVerbosity = DotNetVerbosity.MINIMAL
    force: bool = False

    def describe(self) -> str:
        text = f"dotnet pack {self.project_path}"
        if not is_blank(self.output):
            text += f" (Output: {self.output})"
        return text

    async def execute(self, context: OperationContext) -> None:
        project_path = context.resolve_path(self.project_path)
        dotnet = await self.get_dotnet_exe_path(context, project_path)
        if not dotnet:
            return

        argv = [dotnet, "pack", project_path]
        if not is_blank(self.configuration):
            argv += ["--configuration", self.configuration]
        if not is_blank(self.output):
            argv += ["--output", self.output]
        if not is_blank(self.package_id):
            argv.append(f"-p:PackageID={self.package_id}")
        if not is_blank(self.package_version):
            argv.append(f"-p:PackageVersion={self.package_version}")
        if not is_blank(self.version_suffix):
            argv += ["--version-suffix", self.version_suffix]
        if self.include_symbols:
            argv.append("--include-symbols")
        if self.include_source:
            argv.append("--include-source")
        if self.verbosity != DotNetVerbosity.MINIMAL:
            argv += ["--verbosity", DotNetVerbosity(self.verbosity).value]
        if self.force:
            argv.append("--force")
        if not self.append_package_source(context, argv, self.package_source):
            return
        argv += self.extra_arguments(context)

        self.ensure_working_directory(context)
        exit_code = await self.execute_command_line(context, argv)

        message = f"dotnet exit code: {exit_code}"
        if exit_code == 0:
            self.log_debug(message)
        else:
            self.log_error(message)


@dataclass(kw_only=True)
class DotNetTestOperation(DotNetOperation):
    """Runs unit tests using ``dotnet test`` and records the results."""

    script_alias: ClassVar[str] = "Test"
    summary: ClassVar[str] = "Runs unit tests on a specified test project using dotnet test."

    project_path: str
    configuration: str | None = None
    package_source: str | None = None
    test_group: str | None = None
    framework: str | None = None

    def describe(self) -> str:
        text = f"dotnet test {self.project_path}"
        if not is_blank(self.framework):
            text += f" (Framework: {self.framework})"
        return text

    async def execute(self, context: OperationContext) -> None:
        project_path = context.resolve_path(self.project_path)
        dotnet = await self.get_dotnet_exe_path(context, project_path)
        if not dotnet:
            return

        trx_path = os.path.join(context.temp_directory, f"{uuid.uuid4().hex}.trx")

        argv = [dotnet, "test", project_path]
        if not is_blank(self.configuration):
            argv += ["--configuration", self.configuration]
        if not is_blank(self.framework):
            argv += ["--framework", self.framework]
        argv += ["--logger", f"trx;LogFileName={trx_path}"]
        if not self.append_package_source(context, argv, self.package_source):
            return
        argv += self.extra_arguments(context)

        self.ensure_working_directory(context)
        exit_code = await self.execute_command_line(context, argv)

        message = f"dotnet exit code: {exit_code}"
        if exit_code == 0:
            self.log_debug(message)
        else:
            self.log_error(message)

        self.tests = record_unit_test_results(self.log, trx_path, self.test_group)
        self.data["trxFile"] = trx_path


@dataclass
class ToolInfo:
    """Installed dotnet tool."""

    id: str
    version: str


def parse_tool_list(output: str) -> list[ToolInfo]:
    """Parse ``dotnet tool list`` output (rows after the ``--`` separator)."""
    tools: list[ToolInfo] = []
    in_table = False
    for line in output.splitlines():
        if not in_table:
            if line.startswith("--"):
                in_table = True
            continue
        parts = line.split()
        if len(parts) >= 2:
            tools.append(ToolInfo(parts[0], parts[1]))
    return tools


def has_local_manifest(path: str | None) -> bool:
    """Whether ``.config/dotnet-tools.json`` exists at or above a directory."""
    while path:
        if os.path.isfile(os.path.join(path, ".config", "dotnet-tools.json")):
            return True
        parent = os.path.dirname(path)
        if parent == path:
            return False
        path = parent
    return False


@dataclass(kw_only=True)
class DotNetToolOperation(DotNetOperation):
    """Runs a dotnet tool, installing or updating it first when asked."""

    script_alias: ClassVar[str] = "Tool"
    summary: ClassVar[str] = "Runs a dotnet tool, optionally ensuring that it is installed."

    command: str
    command_arguments: str | None = None
    global_tool: bool = False
    """Use a global tool instead of the local tool manifest."""

    package_id: str | None = None
    version: str | None = None
    """Tool version, "latest" or "latest-prerelease"."""

    package_source: str | None = None

    def describe(self) -> str:
        text = f"dotnet tool {self.command} {self.command_arguments or ''}".rstrip()
        if not is_blank(self.package_id):
            text += f" (install {self.package_id}-{self.version or 'latest'} if necessary)"
        return text

    async def get_installed_tools(self, context: OperationContext, dotnet: str) -> list[ToolInfo]:
        scope = "--global" if self.global_tool else "--local"
        result = await context.runner.run(
            [dotnet, "tool", "list", scope],
            cwd=context.working_directory,
            env=context.child_environment(),
            timeout=context.config.timeout,
        )
        if result.stderr:
            self.log_debug(result.stderr)
        return parse_tool_list(result.stdout)

    def _id_and_version(self) -> list[str]:
        argv = [self.package_id or ""]
        version = (self.version or "").strip()
        if version.lower() == "latest-prerelease":
            argv.append("--prerelease")
        elif version and version.lower() != "latest":
            argv += ["--version", version]
        argv.append("--global" if self.global_tool else "--local")
        return argv

    async def install_or_update(self, context: OperationContext, dotnet: str) -> bool:
        """Make sure the requested tool version is installed.

        Returns:
            False when a dotnet command failed
        """
        tools = await self.get_installed_tools(context, dotnet)
        wanted = (self.package_id or "").lower()
        match = next((t for t in tools if t.id.lower() == wanted), None)

        if match is None:
            if not self.global_tool and not tools and not has_local_manifest(context.working_directory):
                exit_code = await self.execute_command_line(
                    context, [dotnet, "new", "tool-manifest"]
                )
                if exit_code != 0:
                    self.log_error(f"dotnet exited with error: {exit_code}")
                    return False
            action = "install"
        else:
            if match.version.lower() == (self.version or "").strip().lower():
                self.log_info(f"{self.package_id} v{match.version} is already installed.")
                return True
            action = "update"

        argv = [dotnet, "tool", action, *self._id_and_version()]
        if not self.append_package_source(context, argv, self.package_source, "--add-source"):
            return False

        exit_code = await self.execute_command_line(context, argv)
        if exit_code != 0:
            self.log_error(f"dotnet exited with error: {exit_code}")
            return False

        self.log_info("Tool installed.")
        return True

    async def execute(self, context: OperationContext) -> None:
        dotnet = await self.get_dotnet_exe_path(context, context.working_directory)
        if not dotnet:
            return

        if not is_blank(self.package_id) and not await self.install_or_update(context, dotnet):
            return

        self.log_info(f"Running dotnet command: {self.command}")
        arguments = split_arguments(self.command_arguments, windows=context.is_windows)
        if self.global_tool:
            argv = [self.command, *arguments]
        else:
            argv = [dotnet, "tool", "run", self.command, *arguments]

        exit_code = await self.execute_command_line(context, argv)
        if exit_code != 0:
            self.log_error(f"dotnet exited with error: {exit_code}")
