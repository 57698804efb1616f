"""NuGet operations: Create-Package, Push and Restore-Packages."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import ClassVar

from ..arguments import is_blank, split_arguments, trim_directory_separator
from ..context import OperationContext
from ..locators.nuget import get_nuget_exe_path
from ..results.nuspec import read_nuspec
from .base import Operation
from .dotnet import DotNetOperation

logger = logging.getLogger(__name__)


@dataclass
class NuGetTool:
    """Executable used for NuGet commands."""

    exe_path: str
    is_nuget_exe: bool


@dataclass(kw_only=True)
class NuGetOperation(DotNetOperation):
    """Base for operations that run either nuget.exe or ``dotnet nuget``."""

    namespace: ClassVar[str] = "NuGet"

    nuget_exe_path: str | None = None
    """Full path to nuget.exe (Windows only)."""

    prefer_nuget_exe: bool = False
    """Use nuget.exe on Windows even when dotnet is available."""

    async def get_nuget_tool(self, context: OperationContext) -> NuGetTool | None:
        """Pick nuget.exe or dotnet for this server.

        nuget.exe is only considered on Windows, and only when preferred or
        when dotnet cannot be found.
        """
        dotnet = await self.get_dotnet_exe_path(context, log_error=False)

        if context.is_windows and (self.prefer_nuget_exe or not dotnet):
            nuget = await get_nuget_exe_path(context, self.nuget_exe_path)
            self.log_debug(f"Using nuget.exe at {nuget}")
            return NuGetTool(nuget, True)

        if not dotnet:
            self.log_error("Could find dotnet on this server.")
            return None
        return NuGetTool(dotnet, False)

    async def execute_nuget(
        self,
        context: OperationContext,
        tool: NuGetTool,
        args: list[str],
        cwd: str | None = None,
        secrets: tuple[str | None, ...] = (),
    ) -> int:
        argv = [tool.exe_path, *args, *self.extra_arguments(context)]
        return await self.execute_command_line(context, argv, cwd=cwd, secrets=secrets)


@dataclass(kw_only=True)
class CreateNuGetPackageOperation(Operation):
    """Creates a package from a .nuspec or project file with ``nuget.exe pack``."""

    namespace: ClassVar[str] = "NuGet"
    script_alias: ClassVar[str] = "Create-Package"
    summary: ClassVar[str] = "Creates a package using NuGet."

    project_path: str
    """The .nuspec or MSBuild project passed to nuget.exe."""

    verbose: bool = False
    version: str | None = None
    symbols: bool = False
    build: bool = False
    properties: list[str] = field(default_factory=list)
    """MSBuild properties (PROP=VALUE) used with build."""

    include_referenced_projects: bool = False
    output_directory: str | None = None
    source_directory: str | None = None
    """Working directory for nuget.exe (defaults to the working directory)."""

    nuget_exe_path: str | None = None
    additional_arguments: str | None = None

    def describe(self) -> str:
        return f"Create NuGet package from {self.project_path} in {self.output_directory or '.'}"

    def log_process_output(self, text: str) -> None:
        if "Unable to find version " in text or text.startswith("WARNING: "):
            self.log_warning(text)
        else:
            super().log_process_output(text)

    def build_arguments(self, project: str, source_dir: str, output_dir: str) -> list[str]:
        is_nuspec = project.lower().endswith(".nuspec")
        argv = [
            "pack",
            project,
            "-BasePath",
            trim_directory_separator(source_dir) or source_dir,
            "-OutputDirectory",
            trim_directory_separator(output_dir) or output_dir,
        ]
        if self.verbose:
            argv.append("-Verbose")
        if not is_blank(self.version):
            argv += ["-Version", self.version or ""]
        if self.symbols:
            argv.append("-Symbols")
        if self.include_referenced_projects:
            argv.append("-IncludeReferencedProjects")
        if self.build and not is_nuspec:
            argv.append("-Build")
        properties = [p for p in self.properties if p and p.strip()]
        if properties and not is_nuspec:
            argv += ["-Properties", ";".join(properties)]
        return argv

    def _log_nuspec(self, project: str) -> None:
        try:
            metadata = read_nuspec(project)
        except (ValueError, ET.ParseError) as e:
            self.log_warning(f"Could not read package metadata from {project}: {e}")
            return
        self.log_debug(f"Package {metadata.id} v{metadata.version} by {metadata.authors}")
        self.data["nuspec"] = metadata.to_dict()

    async def execute(self, context: OperationContext) -> None:
        nuget = await get_nuget_exe_path(context, self.nuget_exe_path)
        if not nuget:
            self.log_error("nuget.exe path was empty.")
            return

        source_dir = context.resolve_path(self.source_directory)
        output_dir = context.resolve_path(self.output_directory, self.source_directory)
        project = context.resolve_path(self.project_path, self.source_directory)

        if not context.file_exists(project):
            self.log_error(f"{project} does not exist.")
            return

        if project.lower().endswith(".nuspec"):
            self._log_nuspec(project)

        context.ensure_directory(output_dir)
        self.log_info(f"Creating NuGet package from {project} to {output_dir}...")

        argv = [
            nuget,
            *self.build_arguments(project, source_dir, output_dir),
            *split_arguments(self.additional_arguments, windows=context.is_windows),
        ]
        exit_code = await self.execute_command_line(context, argv, cwd=source_dir)
        if exit_code != 0:
            self.log_error(f"NuGet.exe exited with code {exit_code}")


@dataclass(kw_only=True)
class PushNuGetPackageOperation(NuGetOperation):
    """Publishes a package file to a NuGet feed."""

    script_alias: ClassVar[str] = "Push"
    summary: ClassVar[str] = "Publishes a NuGet package file to a NuGet package source."

    package_path: str
    package_source: str | None = None
    """Named package source from DOTNETOPS_PACKAGE_SOURCES."""

    api_endpoint_url: str | None = None
    user_name: str | None = None
    password: str | None = field(default=None, repr=False)
    api_key: str | None = field(default=None, repr=False)

    def describe(self) -> str:
        target = self.package_source or self.api_endpoint_url or "(no source)"
        return f"Push NuGet package {self.package_path} to {target}"

    def resolve_api_key(self) -> str | None:
        """Fold username/password into the API key when no key is set."""
        api_key = self.api_key or None
        if not is_blank(self.user_name):
            if not self.password:
                self.log_warning("Username specified but password is blank.")
            if not api_key:
                api_key = f"{self.user_name}:{self.password or ''}"
            else:
                self.log_warning("ApiKey is specified, so Username/Password will be ignored")
        return api_key

    def push_arguments(self, tool: NuGetTool, package: str, url: str, api_key: str | None) -> list[str]:
        if tool.is_nuget_exe:
            argv = ["push", package]
            if api_key:
                argv += ["-ApiKey", api_key]
            return argv + ["-Source", url, "-NonInteractive"]

        argv = ["nuget", "push", package]
        if api_key:
            argv += ["--api-key", api_key]
        return argv + ["--source", url]

    async def execute(self, context: OperationContext) -> None:
        if is_blank(self.package_path):
            self.log_error('Missing required argument "Package".')
            return

        package = context.resolve_path(self.package_path)
        if not context.file_exists(package):
            self.log_error(f"Package file {package} not found.")
            return

        url = self.api_endpoint_url
        if not is_blank(self.package_source):
            self.log_debug(f"Using package source: {self.package_source}")
            url = self.resolve_package_source(context, self.package_source)
            if url is None:
                return

        if is_blank(url):
            self.log_error(
                "No Url was specified to push a package to; you must either set a package source or the argument."
            )
            return

        api_key = self.resolve_api_key()
        tool = await self.get_nuget_tool(context)
        if tool is None:
            return

        self.log_info(f"Pushing package {package}...")
        argv = self.push_arguments(tool, package, url or "", api_key)
        exit_code = await self.execute_nuget(
            context, tool, argv, cwd=context.working_directory, secrets=(api_key,)
        )
        if exit_code != 0:
            self.log_error(f"NuGet exited with code {exit_code}")


@dataclass(kw_only=True)
class RestoreNuGetPackagesOperation(NuGetOperation):
    """Restores the packages of a solution, project or packages.config."""

    script_alias: ClassVar[str] = "Restore-Packages"
    summary: ClassVar[str] = "Restores all packages in a specified solution, project, or packages.config file."

    target: str | None = None
    packages_directory: str | None = None
    package_source: str | None = None

    def describe(self) -> str:
        return f"Restore NuGet packages for {self.target or 'the working directory'}"

    def restore_arguments(
        self, tool: NuGetTool, target: str | None, packages_dir: str | None, source: str | None
    ) -> list[str]:
        argv = ["restore"]
        if target:
            argv.append(trim_directory_separator(target) or target)
        if packages_dir:
            argv += [
                "-PackagesDirectory" if tool.is_nuget_exe else "--packages",
                trim_directory_separator(packages_dir) or packages_dir,
            ]
        if source:
            argv += ["-Source" if tool.is_nuget_exe else "--source", source]
        return argv

    async def execute(self, context: OperationContext) -> None:
        source: str | None = None
        if not is_blank(self.package_source):
            self.log_debug(f'Resolving package source "{self.package_source}"...')
            source = self.resolve_package_source(context, self.package_source)
            if source is None:
                return

        tool = await self.get_nuget_tool(context)
        if tool is None:
            return

        target = context.resolve_path(self.target)
        packages_dir = context.resolve_path(self.packages_directory) if not is_blank(self.packages_directory) else None

        self.log_info(f"Restoring packages for {target}...")
        argv = self.restore_arguments(tool, target, packages_dir, source)
        exit_code = await self.execute_nuget(context, tool, argv)
        if exit_code != 0:
            self.log_error(f"NuGet exited with code {exit_code}")

        self.log_info("Done restoring packages.")
