"""MCP Server for .NET build, test and packaging operations."""

from __future__ import annotations

import json
import logging
import os
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import Context, FastMCP
from pydantic import AnyUrl

from .context import OperationContext
from .locators.tools import locate_tools as locate_installed_tools
from .manager import OperationManager
from .operations import (
    CreateNuGetPackageOperation,
    DevEnvBuildOperation,
    DotNetBuildOperation,
    DotNetPackOperation,
    DotNetPublishOperation,
    DotNetTestOperation,
    DotNetToolOperation,
    DotNetVerbosity,
    MSBuildBuildProjectOperation,
    Operation,
    PushNuGetPackageOperation,
    RestoreNuGetPackagesOperation,
    VSTestOperation,
)
from .results.state import OperationResult
from .results.trx import TestRunSummary, parse_trx
from .utils.project import get_project_root, get_project_root_sync

logger = logging.getLogger(__name__)

LAST_RESULT_URI = "dotnet://last-result"
TOOLS_URI = "dotnet://tools"

_initial_project_path: str | None = None


def result_response(result: OperationResult, include_debug: bool = False) -> dict[str, Any]:
    """Tool response for an operation result."""
    response: dict[str, Any] = {
        "success": result.success,
        "data": result.to_dict(include_debug=include_debug),
    }
    if not result.success:
        errors = result.error_messages
        response["error"] = errors[-1] if errors else f"{result.operation} {result.status.value}"
    return response


async def resolve_workspace(ctx: Context | None) -> str:
    """Working directory for an operation started from a tool call."""
    root = await get_project_root(ctx)
    if root is not None:
        return str(root)
    return _initial_project_path or os.getcwd()


def create_server(project_path: str | None = None) -> FastMCP:
    """Create and configure the MCP server.

    Args:
        project_path: Default working directory for operations. Client roots
            take precedence when the client announces them.
    """
    global _initial_project_path
    _initial_project_path = project_path
    mcp = FastMCP("dotnetops-mcp")
    manager = OperationManager()

    async def notify_result_changed(ctx: Context) -> None:
        """Notify client that dotnet://last-result has changed."""
        try:
            if ctx.session:
                await ctx.session.send_resource_updated(AnyUrl(LAST_RESULT_URI))
        except Exception as e:
            # Notification failure shouldn't break the tool
            logger.debug(f"Resource update notification failed: {e}")

    async def run_operation(ctx: Context, operation: Operation, include_debug: bool) -> dict:
        try:
            workspace = await resolve_workspace(ctx)
            result = await manager.run(workspace, operation)
        except Exception as e:
            logger.exception(f"{operation.qualified_name()} raised")
            return {"success": False, "error": str(e)}
        await notify_result_changed(ctx)
        return result_response(result, include_debug)

    # ============== dotnet ==============

    @mcp.tool()
    async def dotnet_build(
        ctx: Context,
        project: str,
        configuration: str | None = None,
        framework: str | None = None,
        runtime: str | None = None,
        output: str | None = None,
        version: str | None = None,
        package_source: str | None = None,
        vs_tools_path: str | None = None,
        force: bool = False,
        verbosity: DotNetVerbosity = DotNetVerbosity.MINIMAL,
        continuous_integration_build: bool = True,
        additional_arguments: str | None = None,
        ensure_dotnet_installed: str | None = None,
        dotnet_path: str | None = None,
        include_debug: bool = False,
    ) -> dict:
        """
        Build a project or solution with `dotnet build`.

        Args:
            project: Project file, solution file, or directory containing one
            configuration: Build configuration (e.g. Release)
            framework: Target framework (e.g. net8.0)
            runtime: Target runtime identifier (e.g. linux-x64)
            output: Output directory
            version: Sets -p:Version
            package_source: NuGet source name, URL or path used for restore
            vs_tools_path: "embedded", "search" or a VSToolsPath directory
            force: Force dependency resolution
            verbosity: quiet, minimal, normal, detailed or diagnostic
            continuous_integration_build: Sets -p:ContinuousIntegrationBuild=true
            additional_arguments: Extra dotnet arguments
            ensure_dotnet_installed: "auto" or an SDK channel to install first
            dotnet_path: Explicit dotnet executable
            include_debug: Include debug-level messages (full tool output)
        """
        return await run_operation(
            ctx,
            DotNetBuildOperation(
                project_path=project,
                configuration=configuration,
                framework=framework,
                runtime=runtime,
                output=output,
                version=version,
                package_source=package_source,
                vs_tools_path=vs_tools_path,
                force=force,
                verbosity=verbosity,
                continuous_integration_build=continuous_integration_build,
                additional_arguments=additional_arguments,
                ensure_dotnet_installed=ensure_dotnet_installed,
                dotnet_path=dotnet_path,
            ),
            include_debug,
        )

    @mcp.tool()
    async def dotnet_publish(
        ctx: Context,
        project: str,
        configuration: str | None = None,
        framework: str | None = None,
        runtime: str | None = None,
        output: str | None = None,
        version: str | None = None,
        package_source: str | None = None,
        vs_tools_path: str | None = None,
        force: bool = False,
        verbosity: DotNetVerbosity = DotNetVerbosity.MINIMAL,
        continuous_integration_build: bool = True,
        additional_arguments: str | None = None,
        ensure_dotnet_installed: str | None = None,
        dotnet_path: str | None = None,
        include_debug: bool = False,
    ) -> dict:
        """
        Publish a project with `dotnet publish`.

        Takes the same arguments as dotnet_build.
        """
        return await run_operation(
            ctx,
            DotNetPublishOperation(
                project_path=project,
                configuration=configuration,
                framework=framework,
                runtime=runtime,
                output=output,
                version=version,
                package_source=package_source,
                vs_tools_path=vs_tools_path,
                force=force,
                verbosity=verbosity,
                continuous_integration_build=continuous_integration_build,
                additional_arguments=additional_arguments,
                ensure_dotnet_installed=ensure_dotnet_installed,
                dotnet_path=dotnet_path,
            ),
            include_debug,
        )

    @mcp.tool()
    async def dotnet_pack(
        ctx: Context,
        project: str,
        configuration: str | None = None,
        output: str | None = None,
        package_id: str | None = None,
        package_version: str | None = None,
        version_suffix: str | None = None,
        include_symbols: bool = False,
        include_source: bool = False,
        package_source: str | None = None,
        force: bool = False,
        verbosity: DotNetVerbosity = DotNetVerbosity.MINIMAL,
        additional_arguments: str | None = None,
        ensure_dotnet_installed: str | None = None,
        dotnet_path: str | None = None,
        include_debug: bool = False,
    ) -> dict:
        """
        Create a NuGet package from a project with `dotnet pack`.

        Args:
            project: Project file, solution file, or directory containing one
            configuration: Build configuration
            output: Directory to place built packages in
            package_id: Sets -p:PackageID
            package_version: Sets -p:PackageVersion
            version_suffix: Version suffix (e.g. beta1)
            include_symbols: Also create a symbols package
            include_source: Include source files in the symbols package
            package_source: NuGet source name, URL or path used for restore
            force: Force dependency resolution
            verbosity: quiet, minimal, normal, detailed or diagnostic
            additional_arguments: Extra dotnet arguments
            ensure_dotnet_installed: "auto" or an SDK channel to install first
            dotnet_path: Explicit dotnet executable
            include_debug: Include debug-level messages
        """
        return await run_operation(
            ctx,
            DotNetPackOperation(
                project_path=project,
                configuration=configuration,
                output=output,
                package_id=package_id,
                package_version=package_version,
                version_suffix=version_suffix,
                include_symbols=include_symbols,
                include_source=include_source,
                package_source=package_source,
                force=force,
                verbosity=verbosity,
                additional_arguments=additional_arguments,
                ensure_dotnet_installed=ensure_dotnet_installed,
                dotnet_path=dotnet_path,
            ),
            include_debug,
        )

    @mcp.tool()
    async def dotnet_test(
        ctx: Context,
        project: str,
        configuration: str | None = None,
        framework: str | None = None,
        test_group: str | None = None,
        package_source: str | None = None,
        additional_arguments: str | None = None,
        ensure_dotnet_installed: str | None = None,
        dotnet_path: str | None = None,
        include_debug: bool = False,
    ) -> dict:
        """
        Run unit tests with `dotnet test` and return per-test results.

        Args:
            project: Test project, solution, or directory containing one
            configuration: Build configuration
            framework: Target framework
            test_group: Group recorded on each test result (default "Unit Tests")
            package_source: NuGet source name, URL or path used for restore
            additional_arguments: Extra dotnet arguments (e.g. --filter)
            ensure_dotnet_installed: "auto" or an SDK channel to install first
            dotnet_path: Explicit dotnet executable
            include_debug: Include debug-level messages
        """
        return await run_operation(
            ctx,
            DotNetTestOperation(
                project_path=project,
                configuration=configuration,
                framework=framework,
                test_group=test_group,
                package_source=package_source,
                additional_arguments=additional_arguments,
                ensure_dotnet_installed=ensure_dotnet_installed,
                dotnet_path=dotnet_path,
            ),
            include_debug,
        )

    @mcp.tool()
    async def dotnet_tool(
        ctx: Context,
        command: str,
        arguments: str | None = None,
        global_tool: bool = False,
        package_id: str | None = None,
        version: str | None = None,
        package_source: str | None = None,
        ensure_dotnet_installed: str | None = None,
        dotnet_path: str | None = None,
        include_debug: bool = False,
    ) -> dict:
        """
        Run a dotnet tool, installing or updating it first when package_id is given.

        Args:
            command: Tool command (e.g. dotnet-ef)
            arguments: Arguments passed to the tool
            global_tool: Use a global tool instead of the local manifest
            package_id: NuGet package id of the tool to install/update
            version: Tool version, "latest" or "latest-prerelease"
            package_source: Extra NuGet source for installation
            ensure_dotnet_installed: "auto" or an SDK channel to install first
            dotnet_path: Explicit dotnet executable
            include_debug: Include debug-level messages
        """
        return await run_operation(
            ctx,
            DotNetToolOperation(
                command=command,
                command_arguments=arguments,
                global_tool=global_tool,
                package_id=package_id,
                version=version,
                package_source=package_source,
                ensure_dotnet_installed=ensure_dotnet_installed,
                dotnet_path=dotnet_path,
            ),
            include_debug,
        )

    # ============== Visual Studio / MSBuild ==============

    @mcp.tool()
    async def msbuild_build_project(
        ctx: Context,
        project: str,
        configuration: str = "Release",
        platform: str | None = None,
        properties: list[str] | None = None,
        target_directory: str | None = None,
        additional_arguments: str | None = None,
        msbuild_tools_path: str | None = None,
        include_debug: bool = False,
    ) -> dict:
        """
        Build a project or solution with MSBuild.exe (Windows).

        Args:
            project: Project or solution file
            configuration: Build configuration
            platform: Target platform (e.g. x64)
            properties: Extra MSBuild properties as key=value
            target_directory: Output directory (/p:OutDir)
            additional_arguments: Extra MSBuild arguments
            msbuild_tools_path: Directory containing MSBuild.exe
            include_debug: Include debug-level messages
        """
        return await run_operation(
            ctx,
            MSBuildBuildProjectOperation(
                project_path=project,
                configuration=configuration,
                platform=platform,
                msbuild_properties=properties or [],
                target_directory=target_directory,
                additional_arguments=additional_arguments,
                msbuild_tools_path=msbuild_tools_path,
            ),
            include_debug,
        )

    @mcp.tool()
    async def devenv_build(
        ctx: Context,
        project: str,
        configuration: str = "Release",
        additional_arguments: str | None = None,
        devenv_path: str | None = None,
        include_debug: bool = False,
    ) -> dict:
        """
        Build a project or solution with Visual Studio's devenv.exe (Windows).

        Args:
            project: Project or solution file
            configuration: Build configuration
            additional_arguments: Extra devenv arguments
            devenv_path: Explicit devenv.exe path
            include_debug: Include debug-level messages
        """
        return await run_operation(
            ctx,
            DevEnvBuildOperation(
                project_path=project,
                configuration=configuration,
                additional_arguments=additional_arguments,
                devenv_path=devenv_path,
            ),
            include_debug,
        )

    @mcp.tool()
    async def vstest_run(
        ctx: Context,
        test_container: str,
        test_group: str | None = None,
        clear_existing_test_results: bool = False,
        additional_arguments: str | None = None,
        vstest_path: str | None = None,
        include_debug: bool = False,
    ) -> dict:
        """
        Run unit tests with vstest.console.exe (Windows) and return per-test results.

        Args:
            test_container: Test assembly
            test_group: Group recorded on each test result (default "Unit Tests")
            clear_existing_test_results: Empty TestResults before running
            additional_arguments: Extra vstest arguments
            vstest_path: Explicit vstest.console.exe path
            include_debug: Include debug-level messages
        """
        return await run_operation(
            ctx,
            VSTestOperation(
                test_container=test_container,
                test_group=test_group,
                clear_existing_test_results=clear_existing_test_results,
                additional_arguments=additional_arguments,
                vstest_path=vstest_path,
            ),
            include_debug,
        )

    # ============== NuGet ==============

    @mcp.tool()
    async def nuget_create_package(
        ctx: Context,
        source_file: str,
        output_directory: str | None = None,
        source_directory: str | None = None,
        version: str | None = None,
        verbose: bool = False,
        symbols: bool = False,
        build: bool = False,
        properties: list[str] | None = None,
        include_referenced_projects: bool = False,
        additional_arguments: str | None = None,
        nuget_exe_path: str | None = None,
        include_debug: bool = False,
    ) -> dict:
        """
        Create a NuGet package from a .nuspec or project with nuget.exe pack.

        Args:
            source_file: The .nuspec or project file
            output_directory: Package output directory
            source_directory: Base path and working directory
            version: Package version
            verbose: Pass -Verbose
            symbols: Pass -Symbols
            build: Build the project first (projects only)
            properties: MSBuild properties as PROP=VALUE (projects only)
            include_referenced_projects: Pass -IncludeReferencedProjects
            additional_arguments: Extra nuget.exe arguments
            nuget_exe_path: Explicit nuget.exe path
            include_debug: Include debug-level messages
        """
        return await run_operation(
            ctx,
            CreateNuGetPackageOperation(
                project_path=source_file,
                output_directory=output_directory,
                source_directory=source_directory,
                version=version,
                verbose=verbose,
                symbols=symbols,
                build=build,
                properties=properties or [],
                include_referenced_projects=include_referenced_projects,
                additional_arguments=additional_arguments,
                nuget_exe_path=nuget_exe_path,
            ),
            include_debug,
        )

    @mcp.tool()
    async def nuget_push_package(
        ctx: Context,
        package: str,
        package_source: str | None = None,
        api_endpoint_url: str | None = None,
        api_key: str | None = None,
        user_name: str | None = None,
        password: str | None = None,
        prefer_nuget_exe: bool = False,
        additional_arguments: str | None = None,
        include_debug: bool = False,
    ) -> dict:
        """
        Push a package file to a NuGet feed.

        Args:
            package: Package (.nupkg) file
            package_source: Configured package source name
            api_endpoint_url: Feed URL when no package source is given
            api_key: Feed API key
            user_name: Feed user (sent as user:password when no API key)
            password: Feed password
            prefer_nuget_exe: Use nuget.exe on Windows even if dotnet exists
            additional_arguments: Extra nuget arguments
            include_debug: Include debug-level messages
        """
        return await run_operation(
            ctx,
            PushNuGetPackageOperation(
                package_path=package,
                package_source=package_source,
                api_endpoint_url=api_endpoint_url,
                api_key=api_key,
                user_name=user_name,
                password=password,
                prefer_nuget_exe=prefer_nuget_exe,
                additional_arguments=additional_arguments,
            ),
            include_debug,
        )

    @mcp.tool()
    async def nuget_restore_packages(
        ctx: Context,
        target: str | None = None,
        packages_directory: str | None = None,
        package_source: str | None = None,
        prefer_nuget_exe: bool = False,
        additional_arguments: str | None = None,
        include_debug: bool = False,
    ) -> dict:
        """
        Restore packages for a solution, project or packages.config.

        Args:
            target: Solution, project, packages.config or directory (default: working directory)
            packages_directory: Where packages are restored to
            package_source: Package source name, URL or path
            prefer_nuget_exe: Use nuget.exe on Windows even if dotnet exists
            additional_arguments: Extra nuget arguments
            include_debug: Include debug-level messages
        """
        return await run_operation(
            ctx,
            RestoreNuGetPackagesOperation(
                target=target,
                packages_directory=packages_directory,
                package_source=package_source,
                prefer_nuget_exe=prefer_nuget_exe,
                additional_arguments=additional_arguments,
            ),
            include_debug,
        )

    # ============== Results and discovery ==============

    @mcp.tool()
    async def read_test_results(ctx: Context, trx_file: str, test_group: str | None = None) -> dict:
        """
        Parse a Visual Studio test results (.trx) file.

        Args:
            trx_file: Path to the .trx file (relative to the project root)
            test_group: Group recorded on each result (default "Unit Tests")
        """
        try:
            workspace = await resolve_workspace(ctx)
            path = Path(trx_file)
            if not path.is_absolute():
                path = Path(workspace) / path
            if not path.is_file():
                return {"success": False, "error": f"Test output file {path} does not exist."}
            results = parse_trx(path, group=test_group or "Unit Tests")
            return {
                "success": True,
                "data": {
                    "summary": TestRunSummary.from_results(results).to_dict(),
                    "tests": [r.to_dict() for r in results],
                },
            }
        except ET.ParseError as e:
            return {"success": False, "error": f"Invalid .trx file: {e}"}
        except Exception as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def locate_tools(ctx: Context) -> dict:
        """
        Show where dotnet, nuget.exe, MSBuild, vswhere, devenv and vstest would be taken from.
        Nothing is installed or downloaded.
        """
        try:
            workspace = await resolve_workspace(ctx)
            data = await locate_installed_tools(OperationContext(working_directory=workspace))
            return {"success": True, "data": data}
        except Exception as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def get_last_result(include_debug: bool = False) -> dict:
        """
        Get the result of the most recent operation.

        Args:
            include_debug: Include debug-level messages
        """
        result = manager.last_result()
        if result is None:
            return {"success": False, "error": "No operation has run yet"}
        return {"success": True, "data": result.to_dict(include_debug=include_debug)}

    @mcp.tool()
    async def cancel_operation() -> dict:
        """
        Kill the process of the operation currently running, if any.
        """
        cancelled = manager.cancel()
        return {"success": True, "data": {"cancelled": cancelled}}

    # ============== Resources ==============

    @mcp.resource(LAST_RESULT_URI, mime_type="application/json")
    async def last_result_resource() -> str:
        """Result of the most recent operation (JSON).

        Updates when: an operation finishes.
        """
        result = manager.last_result()
        if result is None:
            return json.dumps({"status": "none"}, indent=2)
        return json.dumps(result.to_dict(), indent=2)

    @mcp.resource(TOOLS_URI, mime_type="application/json")
    async def tools_resource() -> str:
        """Located external tools and configured package sources (JSON)."""
        root = get_project_root_sync()
        context = OperationContext(working_directory=root or _initial_project_path or os.getcwd())
        return json.dumps(await locate_installed_tools(context), indent=2)

    logger.info("dotnetops MCP Server initialized")
    return mcp
