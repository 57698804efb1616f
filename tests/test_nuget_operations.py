"""Tests for NuGet operations."""

import dataclasses

import pytest

from conftest import FakeRunner
from dotnetops_mcp.arguments import MASK
from dotnetops_mcp.operations.nuget import (
    CreateNuGetPackageOperation,
    NuGetTool,
    PushNuGetPackageOperation,
    RestoreNuGetPackagesOperation,
)
from dotnetops_mcp.process import ProcessResult
from dotnetops_mcp.results.state import MessageLevel

DOTNET = "/usr/share/dotnet/dotnet"
FEED = "https://nuget.example.com/v3/index.json"

NUSPEC = """<?xml version="1.0"?>
<package xmlns="http://schemas.microsoft.com/packaging/2013/05/nuspec.xsd">
  <metadata>
    <id>Contoso.Lib</id>
    <version>1.0.0</version>
    <authors>Contoso</authors>
    <description>Library</description>
  </metadata>
</package>
"""


def log_text(result):
    return "\n".join(m.message for m in result.messages)


class TestCreateNuGetPackage:
    """Tests for NuGet::Create-Package."""

    @pytest.mark.asyncio
    async def test_nuspec(self, make_context, runner, workspace):
        """Test packing a .nuspec file."""
        (workspace / "Lib.nuspec").write_text(NUSPEC)
        operation = CreateNuGetPackageOperation(
            project_path="Lib.nuspec",
            output_directory="out",
            version="1.0.1",
            symbols=True,
            build=True,
            properties=["Configuration=Release"],
            nuget_exe_path="/tools/nuget.exe",
        )

        result = await operation.run(make_context())

        assert result.success
        assert runner.commands == [[
            "/tools/nuget.exe", "pack", str(workspace / "Lib.nuspec"),
            "-BasePath", str(workspace),
            "-OutputDirectory", str(workspace / "out"),
            "-Version", "1.0.1",
            "-Symbols",
        ]]
        assert (workspace / "out").is_dir()
        assert result.data["nuspec"]["id"] == "Contoso.Lib"

    @pytest.mark.asyncio
    async def test_project_with_build(self, make_context, runner, workspace):
        """Test project files take -Build and -Properties."""
        src = workspace / "src"
        src.mkdir()
        (src / "Lib.csproj").write_text("<Project />")
        operation = CreateNuGetPackageOperation(
            project_path="Lib.csproj",
            source_directory="src",
            build=True,
            verbose=True,
            include_referenced_projects=True,
            properties=["Configuration=Release", "Platform=AnyCPU"],
            nuget_exe_path="/tools/nuget.exe",
        )

        await operation.run(make_context())

        argv = runner.commands[0]
        assert argv[2] == str(src / "Lib.csproj")
        assert argv[3:7] == ["-BasePath", str(src), "-OutputDirectory", str(src)]
        assert argv[7:] == [
            "-Verbose", "-IncludeReferencedProjects", "-Build",
            "-Properties", "Configuration=Release;Platform=AnyCPU",
        ]
        assert runner.calls[0]["cwd"] == str(src)

    @pytest.mark.asyncio
    async def test_missing_source_file(self, make_context, runner, workspace):
        """Test a missing project fails before running nuget.exe."""
        operation = CreateNuGetPackageOperation(project_path="Lib.nuspec", nuget_exe_path="/tools/nuget.exe")

        result = await operation.run(make_context())

        assert result.error_messages == [f"{workspace / 'Lib.nuspec'} does not exist."]
        assert runner.calls == []

    @pytest.mark.asyncio
    async def test_nuget_warnings(self, make_context, workspace):
        """Test nuget.exe warnings are classified."""
        (workspace / "Lib.nuspec").write_text(NUSPEC)
        output = "WARNING: Description is required.\nUnable to find version '1.0' of package 'X'.\nDone"
        runner = FakeRunner(results=[ProcessResult(1, output)])
        operation = CreateNuGetPackageOperation(project_path="Lib.nuspec", nuget_exe_path="/tools/nuget.exe")

        result = await operation.run(make_context(runner=runner))

        warnings = [m.message for m in result.messages if m.level == MessageLevel.WARNING]
        assert len(warnings) == 2
        assert result.error_messages == ["NuGet.exe exited with code 1"]


class TestPushNuGetPackage:
    """Tests for NuGet::Push."""

    @pytest.fixture
    def package(self, workspace):
        path = workspace / "Lib.1.0.0.nupkg"
        path.write_bytes(b"PK")
        return path

    @pytest.mark.asyncio
    async def test_dotnet_push_masks_key(self, make_context, runner, package):
        """Test pushing with dotnet hides the API key in the log."""
        operation = PushNuGetPackageOperation(
            package_path="Lib.1.0.0.nupkg",
            api_endpoint_url=FEED,
            api_key="s3cr3t-key",
            dotnet_path=DOTNET,
        )

        result = await operation.run(make_context())

        assert result.success
        assert runner.commands == [[
            DOTNET, "nuget", "push", str(package), "--api-key", "s3cr3t-key", "--source", FEED,
        ]]
        text = log_text(result)
        assert "s3cr3t-key" not in text
        assert MASK in text

    @pytest.mark.asyncio
    async def test_named_source_and_credentials(self, make_context, runner, tool_config, package):
        """Test username and password become the API key."""
        config = dataclasses.replace(tool_config, package_sources={"internal": FEED})
        operation = PushNuGetPackageOperation(
            package_path=str(package),
            package_source="Internal",
            user_name="ci",
            password="pw",
            dotnet_path=DOTNET,
        )

        await operation.run(make_context(config=config))

        assert runner.commands[0][-4:] == ["--api-key", "ci:pw", "--source", FEED]

    @pytest.mark.asyncio
    async def test_no_key(self, make_context, runner, package):
        """Test the key option is omitted without credentials."""
        operation = PushNuGetPackageOperation(
            package_path=str(package), api_endpoint_url=FEED, dotnet_path=DOTNET
        )
        await operation.run(make_context())
        assert "--api-key" not in runner.commands[0]

    def test_api_key_wins_over_credentials(self):
        """Test an explicit key ignores username/password with a warning."""
        operation = PushNuGetPackageOperation(
            package_path="x.nupkg", api_key="key", user_name="ci", password="pw"
        )
        assert operation.resolve_api_key() == "key"
        assert operation.log.entries[-1].message == "ApiKey is specified, so Username/Password will be ignored"

    def test_nuget_exe_arguments(self):
        """Test nuget.exe push arguments."""
        operation = PushNuGetPackageOperation(package_path="x.nupkg")
        argv = operation.push_arguments(NuGetTool("nuget.exe", True), "C:\\x.nupkg", FEED, "key")
        assert argv == ["push", "C:\\x.nupkg", "-ApiKey", "key", "-Source", FEED, "-NonInteractive"]

    @pytest.mark.asyncio
    async def test_windows_prefers_nuget_exe(self, make_context, runner):
        """Test nuget.exe is used on Windows when preferred."""
        context = make_context(is_windows=True, working_directory="C:\\work")
        context.file_exists = lambda path: True
        operation = PushNuGetPackageOperation(
            package_path="Lib.1.0.0.nupkg",
            api_endpoint_url=FEED,
            api_key="key",
            prefer_nuget_exe=True,
            nuget_exe_path="C:\\tools\\nuget.exe",
        )

        result = await operation.run(context)

        assert result.success
        assert runner.commands == [[
            "C:\\tools\\nuget.exe", "push", "C:\\work\\Lib.1.0.0.nupkg",
            "-ApiKey", "key", "-Source", FEED, "-NonInteractive",
        ]]

    @pytest.mark.asyncio
    async def test_missing_package(self, make_context, runner, workspace):
        """Test a missing package file fails."""
        operation = PushNuGetPackageOperation(
            package_path="none.nupkg", api_endpoint_url=FEED, dotnet_path=DOTNET
        )
        result = await operation.run(make_context())

        assert result.error_messages == [f"Package file {workspace / 'none.nupkg'} not found."]
        assert runner.calls == []

    @pytest.mark.asyncio
    async def test_no_url(self, make_context, runner, package):
        """Test a push target is required."""
        operation = PushNuGetPackageOperation(package_path=str(package), dotnet_path=DOTNET)
        result = await operation.run(make_context())

        assert not result.success
        assert result.error_messages[0].startswith("No Url was specified")
        assert runner.calls == []

    @pytest.mark.asyncio
    async def test_push_failure(self, make_context, package):
        """Test a failed push."""
        runner = FakeRunner(results=[ProcessResult(1)])
        operation = PushNuGetPackageOperation(
            package_path=str(package), api_endpoint_url=FEED, dotnet_path=DOTNET
        )
        result = await operation.run(make_context(runner=runner))
        assert result.error_messages == ["NuGet exited with code 1"]


class TestRestoreNuGetPackages:
    """Tests for NuGet::Restore-Packages."""

    @pytest.mark.asyncio
    async def test_dotnet_restore(self, make_context, runner, workspace):
        """Test restoring with dotnet."""
        operation = RestoreNuGetPackagesOperation(
            target="App.sln",
            packages_directory="packages/",
            package_source=FEED,
            additional_arguments="--no-cache",
            dotnet_path=DOTNET,
        )

        result = await operation.run(make_context())

        assert result.success
        assert runner.commands == [[
            DOTNET, "restore", str(workspace / "App.sln"),
            "--packages", str(workspace / "packages"),
            "--source", FEED,
            "--no-cache",
        ]]
        assert result.messages[-1].message == "Done restoring packages."

    @pytest.mark.asyncio
    async def test_default_target(self, make_context, runner, workspace):
        """Test the working directory is restored by default."""
        operation = RestoreNuGetPackagesOperation(dotnet_path=DOTNET)
        await operation.run(make_context())
        assert runner.commands == [[DOTNET, "restore", str(workspace)]]

    def test_nuget_exe_arguments(self):
        """Test nuget.exe restore arguments."""
        operation = RestoreNuGetPackagesOperation()
        argv = operation.restore_arguments(
            NuGetTool("nuget.exe", True), "C:\\src\\App.sln", "C:\\packages\\", FEED
        )
        assert argv == [
            "restore", "C:\\src\\App.sln", "-PackagesDirectory", "C:\\packages", "-Source", FEED,
        ]

    @pytest.mark.asyncio
    async def test_unknown_source(self, make_context, runner):
        """Test an unknown package source fails before restoring."""
        operation = RestoreNuGetPackagesOperation(package_source="internal", dotnet_path=DOTNET)
        result = await operation.run(make_context())

        assert result.error_messages == ['Package source "internal" not found.']
        assert runner.calls == []

    @pytest.mark.asyncio
    async def test_no_dotnet_off_windows(self, make_context):
        """Test restore fails when dotnet is missing and nuget.exe is not an option."""
        runner = FakeRunner(results=[ProcessResult(1)])
        operation = RestoreNuGetPackagesOperation()

        result = await operation.run(make_context(runner=runner, environ={}))

        assert result.error_messages == ["Could find dotnet on this server."]
