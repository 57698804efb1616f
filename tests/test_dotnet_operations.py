"""Tests for dotnet build, publish, pack and test operations."""

import dataclasses
import os
import zipfile
from unittest.mock import AsyncMock

import pytest

from conftest import FakeRunner
from dotnetops_mcp.operations import dotnet as dotnet_ops
from dotnetops_mcp.operations.dotnet import (
    DotNetBuildOperation,
    DotNetPackOperation,
    DotNetPublishOperation,
    DotNetTestOperation,
    DotNetVerbosity,
)
from dotnetops_mcp.process import ProcessResult
from dotnetops_mcp.results.state import MessageLevel, OperationStatus
from dotnetops_mcp.results.trx import UnitTestStatus

DOTNET = "/usr/share/dotnet/dotnet"

WEB_TARGETS_ERROR = (
    "/src/Web.csproj(20,3): error MSB4019: The imported project "
    '"/usr/share/dotnet/sdk/8.0.100/Microsoft/VisualStudio/v17.0/WebApplications\\Microsoft.WebApplication.targets" '
    "was not found. [/src/Web.csproj]"
)


def messages(result, level):
    return [m.message for m in result.messages if m.level == level]


class TestDotNetBuild:
    """Tests for DotNet::Build."""

    @pytest.mark.asyncio
    async def test_full_command_line(self, make_context, runner, workspace):
        """Test every option is mapped to the dotnet command line."""
        operation = DotNetBuildOperation(
            project_path="App.sln",
            dotnet_path=DOTNET,
            configuration="Release",
            framework="net8.0",
            runtime="linux-x64",
            output="out",
            version="1.2.3",
            force=True,
            verbosity=DotNetVerbosity.DETAILED,
            package_source="https://api.nuget.org/v3/index.json",
            additional_arguments="--no-incremental -p:Foo=bar",
        )

        result = await operation.run(make_context())

        assert result.success
        assert runner.commands == [[
            DOTNET, "build", str(workspace / "App.sln"),
            "--configuration", "Release",
            "--framework", "net8.0",
            "--runtime", "linux-x64",
            "--output", str(workspace / "out"),
            "-p:Version=1.2.3",
            "--force",
            "--verbosity", "detailed",
            "--source", "https://api.nuget.org/v3/index.json",
            "-p:ContinuousIntegrationBuild=true",
            "--no-incremental", "-p:Foo=bar",
        ]]
        assert runner.calls[0]["cwd"] == str(workspace)

    @pytest.mark.asyncio
    async def test_minimal_command_line(self, make_context, runner, workspace):
        """Test defaults add only the CI build property."""
        operation = DotNetBuildOperation(
            project_path="App.sln", dotnet_path=DOTNET, continuous_integration_build=False
        )
        await operation.run(make_context())
        assert runner.commands == [[DOTNET, "build", str(workspace / "App.sln")]]

    @pytest.mark.asyncio
    async def test_publish_command(self, make_context, runner, workspace):
        """Test publish uses the publish verb."""
        operation = DotNetPublishOperation(project_path="App.csproj", dotnet_path=DOTNET)
        result = await operation.run(make_context())

        assert result.operation == "DotNet::Publish"
        assert runner.commands[0][:3] == [DOTNET, "publish", str(workspace / "App.csproj")]

    @pytest.mark.asyncio
    async def test_unknown_package_source(self, make_context, runner):
        """Test an unresolvable source stops before running dotnet."""
        operation = DotNetBuildOperation(
            project_path="App.sln", dotnet_path=DOTNET, package_source="internal"
        )
        result = await operation.run(make_context())

        assert result.status == OperationStatus.FAILED
        assert runner.calls == []
        assert result.error_messages == ['Package source "internal" not found.']

    @pytest.mark.asyncio
    async def test_warning_lines(self, make_context):
        """Test output lines containing "warning" are logged as warnings."""
        output = "Restoring packages\n/src/A.cs(1,1): warning CS0168: unused [/src/A.csproj]"
        runner = FakeRunner(results=[ProcessResult(0, output)])
        operation = DotNetBuildOperation(project_path="App.sln", dotnet_path=DOTNET)

        result = await operation.run(make_context(runner=runner))

        assert result.success
        assert messages(result, MessageLevel.WARNING) == [output.splitlines()[1]]
        assert len(result.warnings) == 1

    @pytest.mark.asyncio
    async def test_web_targets_tip(self, make_context):
        """Test missing web targets suggest the embedded VSToolsPath."""
        runner = FakeRunner(results=[ProcessResult(1, WEB_TARGETS_ERROR)])
        operation = DotNetBuildOperation(project_path="Web.csproj", dotnet_path=DOTNET)

        result = await operation.run(make_context(runner=runner))

        assert not result.success
        tips = [m for m in messages(result, MessageLevel.INFO) if m.startswith("[TIP]")]
        assert len(tips) == 1
        assert '"embedded"' in tips[0]

    @pytest.mark.asyncio
    async def test_web_targets_tip_after_embedded(self, make_context):
        """Test a different tip when embedded targets did not help."""
        runner = FakeRunner(results=[ProcessResult(1, WEB_TARGETS_ERROR)])
        operation = DotNetBuildOperation(
            project_path="Web.csproj", dotnet_path=DOTNET, vs_tools_path="embedded"
        )

        result = await operation.run(make_context(runner=runner))

        tips = [m for m in messages(result, MessageLevel.INFO) if m.startswith("[TIP]")]
        assert len(tips) == 1
        assert "didn't work" in tips[0]

    @pytest.mark.asyncio
    async def test_nothing_restored_tip(self, make_context):
        """Test a tip when a package source restored nothing."""
        output = (
            "Nothing to do. None of the projects specified contain packages to restore.\n"
            "error CS0246: The type or namespace name 'Newtonsoft' could not be found"
        )
        runner = FakeRunner(results=[ProcessResult(1, output)])
        operation = DotNetBuildOperation(
            project_path="App.sln", dotnet_path=DOTNET, package_source="https://feed/v3/index.json"
        )

        result = await operation.run(make_context(runner=runner))

        tips = [m for m in messages(result, MessageLevel.INFO) if m.startswith("[TIP]")]
        assert any("https://feed/v3/index.json" in t for t in tips)

    @pytest.mark.asyncio
    async def test_embedded_without_archive(self, make_context, runner):
        """Test embedded VSToolsPath without a targets archive warns and continues."""
        operation = DotNetBuildOperation(
            project_path="App.sln", dotnet_path=DOTNET, vs_tools_path="embedded"
        )
        result = await operation.run(make_context())

        assert result.success
        assert not any(a.startswith("-p:VSToolsPath=") for a in runner.commands[0])
        assert len(messages(result, MessageLevel.WARNING)) == 1

    @pytest.mark.asyncio
    async def test_embedded_archive_extracted(self, make_context, runner, tool_config, tmp_path):
        """Test embedded VSToolsPath extracts the targets archive."""
        archive = tmp_path / "vstargets.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("WebApplications/Microsoft.WebApplication.targets", "<Project />")
        config = dataclasses.replace(tool_config, vs_targets_zip=str(archive))
        context = make_context(config=config)
        operation = DotNetBuildOperation(
            project_path="App.sln", dotnet_path=DOTNET, vs_tools_path="embedded"
        )

        await operation.run(context)

        target = os.path.join(context.ext_directory, "vstools")
        assert f"-p:VSToolsPath={target}" in runner.commands[0]
        assert os.path.isfile(os.path.join(target, "WebApplications", "Microsoft.WebApplication.targets"))

    @pytest.mark.asyncio
    async def test_corrupt_embedded_archive_fails(self, make_context, runner, tool_config, tmp_path):
        """Test an unreadable targets archive gives a failed result instead of raising."""
        archive = tmp_path / "vstargets.zip"
        archive.write_text("not a zip")
        config = dataclasses.replace(tool_config, vs_targets_zip=str(archive))
        operation = DotNetBuildOperation(
            project_path="App.csproj", dotnet_path=DOTNET, vs_tools_path="embedded"
        )

        result = await operation.run(make_context(config=config))

        assert result.status == OperationStatus.FAILED
        assert result.error_messages == ["DotNet::Build failed: File is not a zip file"]
        assert runner.calls == []

    @pytest.mark.asyncio
    async def test_explicit_vs_tools_path(self, make_context, runner):
        """Test a literal VSToolsPath is passed through."""
        operation = DotNetBuildOperation(
            project_path="App.sln", dotnet_path=DOTNET, vs_tools_path="/opt/vstools"
        )
        await operation.run(make_context())
        assert "-p:VSToolsPath=/opt/vstools" in runner.commands[0]


class TestGetDotnetExePath:
    """Tests for dotnet executable resolution."""

    @pytest.mark.asyncio
    async def test_configured_path(self, make_context, runner, tool_config):
        """Test the configured dotnet is used when none is given."""
        config = dataclasses.replace(tool_config, dotnet_path="/opt/dotnet/dotnet")
        operation = DotNetBuildOperation(project_path="App.sln")

        await operation.run(make_context(config=config))

        assert runner.commands[0][0] == "/opt/dotnet/dotnet"

    @pytest.mark.asyncio
    async def test_discovered(self, make_context):
        """Test dotnet on PATH is discovered."""
        runner = FakeRunner(results=[ProcessResult(0), ProcessResult(0)])
        operation = DotNetBuildOperation(project_path="App.sln")

        result = await operation.run(make_context(runner=runner))

        assert result.success
        assert runner.commands[0] == ["dotnet", "--info"]
        assert runner.commands[1][:2] == ["dotnet", "build"]

    @pytest.mark.asyncio
    async def test_not_found(self, make_context):
        """Test a missing SDK fails with a tip."""
        runner = FakeRunner(results=[ProcessResult(1)])
        operation = DotNetBuildOperation(project_path="App.sln")

        result = await operation.run(make_context(runner=runner, environ={}))

        assert result.status == OperationStatus.FAILED
        assert result.error_messages == ["Could find dotnet on this server."]
        assert any("DOTNETOPS_DOTNET_PATH" in m for m in messages(result, MessageLevel.INFO))
        assert runner.commands == [["dotnet", "--info"]]

    @pytest.mark.asyncio
    async def test_ensure_installed(self, make_context, workspace, monkeypatch):
        """Test dotnet-install runs before discovery when requested."""
        install = AsyncMock()
        monkeypatch.setattr(dotnet_ops, "install_dotnet", install)
        runner = FakeRunner(results=[ProcessResult(0), ProcessResult(0)])
        context = make_context(runner=runner)
        operation = DotNetBuildOperation(project_path="App.sln", ensure_dotnet_installed="auto")

        result = await operation.run(context)

        assert result.success
        install.assert_awaited_once_with(operation, context, str(workspace / "App.sln"), "auto")


class TestDotNetPack:
    """Tests for DotNet::Pack."""

    @pytest.mark.asyncio
    async def test_command_line(self, make_context, runner, workspace):
        """Test pack options."""
        operation = DotNetPackOperation(
            project_path="Lib/Lib.csproj",
            dotnet_path=DOTNET,
            configuration="Release",
            output="artifacts",
            package_id="Contoso.Lib",
            package_version="2.0.0",
            version_suffix="beta1",
            include_symbols=True,
            include_source=True,
            force=True,
        )

        result = await operation.run(make_context())

        assert result.success
        assert runner.commands == [[
            DOTNET, "pack", str(workspace / "Lib" / "Lib.csproj"),
            "--configuration", "Release",
            "--output", "artifacts",
            "-p:PackageID=Contoso.Lib",
            "-p:PackageVersion=2.0.0",
            "--version-suffix", "beta1",
            "--include-symbols",
            "--include-source",
            "--force",
        ]]
        assert "dotnet exit code: 0" in messages(result, MessageLevel.DEBUG)

    @pytest.mark.asyncio
    async def test_failure(self, make_context):
        """Test non-zero exit fails pack."""
        runner = FakeRunner(results=[ProcessResult(1)])
        operation = DotNetPackOperation(project_path="Lib.csproj", dotnet_path=DOTNET)

        result = await operation.run(make_context(runner=runner))

        assert result.error_messages == ["dotnet exit code: 1"]


def trx_writer(content, exit_code=0):
    """Runner handler that writes a .trx file where dotnet test was told to."""

    def handler(argv):
        logger_arg = argv[argv.index("--logger") + 1]
        path = logger_arg.split("LogFileName=", 1)[1]
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)
        return ProcessResult(exit_code)

    return handler


class TestDotNetTest:
    """Tests for DotNet::Test."""

    @pytest.mark.asyncio
    async def test_records_results(self, make_context, workspace, tool_config, sample_trx):
        """Test .trx results are recorded on the result."""
        runner = FakeRunner(handler=trx_writer(sample_trx, exit_code=1))
        operation = DotNetTestOperation(
            project_path="Tests.csproj",
            dotnet_path=DOTNET,
            framework="net8.0",
            test_group="Calculator",
        )

        result = await operation.run(make_context(runner=runner))

        argv = runner.commands[0]
        assert argv[:3] == [DOTNET, "test", str(workspace / "Tests.csproj")]
        assert argv[3:5] == ["--framework", "net8.0"]
        assert argv[5] == "--logger"
        assert argv[6].startswith("trx;LogFileName=")

        trx_file = result.data["trxFile"]
        assert trx_file.startswith(str(tool_config.base_directory / "Temp"))
        assert trx_file.endswith(".trx")
        assert os.path.isfile(trx_file)

        assert not result.success
        assert [t.status for t in result.tests] == [
            UnitTestStatus.PASSED, UnitTestStatus.FAILED, UnitTestStatus.INCONCLUSIVE,
        ]
        assert {t.group for t in result.tests} == {"Calculator"}
        assert "One or more unit tests failed." in result.error_messages

    @pytest.mark.asyncio
    async def test_passing_run(self, make_context, passing_trx):
        """Test a passing run succeeds."""
        runner = FakeRunner(handler=trx_writer(passing_trx))
        operation = DotNetTestOperation(project_path="Tests.csproj", dotnet_path=DOTNET)

        result = await operation.run(make_context(runner=runner))

        assert result.success
        assert result.to_dict()["testSummary"]["passed"] == 1
        assert "Tests completed with no failures." in messages(result, MessageLevel.INFO)

    @pytest.mark.asyncio
    async def test_missing_results_file(self, make_context):
        """Test a run that produced no .trx file fails."""
        runner = FakeRunner(results=[ProcessResult(1, "", "Build FAILED.")])
        operation = DotNetTestOperation(project_path="Tests.csproj", dotnet_path=DOTNET)

        result = await operation.run(make_context(runner=runner))

        assert not result.success
        assert result.tests == []
        assert any(m.startswith("Test output file") for m in result.error_messages)
