"""Tests for the operation execution context."""

import os

from dotnetops_mcp.context import EXT_DIRECTORY_NAME, TEMP_DIRECTORY_NAME, OperationContext


class TestResolvePath:
    """Tests for OperationContext.resolve_path."""

    def test_relative_to_working_directory(self, make_context, workspace):
        """Test relative paths are joined to the working directory."""
        context = make_context()
        assert context.resolve_path("src/App.csproj") == os.path.join(str(workspace), "src", "App.csproj")

    def test_normalizes(self, make_context, workspace):
        """Test dot segments are collapsed."""
        context = make_context()
        assert context.resolve_path("src/../App.sln") == os.path.join(str(workspace), "App.sln")

    def test_absolute_passes_through(self, make_context):
        """Test absolute paths are returned as-is."""
        context = make_context()
        assert context.resolve_path("/opt/app/App.sln") == "/opt/app/App.sln"

    def test_blank_is_working_directory(self, make_context, workspace):
        """Test empty paths resolve to the working directory."""
        context = make_context()
        assert context.resolve_path(None) == str(workspace)
        assert context.resolve_path("  ") == str(workspace)

    def test_relative_base(self, make_context, workspace):
        """Test a relative base is itself resolved first."""
        context = make_context()
        assert context.resolve_path("out", base="pkg") == os.path.join(str(workspace), "pkg", "out")

    def test_windows_rules(self, make_context):
        """Test Windows path rules for a Windows target."""
        context = make_context(is_windows=True, working_directory="C:\\build\\work")
        assert context.resolve_path("src\\App.csproj") == "C:\\build\\work\\src\\App.csproj"
        assert context.resolve_path("D:\\other\\App.sln") == "D:\\other\\App.sln"
        assert context.combine_path("C:\\tools", "nuget.exe") == "C:\\tools\\nuget.exe"


class TestEnvironment:
    """Tests for environment variable access."""

    def test_case_insensitive_on_windows(self, make_context):
        """Test Windows variable lookup ignores case."""
        context = make_context(is_windows=True, environ={"ProgramFiles": "C:\\Program Files"})
        assert context.get_environment_variable("PROGRAMFILES") == "C:\\Program Files"

    def test_case_sensitive_elsewhere(self, make_context):
        """Test POSIX lookup is exact."""
        context = make_context(environ={"Home": "/home/x"})
        assert context.get_environment_variable("HOME") is None

    def test_child_environment_is_copy(self, make_context):
        """Test child environment can be changed without touching the context."""
        context = make_context(environ={"PATH": "/usr/bin"})
        env = context.child_environment()
        env["EXTRA"] = "1"
        assert "EXTRA" not in context.environ


class TestDirectories:
    """Tests for working storage directories."""

    def test_ext_and_temp_created(self, make_context, tool_config):
        """Test directories are created on first access."""
        context = make_context()
        assert context.ext_directory == os.path.join(str(tool_config.base_directory), EXT_DIRECTORY_NAME)
        assert os.path.isdir(context.ext_directory)
        assert context.temp_directory == os.path.join(str(tool_config.base_directory), TEMP_DIRECTORY_NAME)
        assert os.path.isdir(context.temp_directory)

    def test_file_and_directory_checks(self, make_context, workspace):
        """Test existence helpers."""
        (workspace / "App.sln").touch()
        context = make_context()
        assert context.file_exists(str(workspace / "App.sln"))
        assert not context.file_exists(None)
        assert context.directory_exists(str(workspace))
        assert not context.directory_exists(str(workspace / "App.sln"))

    def test_defaults(self, tool_config):
        """Test defaults come from the process."""
        context = OperationContext(config=tool_config)
        assert context.working_directory == os.getcwd()
        assert context.is_windows == (os.name == "nt")
