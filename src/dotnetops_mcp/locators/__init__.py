"""Discovery of dotnet, MSBuild, nuget.exe and Visual Studio tools."""

from .dotnet import find_dotnet_paths, find_global_json, install_dotnet
from .msbuild import find_msbuild_using_registry, latest_tools_version
from .nuget import get_nuget_exe_path
from .tools import locate_tools
from .vswhere import find_using_vswhere, find_vswhere, select_vswhere_file

__all__ = [
    "find_dotnet_paths",
    "find_global_json",
    "install_dotnet",
    "find_msbuild_using_registry",
    "latest_tools_version",
    "get_nuget_exe_path",
    "locate_tools",
    "find_using_vswhere",
    "find_vswhere",
    "select_vswhere_file",
]
