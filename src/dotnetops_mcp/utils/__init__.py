"""Utility modules for dotnetops-mcp."""

from .project import ProjectRootConfig, get_project_root, parse_file_uri
from .version import VersionInfo, latest_version, read_global_json_sdk_version

__all__ = [
    "get_project_root",
    "parse_file_uri",
    "ProjectRootConfig",
    "VersionInfo",
    "latest_version",
    "read_global_json_sdk_version",
]
