"""MSBuild tools directory lookup in the Windows registry."""

from __future__ import annotations

import logging
import sys

from ..utils.version import latest_version

logger = logging.getLogger(__name__)

TOOLS_VERSIONS_KEY = r"SOFTWARE\Microsoft\MSBuild\ToolsVersions"


def latest_tools_version(names: list[str]) -> str | None:
    """Highest ``major.minor[.x[.y]]`` registry subkey name."""
    return latest_version(names)


def find_msbuild_using_registry() -> str | None:
    """Read MSBuildToolsPath of the newest registered MSBuild version.

    Returns:
        Tools directory, or None off Windows or when nothing is registered
    """
    if sys.platform != "win32":
        return None

    import winreg

    try:
        with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, TOOLS_VERSIONS_KEY) as key:
            names: list[str] = []
            index = 0
            while True:
                try:
                    names.append(winreg.EnumKey(key, index))
                except OSError:
                    break
                index += 1

            version = latest_tools_version(names)
            if version is None:
                logger.debug(f"No versioned subkeys under HKLM\\{TOOLS_VERSIONS_KEY}")
                return None

            with winreg.OpenKey(key, version) as version_key:
                value, _ = winreg.QueryValueEx(version_key, "MSBuildToolsPath")
    except OSError as e:
        logger.debug(f"MSBuild registry lookup failed: {e}")
        return None

    logger.debug(f"MSBuild {version} registered at {value}")
    return str(value) if value else None
