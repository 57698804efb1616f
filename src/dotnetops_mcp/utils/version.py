"""Version parsing for tool versions, registry keys and global.json."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

VERSION_PATTERN = re.compile(r"^(\d+)\.(\d+)(?:\.(\d+))?(?:\.(\d+))?$")


@dataclass
class VersionInfo:
    """Version information with major.minor[.patch[.build]] components."""

    major: int
    minor: int
    patch: int | None = None
    build: int | None = None
    raw: str = field(default="", compare=False)

    def __str__(self) -> str:
        parts = [self.major, self.minor]
        if self.patch is not None:
            parts.append(self.patch)
            if self.build is not None:
                parts.append(self.build)
        return ".".join(str(p) for p in parts)

    def _key(self) -> tuple[int, int, int, int]:
        return (self.major, self.minor, self.patch or 0, self.build or 0)

    def __lt__(self, other: VersionInfo) -> bool:
        return self._key() < other._key()

    def __le__(self, other: VersionInfo) -> bool:
        return self._key() <= other._key()

    def __gt__(self, other: VersionInfo) -> bool:
        return self._key() > other._key()

    def __ge__(self, other: VersionInfo) -> bool:
        return self._key() >= other._key()

    @classmethod
    def from_string(cls, version_str: str | None) -> VersionInfo | None:
        """Parse version from string like '17.0', '6.0.36' or '9.0.13.2701'."""
        if not version_str:
            return None

        match = VERSION_PATTERN.match(version_str.strip())
        if not match:
            return None

        return cls(
            major=int(match.group(1)),
            minor=int(match.group(2)),
            patch=int(match.group(3)) if match.group(3) else None,
            build=int(match.group(4)) if match.group(4) else None,
            raw=version_str,
        )


def latest_version(names: list[str]) -> str | None:
    """Return the name with the highest parseable version.

    Names that are not versions (e.g. registry subkeys like 'Current')
    are ignored.
    """
    best: tuple[VersionInfo, str] | None = None
    for name in names:
        version = VersionInfo.from_string(name)
        if version is None:
            continue
        if best is None or version > best[0]:
            best = (version, name)
    return best[1] if best else None


def read_global_json_sdk_version(path: str) -> str | None:
    """Read sdk.version from a global.json file.

    Returns:
        The requested SDK version, None if absent or unreadable
    """
    try:
        with open(path, encoding="utf-8-sig") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(f"Failed to read {path}: {e}")
        return None

    sdk = data.get("sdk") if isinstance(data, dict) else None
    if isinstance(sdk, dict) and isinstance(sdk.get("version"), str):
        return sdk["version"]
    return None
