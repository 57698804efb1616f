"""NuGet .nuspec metadata reading."""

from __future__ import annotations

import os
import xml.etree.ElementTree as ET
from dataclasses import dataclass


@dataclass
class NuspecMetadata:
    """Package identity read from a .nuspec file."""

    id: str | None = None
    version: str | None = None
    authors: str | None = None
    description: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {
            "id": self.id,
            "version": self.version,
            "authors": self.authors,
            "description": self.description,
        }


def read_nuspec(path: str | os.PathLike[str]) -> NuspecMetadata:
    """Read package metadata from a .nuspec file.

    Raises:
        ValueError: If the file has no package/metadata element
        ET.ParseError: If the XML is malformed
    """
    root = ET.parse(os.fspath(path)).getroot()
    for element in root.iter():
        element.tag = element.tag.rsplit("}", 1)[-1]

    metadata = root.find("metadata") if root.tag == "package" else None
    if metadata is None:
        raise ValueError(f"{os.fspath(path)} has no package/metadata element")

    def text(name: str) -> str | None:
        value = metadata.findtext(name)
        return value.strip() if value and value.strip() else None

    return NuspecMetadata(
        id=text("id"),
        version=text("version"),
        authors=text("authors"),
        description=text("description"),
    )
