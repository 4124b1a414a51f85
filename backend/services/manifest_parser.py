"""
package.json parsing - tolerant of comments and trailing commas.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

MANIFEST_FILE_NAME = "package.json"
DEFAULT_VERSION = "0.0.0"


class ManifestError(ValueError):
    """The manifest cannot produce a LocalRepository entry."""


@dataclass
class ParsedManifest:
    """Projection of the manifest fields the graph cares about."""

    name: str
    version: str
    description: Optional[str]
    dependencies: Dict[str, str]
    dev_dependencies: Dict[str, str]
    private: bool
    rejected_keys: List[str] = field(default_factory=list)


def strip_json_comments(text: str) -> str:
    """
    Remove // and /* */ comments and trailing commas outside of strings.

    Args:
        text: JSON-with-comments source

    Returns:
        Plain JSON text
    """
    out: List[str] = []
    i = 0
    length = len(text)
    in_string = False

    while i < length:
        char = text[i]

        if in_string:
            out.append(char)
            if char == "\\" and i + 1 < length:
                out.append(text[i + 1])
                i += 2
                continue
            if char == '"':
                in_string = False
            i += 1
            continue

        if char == '"':
            in_string = True
            out.append(char)
            i += 1
        elif text.startswith("//", i):
            newline = text.find("\n", i)
            i = length if newline == -1 else newline
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = length if end == -1 else end + 2
        elif char == ",":
            # Drop trailing commas before a closing bracket
            j = i + 1
            while j < length and text[j] in " \t\r\n":
                j += 1
            if j < length and text[j] in "}]":
                i += 1
            else:
                out.append(char)
                i += 1
        else:
            out.append(char)
            i += 1

    return "".join(out)


def _string_map(raw: object, field_name: str, rejected: List[str]) -> Dict[str, str]:
    """Keep only string-valued entries; reject the rest per key."""
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        rejected.append(field_name)
        return {}

    result: Dict[str, str] = {}
    for name, constraint in raw.items():
        if isinstance(name, str) and isinstance(constraint, str):
            result[name] = constraint
        else:
            rejected.append(f"{field_name}.{name}")
    return result


def parse_manifest_text(text: str) -> ParsedManifest:
    """
    Parse manifest source into a ParsedManifest.

    Raises:
        ManifestError: if the text is not JSON or the name is missing
    """
    try:
        data = json.loads(strip_json_comments(text))
    except json.JSONDecodeError as e:
        raise ManifestError(f"invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ManifestError("manifest is not an object")

    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ManifestError("missing name")

    version = data.get("version")
    if not isinstance(version, str) or not version.strip():
        version = DEFAULT_VERSION

    description = data.get("description")
    if not isinstance(description, str):
        description = None

    rejected: List[str] = []
    dependencies = _string_map(data.get("dependencies"), "dependencies", rejected)
    dev_dependencies = _string_map(data.get("devDependencies"), "devDependencies", rejected)

    return ParsedManifest(
        name=name.strip(),
        version=version.strip(),
        description=description,
        dependencies=dependencies,
        dev_dependencies=dev_dependencies,
        private=data.get("private") is True,
        rejected_keys=rejected,
    )


def read_manifest(path: str) -> ParsedManifest:
    """
    Read and parse a manifest file.

    Raises:
        OSError: if the file cannot be read
        UnicodeDecodeError: if the file is not UTF-8
        ManifestError: if the manifest is unusable
    """
    with open(path, "r", encoding="utf-8-sig") as f:
        manifest = parse_manifest_text(f.read())
    if manifest.rejected_keys:
        logger.warning("Rejected non-string dependency entries in %s: %s", path, manifest.rejected_keys)
    return manifest
