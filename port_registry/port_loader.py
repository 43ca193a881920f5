#!/usr/bin/env python3
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from .registry_results import VersionParseError
from .version_types import Scheme, SCHEME_FIELDS, VersionT, SchemedVersion

MANIFEST_FILE = "vcpkg.json"
CONTROL_FILE = "CONTROL"
# Order in which manifests are looked up inside a git tree.
MANIFEST_CANDIDATES = (CONTROL_FILE, MANIFEST_FILE)

logger = logging.getLogger("port_registry.port_loader")


@dataclass(frozen=True)
class PortManifest:
    """Name and declared version of a port, plus the file they were read from."""
    name: str
    version: SchemedVersion
    manifest_name: str


def _parse_port_version(value, origin: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise VersionParseError(f"{origin}: port-version must be a non-negative integer, got {value!r}")
    return value


def _parse_manifest(text: str, origin: str) -> PortManifest:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise VersionParseError(f"{origin}: {e}") from e
    if not isinstance(data, dict):
        raise VersionParseError(f"{origin}: manifest must be a JSON object")

    name = data.get("name")
    if not isinstance(name, str) or not name:
        raise VersionParseError(f"{origin}: missing required field 'name'")

    present = [scheme for scheme, field in SCHEME_FIELDS.items() if field in data]
    if not present:
        raise VersionParseError(f"{origin}: missing a version field "
                                f"(one of {', '.join(SCHEME_FIELDS.values())})")
    if len(present) > 1:
        fields = ", ".join(scheme.field_name for scheme in present)
        raise VersionParseError(f"{origin}: expected exactly one version field, found {fields}")

    scheme = present[0]
    text_value = data[scheme.field_name]
    if not isinstance(text_value, str):
        raise VersionParseError(f"{origin}: {scheme.field_name} must be a string")
    port_version = _parse_port_version(data.get("port-version", 0), origin)
    return PortManifest(name, SchemedVersion(VersionT(text_value, port_version), scheme), MANIFEST_FILE)


def _control_fields(text: str) -> Dict[str, str]:
    """Fields of the first paragraph of a CONTROL file."""
    fields: Dict[str, str] = {}
    last_key: Optional[str] = None
    for line in text.splitlines():
        if not line.strip():
            if fields:
                break
            continue
        if line[0] in " \t" and last_key:
            fields[last_key] += "\n" + line.strip()
            continue
        key, sep, value = line.partition(":")
        if not sep:
            raise VersionParseError(f"expected 'Field: value', got {line!r}")
        last_key = key.strip()
        fields[last_key] = value.strip()
    return fields


def _parse_control(text: str, origin: str) -> PortManifest:
    try:
        fields = _control_fields(text)
    except VersionParseError as e:
        raise VersionParseError(f"{origin}: {e}") from e

    name = fields.get("Source")
    if not name:
        raise VersionParseError(f"{origin}: missing required field 'Source'")
    version_text = fields.get("Version")
    if version_text is None:
        raise VersionParseError(f"{origin}: missing required field 'Version'")

    port_version = 0
    if "Port-Version" in fields:
        try:
            port_version = int(fields["Port-Version"])
        except ValueError as e:
            raise VersionParseError(f"{origin}: Port-Version must be an integer") from e
        _parse_port_version(port_version, origin)
    return PortManifest(name, SchemedVersion(VersionT(version_text, port_version), Scheme.STRING), CONTROL_FILE)


def parse_port_text(text: str, origin: str, manifest_name: str) -> PortManifest:
    """
    Parse the text of a port manifest.

    Args:
        text: Contents of the manifest
        origin: Name used in error messages (path or treeish)
        manifest_name: MANIFEST_FILE or CONTROL_FILE

    Returns:
        PortManifest: The port's name and declared version

    Raises:
        VersionParseError: If the manifest cannot be parsed
    """
    if manifest_name == MANIFEST_FILE:
        return _parse_manifest(text, origin)
    if manifest_name == CONTROL_FILE:
        return _parse_control(text, origin)
    raise ValueError(f"Unknown manifest file name: {manifest_name}")


def _read_manifest(manifest_path: Path) -> str:
    with open(manifest_path, 'rb') as f:
        data = f.read()
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise VersionParseError(f"{manifest_path}: file is not valid UTF-8: {e}") from e


def find_manifest(port_dir: Path) -> Optional[Path]:
    """Manifest path inside a port directory; vcpkg.json wins over CONTROL."""
    for name in (MANIFEST_FILE, CONTROL_FILE):
        candidate = port_dir / name
        if candidate.is_file():
            return candidate
    return None


def load_port(port_dir: Path) -> PortManifest:
    """
    Load the declared version of a port from its directory.

    Args:
        port_dir: Path to the port directory

    Returns:
        PortManifest: The port's name and declared version

    Raises:
        VersionParseError: If no manifest exists or it cannot be parsed
    """
    manifest_path = find_manifest(port_dir)
    if manifest_path is None:
        raise VersionParseError(f"{port_dir}: no {MANIFEST_FILE} or {CONTROL_FILE} file found")
    logger.debug(f"Loading port manifest: {manifest_path}")
    text = _read_manifest(manifest_path)
    return parse_port_text(text, str(manifest_path), manifest_path.name)


def check_manifest_formatting(port_dir: Path) -> Optional[str]:
    """
    Check that a port uses a vcpkg.json manifest in canonical formatting.

    Args:
        port_dir: Path to the port directory

    Returns:
        Optional[str]: Description of the problem, or None if the manifest is well formatted
    """
    manifest_path = find_manifest(port_dir)
    if manifest_path is None:
        return f"{port_dir}: no {MANIFEST_FILE} or {CONTROL_FILE} file found"
    if manifest_path.name == CONTROL_FILE:
        return (f"{manifest_path} uses the legacy CONTROL format.\n"
                f"-- Convert it to {MANIFEST_FILE} or pass `--skip-formatting-check`.")

    try:
        text = _read_manifest(manifest_path)
    except VersionParseError as e:
        return str(e)
    try:
        canonical = json.dumps(json.loads(text), indent=2, ensure_ascii=False) + "\n"
    except json.JSONDecodeError as e:
        return f"{manifest_path}: {e}"
    if text != canonical:
        return (f"{manifest_path} is not formatted (expected 2-space indentation and a trailing newline).\n"
                f"-- Reformat it or pass `--skip-formatting-check`.")
    return None
