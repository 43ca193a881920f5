#!/usr/bin/env python3
import os
import json
import logging
from pathlib import Path
from typing import Dict, Any, List, Optional

import jsonschema

from .registry_results import VersionParseError
from .version_types import Scheme, SCHEME_FIELDS, VersionT, SchemedVersion, HistoryEntry

SCHEMA_DIR = Path(__file__).parent / "schemas"
BASELINE_FIELD = "baseline"


class RegistryPaths:
    """Locations of ports, version files and the baseline under a registry root."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self.ports_dir = self.root / "ports"
        self.versions_dir = self.root / "versions"
        self.baseline_path = self.versions_dir / "baseline.json"

    def port_dir(self, port_name: str) -> Path:
        return self.ports_dir / port_name

    def versions_file(self, port_name: str) -> Path:
        """Version history file of a port, sharded by the first letter of its name."""
        return self.versions_dir / f"{port_name[0]}-" / f"{port_name}.json"

    def list_ports(self) -> List[str]:
        if not self.ports_dir.is_dir():
            return []
        return sorted(p.name for p in self.ports_dir.iterdir() if p.is_dir())


def write_atomic(path: Path, content: bytes) -> None:
    """
    Write content to path through a sibling temporary file and a rename.

    A failure before the rename leaves the existing file untouched. Errors are
    not caught here: a failed write must end the whole command.

    Args:
        path: Destination file
        content: Serialized document
    """
    path = Path(path)
    tmp_path = path.with_name(path.name + ".tmp")
    os.makedirs(path.parent, exist_ok=True)
    with open(tmp_path, 'wb') as f:
        f.write(content)
    os.replace(tmp_path, path)


def dump_document(data: Dict[str, Any]) -> bytes:
    """Serialize a document with 2-space indentation and insertion-order keys."""
    return (json.dumps(data, indent=2, ensure_ascii=False) + "\n").encode("utf-8")


def _load_schema(name: str) -> dict:
    with open(SCHEMA_DIR / name, 'r', encoding='utf-8') as f:
        return json.load(f)


def _validate(document: Any, schema_name: str, origin: str) -> None:
    try:
        jsonschema.validate(document, _load_schema(schema_name))
    except jsonschema.ValidationError as e:
        location = "/".join(str(p) for p in e.absolute_path) or "<root>"
        raise VersionParseError(f"{origin}: invalid document at {location}: {e.message}") from e


def _read_text(path: Path) -> str:
    with open(path, 'rb') as f:
        data = f.read()
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise VersionParseError(f"{path}: file is not valid UTF-8: {e}") from e


def _version(text_value: str, obj: Dict[str, Any], origin: str) -> VersionT:
    # jsonschema accepts whole floats such as 1.0 as integers
    try:
        return VersionT(text_value, obj.get("port-version", 0))
    except ValueError as e:
        raise VersionParseError(f"{origin}: {e}") from e


def _parse_json(text: str, origin: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise VersionParseError(f"{origin}: {e}") from e


def schemed_version_fields(version: SchemedVersion) -> Dict[str, Any]:
    """Scheme-tagged version field followed by port-version."""
    return {
        version.scheme.field_name: version.version.text,
        "port-version": version.version.port_version,
    }


def parse_history(text: str, origin: str = "<versions>") -> List[HistoryEntry]:
    """
    Parse a version history document.

    Args:
        text: Document text
        origin: Name used in error messages, usually the file path

    Returns:
        List[HistoryEntry]: Entries in file order, index 0 being the current version

    Raises:
        VersionParseError: If the text is not a valid version history document
    """
    document = _parse_json(text, origin)
    _validate(document, "versions.schema.json", origin)

    entries = []
    for obj in document["versions"]:
        scheme = Scheme.from_field_name(next(field for field in SCHEME_FIELDS.values() if field in obj))
        version = _version(obj[scheme.field_name], obj, origin)
        entries.append(HistoryEntry(SchemedVersion(version, scheme), obj["git-tree"]))
    return entries


def serialize_history(entries: List[HistoryEntry]) -> Dict[str, Any]:
    versions = []
    for entry in entries:
        if not isinstance(entry.version.scheme, Scheme):
            raise ValueError(f"Unknown version scheme: {entry.version.scheme!r}")
        obj = {"git-tree": entry.content_hash}
        obj.update(schemed_version_fields(entry.version))
        versions.append(obj)
    return {"versions": versions}


def parse_baseline(text: str, origin: str = "<baseline>") -> Dict[str, VersionT]:
    """
    Parse a baseline document into a port name to version mapping.

    Args:
        text: Document text
        origin: Name used in error messages, usually the file path

    Returns:
        Dict[str, VersionT]: Baseline versions of the "default" section

    Raises:
        VersionParseError: If the text is not a valid baseline document
    """
    document = _parse_json(text, origin)
    _validate(document, "baseline.schema.json", origin)

    baseline = {}
    for port_name, obj in document["default"].items():
        text_value = obj[BASELINE_FIELD] if BASELINE_FIELD in obj else obj["version"]
        baseline[port_name] = _version(text_value, obj, origin)
    return baseline


def serialize_baseline(baseline: Dict[str, VersionT]) -> Dict[str, Any]:
    entries = {}
    for port_name in sorted(baseline):
        version = baseline[port_name]
        entries[port_name] = {BASELINE_FIELD: version.text, "port-version": version.port_version}
    return {"default": entries}


class RegistryCore:
    """
    Loading and saving of version history files and the baseline.

    Every command loads fresh snapshots, computes the new state and swaps it in
    with write_atomic. Only one writer is expected at a time; there is no locking
    between processes.
    """

    def __init__(self, registry_root: Path):
        """
        Initialize the registry core.

        Args:
            registry_root: Root directory containing ports/ and versions/
        """
        self.logger = logging.getLogger("port_registry.core")
        self.paths = RegistryPaths(registry_root)

    def load_history(self, port_name: str) -> Optional[List[HistoryEntry]]:
        """
        Load the version history of a port.

        Args:
            port_name: Port name

        Returns:
            List[HistoryEntry]: Recorded entries, or None if the port has no versions file

        Raises:
            VersionParseError: If the versions file is malformed
        """
        return self.load_history_file(self.paths.versions_file(port_name))

    def load_history_file(self, history_path: Path) -> Optional[List[HistoryEntry]]:
        if not history_path.exists():
            self.logger.debug(f"Versions file not found: {history_path}")
            return None
        text = _read_text(history_path)
        return parse_history(text, str(history_path))

    def save_history(self, history_path: Path, entries: List[HistoryEntry]) -> None:
        write_atomic(history_path, dump_document(serialize_history(entries)))
        self.logger.info(f"Wrote {len(entries)} version(s) to {history_path}")

    def load_baseline(self, baseline_path: Optional[Path] = None) -> Dict[str, VersionT]:
        """
        Load the baseline. A missing baseline file is an empty baseline.

        Args:
            baseline_path: Baseline file, defaults to versions/baseline.json

        Returns:
            Dict[str, VersionT]: Port name to baseline version

        Raises:
            VersionParseError: If the baseline file is malformed
        """
        if baseline_path is None:
            baseline_path = self.paths.baseline_path
        if not baseline_path.exists():
            self.logger.info(f"Baseline file not found, starting empty: {baseline_path}")
            return {}
        text = _read_text(baseline_path)
        return parse_baseline(text, str(baseline_path))

    def save_baseline(self, baseline_path: Path, baseline: Dict[str, VersionT]) -> None:
        write_atomic(baseline_path, dump_document(serialize_baseline(baseline)))
        self.logger.info(f"Wrote {len(baseline)} baseline version(s) to {baseline_path}")
