#!/usr/bin/env python3
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .content_store import GitContentStore
from .port_loader import MANIFEST_CANDIDATES, load_port, parse_port_text
from .registry_core import RegistryCore
from .registry_results import (
    RegistryError, VersionParseError, MissingDataError, PortResult, PortStatus,
)
from .version_types import VersionT, SchemedVersion, HistoryEntry

ADD_VERSION_COMMAND = "port-registry add-version"


class RegistryVerifier:
    """
    Read-only consistency checks between ports, their version files and the baseline.
    """

    def __init__(self, registry_root: Path, content_store: Optional[GitContentStore] = None):
        """
        Initialize the registry verifier.

        Args:
            registry_root: Root directory of the registry
            content_store: Git lookups; defaults to a GitContentStore on registry_root
        """
        self.logger = logging.getLogger("port_registry.verifier")
        self.core = RegistryCore(registry_root)
        self.content_store = content_store or GitContentStore(registry_root)

    def _verify_entry_content(self, port_name: str, entry: HistoryEntry, history_path: Path) -> Optional[PortResult]:
        """
        Check that the git tree of a history entry declares the recorded version.

        Args:
            port_name: Port name
            entry: History entry to check
            history_path: Versions file, for messages

        Returns:
            Optional[PortResult]: A failed result, or None if the entry is consistent
        """
        header = (f"Error: While reading versions for port {port_name} from file: {history_path}\n"
                  f"       While validating version: {entry.version}.\n")
        for manifest_name in MANIFEST_CANDIDATES:
            treeish = f"{entry.content_hash}:{manifest_name}"
            content = self.content_store.fetch(treeish)
            if content is None:
                continue

            try:
                manifest = parse_port_text(content.decode("utf-8"), treeish, manifest_name)
            except (VersionParseError, UnicodeDecodeError) as e:
                return PortResult(port_name, PortStatus.PARSE_ERROR,
                                  f"{header}"
                                  f"       While trying to load port from: {treeish}\n"
                                  f"       Found the following error(s):\n{e}")

            if manifest.version.version.text != entry.version.version.text:
                return PortResult(port_name, PortStatus.CONFLICT,
                                  f"{header}"
                                  f"       The version declared in file does not match checked-out version: "
                                  f"{manifest.version}\n"
                                  f"       Checked out Git SHA: {entry.content_hash}")
            return None

        return PortResult(port_name, PortStatus.MISSING_DATA,
                          f"{header}"
                          f"       The checked-out object does not contain a CONTROL file or vcpkg.json file.\n"
                          f"       Checked out Git SHA: {entry.content_hash}")

    def verify_port(self, port_name: str, local_version: SchemedVersion, local_hash: str,
                    history: List[HistoryEntry], baseline: Dict[str, VersionT],
                    verify_content: bool = False, history_path: Optional[Path] = None) -> PortResult:
        """
        Verify a port's local declaration against its history and the baseline.

        Checks stop at the first failure.

        Args:
            port_name: Port name
            local_version: Version declared by the local port manifest
            local_hash: Git tree of the committed port directory
            history: Entries of the port's versions file
            baseline: Baseline snapshot for the whole run
            verify_content: Also check every entry against its git tree (slow)
            history_path: Versions file, for messages

        Returns:
            PortResult: OK carrying the current git tree and version, or the first failure
        """
        if history_path is None:
            history_path = self.core.paths.versions_file(port_name)
        prefix = f"Error: While reading versions for port {port_name} from file: {history_path}\n"

        if not history:
            return PortResult(port_name, PortStatus.MISSING_DATA,
                              f"{prefix}       File contains no versions.")

        if verify_content:
            for entry in history:
                failure = self._verify_entry_content(port_name, entry, history_path)
                if failure is not None:
                    return failure

        top = history[0]
        if top.version.version != local_version.version:
            if any(e.version.version == local_version.version for e in history[1:]):
                return PortResult(port_name, PortStatus.CONFLICT,
                                  f"{prefix}"
                                  f"       Local port version `{local_version}` exists in version file but it's "
                                  f"not the first entry in the \"versions\" array.")
            return PortResult(port_name, PortStatus.MISSING_DATA,
                              f"{prefix}"
                              f"       Version `{local_version}` was not found in versions file.\n"
                              f"       Run:\n\n"
                              f"           {ADD_VERSION_COMMAND} {port_name}\n\n"
                              f"       to add the new port version.")

        if top.version.scheme != local_version.scheme:
            return PortResult(port_name, PortStatus.CONFLICT,
                              f"{prefix}"
                              f"       File declares version `{top.version}` with scheme: "
                              f"`{top.version.scheme.field_name}`.\n"
                              f"       But local port declares the same version with a different scheme: "
                              f"`{local_version.scheme.field_name}`.\n"
                              f"       Version must be unique even between different schemes.\n"
                              f"       Run:\n\n"
                              f"           {ADD_VERSION_COMMAND} {port_name} --overwrite-version\n\n"
                              f"       to overwrite the declared version's scheme.")

        if top.content_hash != local_hash:
            return PortResult(port_name, PortStatus.CONFLICT,
                              f"{prefix}"
                              f"       File declares version `{top.version}` with SHA: {top.content_hash}\n"
                              f"       But local port with the same version has a different SHA: {local_hash}\n"
                              f"       Please update the port's version fields and then run:\n\n"
                              f"           {ADD_VERSION_COMMAND} {port_name}\n\n"
                              f"       to add a new version.")

        baseline_version = baseline.get(port_name)
        if baseline_version is None:
            return PortResult(port_name, PortStatus.MISSING_DATA,
                              f"Error: While reading baseline version for port {port_name}.\n"
                              f"       Baseline version not found.\n"
                              f"       Run:\n\n"
                              f"           {ADD_VERSION_COMMAND} {port_name}\n\n"
                              f"       to set version {local_version} as the baseline version.")

        if baseline_version != top.version.version:
            return PortResult(port_name, PortStatus.CONFLICT,
                              f"Error: While reading baseline version for port {port_name}.\n"
                              f"       While validating latest version from file: {history_path}\n"
                              f"       Baseline file declares version: {baseline_version}.\n"
                              f"       But the latest version in version files is: {top.version}.\n"
                              f"       Run:\n\n"
                              f"           {ADD_VERSION_COMMAND} {port_name}\n\n"
                              f"       to update the baseline version.")

        return PortResult(port_name, PortStatus.OK,
                          f"OK: {top.content_hash}\t{port_name} -> {top.version}",
                          content_hash=top.content_hash, version=top.version.version)

    def check_port(self, port_name: str, baseline: Dict[str, VersionT], port_trees: Dict[str, str],
                   verify_content: bool = False) -> PortResult:
        """
        Load everything a port's verification needs and verify it.

        Args:
            port_name: Port name
            baseline: Baseline snapshot for the whole run
            port_trees: Committed git tree of every port
            verify_content: Also check every entry against its git tree (slow)

        Returns:
            PortResult: Outcome of verify_port

        Raises:
            VersionParseError: If the versions file or the local manifest is malformed
            MissingDataError: If the port, its versions file or its git tree is missing
        """
        if not port_name:
            raise MissingDataError("Error: Port name must not be empty")
        port_dir = self.core.paths.port_dir(port_name)
        if not port_dir.is_dir():
            raise MissingDataError(f"Error: Port {port_name} does not exist at {port_dir}")

        history_path = self.core.paths.versions_file(port_name)
        try:
            history = self.core.load_history_file(history_path)
        except VersionParseError as e:
            raise VersionParseError(
                f"Error: While attempting to parse versions for port {port_name} from file: {history_path}\n"
                f"       Found the following error(s):\n{e}") from e
        if history is None:
            raise MissingDataError(
                f"Error: Versions file not found for port {port_name}: {history_path}\n"
                f"       Run:\n\n"
                f"           {ADD_VERSION_COMMAND} {port_name}\n\n"
                f"       to create the versions file.")

        # Recorded trees are checked before the local port is loaded.
        if verify_content:
            for entry in history:
                failure = self._verify_entry_content(port_name, entry, history_path)
                if failure is not None:
                    return failure

        try:
            manifest = load_port(port_dir)
        except VersionParseError as e:
            raise VersionParseError(
                f"Error: While attempting to load local port {port_name}.\n"
                f"       Found the following error(s):\n{e}") from e

        local_hash = port_trees.get(port_name)
        if local_hash is None:
            raise MissingDataError(
                f"Error: Can't obtain git tree for port {port_name} from HEAD.\n"
                f"       Commit the port directory before verifying it.")

        return self.verify_port(port_name, manifest.version, local_hash, history, baseline,
                                history_path=history_path)

    def verify_ports(self, port_names: Optional[Iterable[str]] = None, exclude: Iterable[str] = (),
                     verify_content: bool = False, keep_going: bool = True) -> List[PortResult]:
        """
        Verify several ports against one baseline snapshot.

        Args:
            port_names: Ports to verify; every port directory when None
            exclude: Ports to skip
            verify_content: Also check every entry against its git tree (slow)
            keep_going: Verify remaining ports after a failure

        Returns:
            List[PortResult]: One result per verified port
        """
        if port_names is None:
            port_names = self.core.paths.list_ports()
        excluded = set(exclude)

        baseline = self.core.load_baseline()
        port_trees = self.content_store.local_port_trees()

        results = []
        for port_name in port_names:
            if port_name in excluded:
                self.logger.info(f"Skipping excluded port {port_name}")
                continue
            try:
                result = self.check_port(port_name, baseline, port_trees, verify_content)
            except RegistryError as e:
                result = PortResult.from_error(port_name, e)
            results.append(result)

            if not result.ok:
                self.logger.debug(f"Verification failed for port {port_name}")
                if not keep_going:
                    break
        return results
