#!/usr/bin/env python3
import logging
from pathlib import Path
from typing import Dict, List, Optional

# Import internal modules
from .content_store import GitContentStore
from .port_loader import check_manifest_formatting, load_port
from .registry_core import RegistryCore
from .registry_results import (
    RegistryError, VersionConflictError, MissingDataError,
    UpdateResult, UpdateStatus, PortResult, PortStatus,
)
from .version_types import VersionT, SchemedVersion, HistoryEntry


class RegistryUpdater:
    """
    Records the current version of ports in their version files and the baseline,
    orchestrating the core, the port loader and the git content store.
    """

    def __init__(self, registry_root: Path, content_store: Optional[GitContentStore] = None):
        """
        Initialize the registry updater.

        Args:
            registry_root: Root directory of the registry
            content_store: Git lookups; defaults to a GitContentStore on registry_root
        """
        self.logger = logging.getLogger("port_registry.updater")
        self.core = RegistryCore(registry_root)
        self.content_store = content_store or GitContentStore(registry_root)

    def update_history(self, port_name: str, new_version: SchemedVersion, content_hash: str,
                       history_path: Path, overwrite: bool = False) -> UpdateResult:
        """
        Record a version and git tree in a port's version history file.

        All conflict checks happen before the single write, so a rejected update
        never touches the file.

        Args:
            port_name: Port name
            new_version: Version declared by the local port
            content_hash: Git tree of the committed port directory
            history_path: Path of the version history file
            overwrite: Replace the git tree of an already recorded version

        Returns:
            UpdateResult: ADDED, UPDATED, UNCHANGED or CONFLICT with a message

        Raises:
            VersionParseError: If the existing versions file is malformed
        """
        new_entry = HistoryEntry(new_version, content_hash)
        entries = self.core.load_history_file(history_path)
        if entries is None:
            self.core.save_history(history_path, [new_entry])
            return UpdateResult(UpdateStatus.ADDED,
                                f"Added version `{new_version}` to `{history_path}` (new file).")

        same_tree = next((e for e in entries if e.content_hash == content_hash), None)
        if same_tree is not None:
            if same_tree.version.version == new_version.version:
                return UpdateResult(UpdateStatus.UNCHANGED,
                                    f"Version `{new_version}` is already in `{history_path}`")
            return UpdateResult(
                UpdateStatus.CONFLICT,
                f"Warning: Local port files SHA is the same as version `{same_tree.version}` in `{history_path}`.\n"
                f"-- SHA: {content_hash}\n"
                f"-- Did you remember to commit your changes?\n"
                f"***No files were updated.***")

        index = next((i for i, e in enumerate(entries) if e.version.version == new_version.version), None)
        if index is not None:
            existing = entries[index]
            if not overwrite:
                return UpdateResult(
                    UpdateStatus.CONFLICT,
                    f"Error: Local changes detected for {port_name} but no changes to version or port version.\n"
                    f"-- Version: {new_version}\n"
                    f"-- Old SHA: {existing.content_hash}\n"
                    f"-- New SHA: {content_hash}\n"
                    f"-- Did you remember to update the version or port version?\n"
                    f"-- Pass `--overwrite-version` to bypass this check.\n"
                    f"***No files were updated.***")
            if index != 0:
                return UpdateResult(
                    UpdateStatus.CONFLICT,
                    f"Error: Version `{new_version}` of {port_name} is not the current entry in `{history_path}`.\n"
                    f"-- Current version: {entries[0].version}\n"
                    f"-- `--overwrite-version` only replaces the current version.\n"
                    f"***No files were updated.***")
            entries[index] = new_entry
            self.core.save_history(history_path, entries)
            self.logger.info(f"Overwrote git tree of {port_name} {new_version}: "
                             f"{existing.content_hash} -> {content_hash}")
            return UpdateResult(UpdateStatus.UPDATED,
                                f"Updated version `{new_version}` in `{history_path}`.")

        entries.insert(0, new_entry)
        self.core.save_history(history_path, entries)
        return UpdateResult(UpdateStatus.ADDED, f"Added version `{new_version}` to `{history_path}`.")

    def update_baseline(self, port_name: str, new_version: VersionT, baseline_path: Path,
                        baseline: Dict[str, VersionT]) -> UpdateResult:
        """
        Point a port's baseline entry at a version.

        The baseline mapping is updated in place so that later ports of the same
        run write on top of it.

        Args:
            port_name: Port name
            new_version: Version to select
            baseline_path: Path of the baseline file
            baseline: Baseline loaded at the start of the run

        Returns:
            UpdateResult: ADDED or UNCHANGED
        """
        if baseline.get(port_name) == new_version:
            return UpdateResult(UpdateStatus.UNCHANGED,
                                f"Version `{new_version}` is already in `{baseline_path}`")

        baseline[port_name] = new_version
        self.core.save_baseline(baseline_path, baseline)
        return UpdateResult(UpdateStatus.ADDED, f"Added version `{new_version}` to `{baseline_path}`.")

    def add_version(self, port_name: str, baseline: Dict[str, VersionT], port_trees: Dict[str, str],
                    overwrite: bool = False, skip_formatting_check: bool = False) -> PortResult:
        """
        Record the local version of one port.

        Args:
            port_name: Port name
            baseline: Baseline loaded at the start of the run
            port_trees: Committed git tree of every port
            overwrite: Replace the git tree of an already recorded version
            skip_formatting_check: Accept unformatted or CONTROL manifests

        Returns:
            PortResult: OK, or CONFLICT when the history refused the update

        Raises:
            VersionParseError: If the manifest or the versions file is malformed
            VersionConflictError: If the manifest fails the formatting check
            MissingDataError: If the port or its git tree cannot be found
        """
        if not port_name:
            raise MissingDataError("Error: Port name must not be empty")
        port_dir = self.core.paths.port_dir(port_name)
        if not port_dir.is_dir():
            raise MissingDataError(f"Error: Port {port_name} does not exist at {port_dir}")

        if not skip_formatting_check:
            problem = check_manifest_formatting(port_dir)
            if problem:
                raise VersionConflictError(f"Error: {problem}")

        manifest = load_port(port_dir)
        content_hash = port_trees.get(port_name)
        if content_hash is None:
            raise MissingDataError(
                f"Error: Can't obtain git tree for port {port_name} from HEAD.\n"
                f"-- Did you commit the port directory?")

        changed = self.content_store.uncommitted_changes(Path("ports") / port_name)
        if changed:
            self.logger.warning(f"Port {port_name} has uncommitted changes; only committed files are recorded: "
                                f"{', '.join(changed)}")

        history_result = self.update_history(port_name, manifest.version, content_hash,
                                             self.core.paths.versions_file(port_name), overwrite)
        if not history_result.ok:
            return PortResult(port_name, PortStatus.CONFLICT, history_result.message)

        baseline_result = self.update_baseline(port_name, manifest.version.version,
                                               self.core.paths.baseline_path, baseline)
        return PortResult(port_name, PortStatus.OK,
                          f"{history_result.message}\n{baseline_result.message}",
                          content_hash=content_hash, version=manifest.version.version)

    def add_versions(self, port_names: List[str], overwrite: bool = False,
                     skip_formatting_check: bool = False, keep_going: bool = False) -> List[PortResult]:
        """
        Record the local version of several ports, one at a time.

        Args:
            port_names: Ports to process, in order
            overwrite: Replace the git tree of an already recorded version
            skip_formatting_check: Accept unformatted or CONTROL manifests
            keep_going: Process remaining ports after a failure

        Returns:
            List[PortResult]: One result per processed port
        """
        baseline = self.core.load_baseline()
        port_trees = self.content_store.local_port_trees()

        results = []
        for port_name in port_names:
            self.logger.debug(f"Adding version for port {port_name}")
            try:
                result = self.add_version(port_name, baseline, port_trees, overwrite, skip_formatting_check)
            except RegistryError as e:
                result = PortResult.from_error(port_name, e)
            results.append(result)

            if not result.ok:
                self.logger.error(f"Failed to add version for port {port_name}")
                if not keep_going:
                    break
        return results
