#!/usr/bin/env python3
import sys
import logging
import tempfile
import unittest
import shutil
from pathlib import Path
from unittest import mock

# Add parent directory to path if needed for direct testing
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from port_registry.registry_updater import RegistryUpdater
from port_registry.registry_results import UpdateStatus, PortStatus, VersionParseError
from port_registry.registry_verifier import RegistryVerifier
from port_registry.version_types import Scheme, VersionT, SchemedVersion
from port_registry.tests.registry_fixtures import (
    FakeContentStore, TREE_A, TREE_B, TREE_C, write_port, read_json,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("port_registry.tests")


class RegistryUpdaterTests(unittest.TestCase):
    """Tests for version history and baseline updates."""

    def setUp(self):
        """Set up an empty registry before each test."""
        self.temp_dir = tempfile.mkdtemp()
        self.root = Path(self.temp_dir)
        self.store = FakeContentStore()
        self.updater = RegistryUpdater(self.root, content_store=self.store)
        self.history_path = self.updater.core.paths.versions_file("curl")
        self.baseline_path = self.updater.core.paths.baseline_path

    def tearDown(self):
        """Clean up test environment after each test."""
        shutil.rmtree(self.temp_dir)

    def _semver(self, text: str, port_version: int = 0) -> SchemedVersion:
        return SchemedVersion(VersionT(text, port_version), Scheme.SEMVER)

    def test_new_history_file(self):
        """A port without a versions file gets a file with a single entry."""
        result = self.updater.update_history("curl", self._semver("7.80.0"), TREE_A, self.history_path)

        self.assertEqual(result.status, UpdateStatus.ADDED)
        self.assertIn("new file", result.message)
        self.assertEqual(read_json(self.history_path), {
            "versions": [{"git-tree": TREE_A, "version-semver": "7.80.0", "port-version": 0}]
        })

    def test_same_version_and_tree_is_unchanged(self):
        """Recording the same version and tree twice does not rewrite the file."""
        self.updater.update_history("curl", self._semver("7.80.0"), TREE_A, self.history_path)
        before = self.history_path.read_bytes()

        with mock.patch.object(self.updater.core, "save_history") as save_history:
            result = self.updater.update_history("curl", self._semver("7.80.0"), TREE_A, self.history_path)

        self.assertEqual(result.status, UpdateStatus.UNCHANGED)
        save_history.assert_not_called()
        self.assertEqual(self.history_path.read_bytes(), before)

    def test_same_tree_with_new_version_conflicts(self):
        """Bumping the version without committing new content is refused."""
        self.updater.update_history("curl", self._semver("7.80.0"), TREE_A, self.history_path)
        before = self.history_path.read_bytes()

        result = self.updater.update_history("curl", self._semver("7.80.1"), TREE_A, self.history_path)

        self.assertEqual(result.status, UpdateStatus.CONFLICT)
        self.assertIn("Did you remember to commit your changes?", result.message)
        self.assertEqual(self.history_path.read_bytes(), before)

    def test_same_version_with_new_tree_conflicts(self):
        """Changing content without a version bump is refused unless overwriting."""
        self.updater.update_history("curl", self._semver("7.80.0"), TREE_A, self.history_path)
        before = self.history_path.read_bytes()

        result = self.updater.update_history("curl", self._semver("7.80.0"), TREE_B, self.history_path)

        self.assertEqual(result.status, UpdateStatus.CONFLICT)
        self.assertIn("--overwrite-version", result.message)
        self.assertEqual(self.history_path.read_bytes(), before)

    def test_port_version_bump_is_a_new_version(self):
        """A port-version bump is recorded as a distinct version."""
        self.updater.update_history("curl", self._semver("7.80.0"), TREE_A, self.history_path)
        result = self.updater.update_history("curl", self._semver("7.80.0", 1), TREE_B, self.history_path)

        self.assertEqual(result.status, UpdateStatus.ADDED)
        versions = read_json(self.history_path)["versions"]
        self.assertEqual([v["port-version"] for v in versions], [1, 0])

    def test_overwrite_replaces_tree_in_place(self):
        """Overwriting the current version changes only its tree and keeps the order."""
        self.updater.update_history("curl", self._semver("7.80.0"), TREE_A, self.history_path)
        self.updater.update_history("curl", self._semver("7.81.0"), TREE_B, self.history_path)

        result = self.updater.update_history("curl", self._semver("7.81.0"), TREE_C, self.history_path,
                                             overwrite=True)

        self.assertEqual(result.status, UpdateStatus.UPDATED)
        self.assertEqual(read_json(self.history_path), {"versions": [
            {"git-tree": TREE_C, "version-semver": "7.81.0", "port-version": 0},
            {"git-tree": TREE_A, "version-semver": "7.80.0", "port-version": 0},
        ]})

    def test_overwrite_single_entry(self):
        self.updater.update_history("curl", self._semver("7.80.0"), TREE_A, self.history_path)

        result = self.updater.update_history("curl", self._semver("7.80.0"), TREE_B, self.history_path,
                                             overwrite=True)

        self.assertEqual(result.status, UpdateStatus.UPDATED)
        self.assertEqual(read_json(self.history_path)["versions"],
                         [{"git-tree": TREE_B, "version-semver": "7.80.0", "port-version": 0}])

    def test_overwrite_can_change_scheme(self):
        self.updater.update_history("curl", self._semver("7.80.0"), TREE_A, self.history_path)
        relaxed = SchemedVersion(VersionT("7.80.0"), Scheme.RELAXED)

        result = self.updater.update_history("curl", relaxed, TREE_B, self.history_path, overwrite=True)

        self.assertEqual(result.status, UpdateStatus.UPDATED)
        self.assertEqual(read_json(self.history_path)["versions"],
                         [{"git-tree": TREE_B, "version": "7.80.0", "port-version": 0}])

    def test_overwrite_of_older_entry_conflicts(self):
        """Only the current entry may be overwritten."""
        self.updater.update_history("curl", self._semver("7.80.0"), TREE_A, self.history_path)
        self.updater.update_history("curl", self._semver("7.81.0"), TREE_B, self.history_path)
        before = self.history_path.read_bytes()

        result = self.updater.update_history("curl", self._semver("7.80.0"), TREE_C, self.history_path,
                                             overwrite=True)

        self.assertEqual(result.status, UpdateStatus.CONFLICT)
        self.assertIn("only replaces the current version", result.message)
        self.assertEqual(self.history_path.read_bytes(), before)

    def test_new_version_is_inserted_first(self):
        self.updater.update_history("curl", self._semver("7.80.0"), TREE_A, self.history_path)
        self.updater.update_history("curl", self._semver("7.81.0"), TREE_B, self.history_path)
        self.updater.update_history("curl", self._semver("7.82.0"), TREE_C, self.history_path)

        versions = read_json(self.history_path)["versions"]
        self.assertEqual([v["version-semver"] for v in versions], ["7.82.0", "7.81.0", "7.80.0"])
        self.assertEqual([v["git-tree"] for v in versions], [TREE_C, TREE_B, TREE_A])

    def test_malformed_history_raises(self):
        self.history_path.parent.mkdir(parents=True)
        self.history_path.write_text('{"versions": [{"git-tree": "nope"}]}', encoding="utf-8")

        with self.assertRaises(VersionParseError):
            self.updater.update_history("curl", self._semver("7.80.0"), TREE_A, self.history_path)

    def test_baseline_update(self):
        baseline = {}
        result = self.updater.update_baseline("curl", VersionT("7.80.0"), self.baseline_path, baseline)
        self.assertEqual(result.status, UpdateStatus.ADDED)
        self.assertEqual(baseline, {"curl": VersionT("7.80.0")})

        self.updater.update_baseline("bzip2", VersionT("1.0.8", 2), self.baseline_path, baseline)
        self.assertEqual(read_json(self.baseline_path), {"default": {
            "bzip2": {"baseline": "1.0.8", "port-version": 2},
            "curl": {"baseline": "7.80.0", "port-version": 0},
        }})

    def test_baseline_unchanged(self):
        baseline = {"curl": VersionT("7.80.0")}
        with mock.patch.object(self.updater.core, "save_baseline") as save_baseline:
            result = self.updater.update_baseline("curl", VersionT("7.80.0"), self.baseline_path, baseline)

        self.assertEqual(result.status, UpdateStatus.UNCHANGED)
        save_baseline.assert_not_called()
        self.assertFalse(self.baseline_path.exists())


class AddVersionTests(unittest.TestCase):
    """Tests for the add-version flow over a registry directory."""

    def setUp(self):
        """Set up a registry with a curl port before each test."""
        self.temp_dir = tempfile.mkdtemp()
        self.root = Path(self.temp_dir)
        self.store = FakeContentStore(trees={"curl": TREE_A})
        self.updater = RegistryUpdater(self.root, content_store=self.store)
        self.verifier = RegistryVerifier(self.root, content_store=self.store)
        self.paths = self.updater.core.paths
        write_port(self.root, "curl", "7.80.0", field="version-semver")

    def tearDown(self):
        """Clean up test environment after each test."""
        shutil.rmtree(self.temp_dir)

    def test_first_version(self):
        """A new port gets a versions file and a baseline entry."""
        results = self.updater.add_versions(["curl"])

        self.assertEqual(len(results), 1)
        self.assertTrue(results[0].ok, results[0].message)
        self.assertEqual(read_json(self.paths.versions_file("curl")), {
            "versions": [{"git-tree": TREE_A, "version-semver": "7.80.0", "port-version": 0}]
        })
        self.assertEqual(read_json(self.paths.baseline_path), {
            "default": {"curl": {"baseline": "7.80.0", "port-version": 0}}
        })

    def test_second_version_then_verify(self):
        self.updater.add_versions(["curl"])
        write_port(self.root, "curl", "7.81.0", field="version-semver")
        self.store.trees["curl"] = TREE_B

        results = self.updater.add_versions(["curl"])
        self.assertTrue(results[0].ok, results[0].message)

        versions = read_json(self.paths.versions_file("curl"))["versions"]
        self.assertEqual(len(versions), 2)
        self.assertEqual(versions[0]["git-tree"], TREE_B)
        self.assertEqual(versions[0]["version-semver"], "7.81.0")

        verified = self.verifier.verify_ports(["curl"])
        self.assertTrue(verified[0].ok, verified[0].message)
        self.assertEqual(verified[0].version, VersionT("7.81.0"))

    def test_add_version_is_idempotent(self):
        self.updater.add_versions(["curl"])
        history_before = self.paths.versions_file("curl").read_bytes()
        baseline_before = self.paths.baseline_path.read_bytes()

        with mock.patch("port_registry.registry_core.write_atomic") as write_atomic:
            results = self.updater.add_versions(["curl"])

        self.assertTrue(results[0].ok)
        self.assertIn("already in", results[0].message)
        write_atomic.assert_not_called()
        self.assertEqual(self.paths.versions_file("curl").read_bytes(), history_before)
        self.assertEqual(self.paths.baseline_path.read_bytes(), baseline_before)

    def test_forgotten_commit_conflict(self):
        self.updater.add_versions(["curl"])
        write_port(self.root, "curl", "7.80.1", field="version-semver")
        before = self.paths.versions_file("curl").read_bytes()

        results = self.updater.add_versions(["curl"])

        self.assertEqual(results[0].status, PortStatus.CONFLICT)
        self.assertEqual(self.paths.versions_file("curl").read_bytes(), before)
        self.assertEqual(read_json(self.paths.baseline_path)["default"]["curl"]["baseline"], "7.80.0")

    def test_missing_port(self):
        results = self.updater.add_versions(["zlib"])
        self.assertEqual(results[0].status, PortStatus.MISSING_DATA)
        self.assertIn("does not exist", results[0].message)

    def test_uncommitted_port(self):
        write_port(self.root, "zlib", "1.2.11")
        results = self.updater.add_versions(["zlib"])
        self.assertEqual(results[0].status, PortStatus.MISSING_DATA)
        self.assertIn("Did you commit", results[0].message)

    def test_uncommitted_changes_only_warn(self):
        self.store.changes["curl"] = ["ports/curl/portfile.cmake"]
        with self.assertLogs("port_registry.updater", level="WARNING"):
            results = self.updater.add_versions(["curl"])
        self.assertTrue(results[0].ok)

    def test_formatting_check(self):
        port_dir = self.paths.port_dir("curl")
        (port_dir / "vcpkg.json").write_text('{"name": "curl", "version-semver": "7.80.0"}', encoding="utf-8")

        results = self.updater.add_versions(["curl"])
        self.assertEqual(results[0].status, PortStatus.CONFLICT)
        self.assertIn("not formatted", results[0].message)
        self.assertFalse(self.paths.versions_file("curl").exists())

        results = self.updater.add_versions(["curl"], skip_formatting_check=True)
        self.assertTrue(results[0].ok, results[0].message)

    def test_control_file_requires_skip(self):
        port_dir = self.root / "ports" / "zlib"
        port_dir.mkdir(parents=True)
        (port_dir / "CONTROL").write_text("Source: zlib\nVersion: 1.2.11\nPort-Version: 3\n", encoding="utf-8")
        self.store.trees["zlib"] = TREE_B

        results = self.updater.add_versions(["zlib"])
        self.assertEqual(results[0].status, PortStatus.CONFLICT)

        results = self.updater.add_versions(["zlib"], skip_formatting_check=True)
        self.assertTrue(results[0].ok, results[0].message)
        self.assertEqual(read_json(self.paths.versions_file("zlib"))["versions"],
                         [{"git-tree": TREE_B, "version-string": "1.2.11", "port-version": 3}])

    def test_malformed_history_is_reported(self):
        history_path = self.paths.versions_file("curl")
        history_path.parent.mkdir(parents=True)
        history_path.write_text("{not json", encoding="utf-8")

        results = self.updater.add_versions(["curl"])
        self.assertEqual(results[0].status, PortStatus.PARSE_ERROR)
        self.assertEqual(history_path.read_text(encoding="utf-8"), "{not json")

    def test_empty_port_name(self):
        results = self.updater.add_versions([""], keep_going=True)
        self.assertEqual(results[0].status, PortStatus.MISSING_DATA)
        self.assertIn("must not be empty", results[0].message)

    def test_invalid_utf8_manifest(self):
        (self.paths.port_dir("curl") / "vcpkg.json").write_bytes(b'{"name": "\xff"}')

        results = self.updater.add_versions(["curl"])
        self.assertEqual(results[0].status, PortStatus.CONFLICT)
        self.assertIn("not valid UTF-8", results[0].message)

        results = self.updater.add_versions(["curl"], skip_formatting_check=True)
        self.assertEqual(results[0].status, PortStatus.PARSE_ERROR)

    def test_stops_at_first_failure(self):
        write_port(self.root, "bzip2", "1.0.8")
        self.store.trees["bzip2"] = TREE_B

        results = self.updater.add_versions(["aaa-missing", "bzip2"])
        self.assertEqual([r.port_name for r in results], ["aaa-missing"])
        self.assertFalse(self.paths.versions_file("bzip2").exists())

    def test_keep_going(self):
        write_port(self.root, "bzip2", "1.0.8")
        self.store.trees["bzip2"] = TREE_B

        results = self.updater.add_versions(["aaa-missing", "bzip2", "curl"], keep_going=True)
        self.assertEqual([r.ok for r in results], [False, True, True])
        self.assertEqual(sorted(read_json(self.paths.baseline_path)["default"]), ["bzip2", "curl"])

    def test_write_failure_is_fatal(self):
        """Filesystem errors are not turned into per-port failures."""
        self.updater.add_versions(["curl"])
        write_port(self.root, "curl", "7.81.0", field="version-semver")
        self.store.trees["curl"] = TREE_B
        before = self.paths.versions_file("curl").read_bytes()

        with mock.patch("port_registry.registry_core.os.replace", side_effect=OSError("disk full")):
            with self.assertRaises(OSError):
                self.updater.add_versions(["curl"], keep_going=True)

        self.assertEqual(self.paths.versions_file("curl").read_bytes(), before)


if __name__ == "__main__":
    unittest.main()
