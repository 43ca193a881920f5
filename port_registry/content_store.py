#!/usr/bin/env python3
import re
import logging
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .registry_results import ContentStoreError

TREE_SHA_RE = re.compile(r"[0-9a-f]{40}")


class GitContentStore:
    """
    Git object lookups for a registry checkout.

    Ports are identified by the tree object of their directory in HEAD, so only
    committed content is ever compared against the version files.
    """

    def __init__(self, registry_root: Path, git_executable: str = "git"):
        self.logger = logging.getLogger("port_registry.content_store")
        self.registry_root = Path(registry_root)
        self.git_executable = git_executable

    def _run_git(self, args: Sequence[str]) -> subprocess.CompletedProcess:
        cmd = [self.git_executable, *args]
        self.logger.debug(f"Running: {' '.join(cmd)}")
        try:
            return subprocess.run(cmd, cwd=str(self.registry_root), capture_output=True)
        except OSError as e:
            raise ContentStoreError(f"Failed to run {self.git_executable}: {e}") from e

    def fetch(self, treeish: str) -> Optional[bytes]:
        """
        Read a file out of the object store.

        Args:
            treeish: Object spec such as "<tree sha>:vcpkg.json"

        Returns:
            Optional[bytes]: File contents, or None if the object does not exist
        """
        cp = self._run_git(["show", treeish])
        if cp.returncode != 0:
            self.logger.debug(f"Object not found: {treeish}")
            return None
        return cp.stdout

    def local_port_trees(self, ports_dir: str = "ports") -> Dict[str, str]:
        """
        Map every port directory committed in HEAD to its git tree.

        Args:
            ports_dir: Ports directory relative to the registry root

        Returns:
            Dict[str, str]: Port name to tree sha

        Raises:
            ContentStoreError: If git fails or prints something unexpected
        """
        cp = self._run_git(["ls-tree", "-d", "HEAD", "--", f"{ports_dir}/"])
        if cp.returncode != 0:
            stderr = cp.stderr.decode("utf-8", errors="replace").strip()
            raise ContentStoreError(f"git ls-tree failed: {stderr}")

        trees = {}
        for line in cp.stdout.decode("utf-8").splitlines():
            meta, sep, path = line.partition("\t")
            parts = meta.split()
            if not sep or len(parts) != 3 or not TREE_SHA_RE.fullmatch(parts[2]):
                raise ContentStoreError(f"Unexpected git ls-tree output: {line!r}")
            trees[Path(path).name] = parts[2]
        self.logger.debug(f"Found {len(trees)} committed port trees")
        return trees

    def uncommitted_changes(self, path: Path) -> List[str]:
        """Paths under path that differ from HEAD, as reported by git status."""
        cp = self._run_git(["status", "--porcelain", "--", str(path)])
        if cp.returncode != 0:
            stderr = cp.stderr.decode("utf-8", errors="replace").strip()
            raise ContentStoreError(f"git status failed: {stderr}")
        return [line[3:] for line in cp.stdout.decode("utf-8").splitlines() if line.strip()]
