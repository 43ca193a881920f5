"""
Port-Registry package

This package maintains the per-port version history files and the baseline of a
port registry, and verifies that every port's declared version and committed
git tree agree with them.
"""

__version__ = "0.1.0"

# Import main components
from .version_types import Scheme, VersionT, SchemedVersion, HistoryEntry
from .registry_results import (
    RegistryError, VersionParseError, VersionConflictError, MissingDataError, ContentStoreError,
    UpdateStatus, UpdateResult, PortStatus, PortResult,
)
from .registry_core import RegistryCore, RegistryPaths, write_atomic
from .content_store import GitContentStore
from .port_loader import PortManifest, load_port, parse_port_text
from .registry_updater import RegistryUpdater
from .registry_verifier import RegistryVerifier
from .registry_cli import main

__all__ = [
    'Scheme', 'VersionT', 'SchemedVersion', 'HistoryEntry',
    'RegistryError', 'VersionParseError', 'VersionConflictError', 'MissingDataError', 'ContentStoreError',
    'UpdateStatus', 'UpdateResult', 'PortStatus', 'PortResult',
    'RegistryCore', 'RegistryPaths', 'write_atomic',
    'GitContentStore',
    'PortManifest', 'load_port', 'parse_port_text',
    'RegistryUpdater',
    'RegistryVerifier',
    'main',
]
