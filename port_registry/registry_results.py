#!/usr/bin/env python3
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .version_types import VersionT


class RegistryError(Exception):
    """Base exception for port registry operations."""
    pass

class VersionParseError(RegistryError):
    """Exception for malformed version history, baseline or manifest documents."""
    pass

class VersionConflictError(RegistryError):
    """Exception for local changes that contradict the recorded versions."""
    pass

class MissingDataError(RegistryError):
    """Exception for absent ports, version files or git objects."""
    pass

class ContentStoreError(RegistryError):
    """Exception raised when the git content store cannot be queried."""
    pass


class UpdateStatus(Enum):
    ADDED = "added"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    CONFLICT = "conflict"


@dataclass(frozen=True)
class UpdateResult:
    """Outcome of updating a single version history or baseline file."""
    status: UpdateStatus
    message: str

    @property
    def ok(self) -> bool:
        return self.status != UpdateStatus.CONFLICT


class PortStatus(Enum):
    OK = "ok"
    PARSE_ERROR = "parse-error"
    CONFLICT = "conflict"
    MISSING_DATA = "missing-data"


@dataclass(frozen=True)
class PortResult:
    """
    Per-port outcome handed back to the orchestrating loop.

    The loop, not the checking code, decides whether a failure stops the run.
    """
    port_name: str
    status: PortStatus
    message: str
    content_hash: Optional[str] = None
    version: Optional[VersionT] = None

    @property
    def ok(self) -> bool:
        return self.status == PortStatus.OK

    @classmethod
    def from_error(cls, port_name: str, error: RegistryError) -> "PortResult":
        """
        Build a failed result from a registry exception.

        Args:
            port_name: Name of the port being processed
            error: The exception raised while processing it

        Returns:
            PortResult: Failed result carrying the exception message
        """
        if isinstance(error, VersionParseError):
            status = PortStatus.PARSE_ERROR
        elif isinstance(error, VersionConflictError):
            status = PortStatus.CONFLICT
        else:
            status = PortStatus.MISSING_DATA
        return cls(port_name, status, str(error))
