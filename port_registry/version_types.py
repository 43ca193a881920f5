#!/usr/bin/env python3
from dataclasses import dataclass
from enum import Enum
from typing import Dict


class Scheme(Enum):
    """Version scheme declared by a port. Only used as an identity tag."""
    RELAXED = "relaxed"
    SEMVER = "semver"
    DATE = "date"
    STRING = "string"

    @property
    def field_name(self) -> str:
        """Serialized field tag carrying the version text for this scheme."""
        return SCHEME_FIELDS[self]

    @classmethod
    def from_field_name(cls, field_name: str) -> "Scheme":
        """
        Map a serialized field tag back to its scheme.

        Args:
            field_name: One of the tags in SCHEME_FIELDS

        Returns:
            Scheme: The matching scheme

        Raises:
            ValueError: If the tag is not a known version field
        """
        for scheme, name in SCHEME_FIELDS.items():
            if name == field_name:
                return scheme
        raise ValueError(f"Unknown version field: {field_name}")


SCHEME_FIELDS: Dict[Scheme, str] = {
    Scheme.RELAXED: "version",
    Scheme.SEMVER: "version-semver",
    Scheme.DATE: "version-date",
    Scheme.STRING: "version-string",
}


@dataclass(frozen=True)
class VersionT:
    """Version text plus port revision. Equality is structural."""
    text: str
    port_version: int = 0

    def __post_init__(self):
        if not isinstance(self.port_version, int) or self.port_version < 0:
            raise ValueError(f"port-version must be a non-negative integer, got {self.port_version!r}")

    def __str__(self) -> str:
        if self.port_version == 0:
            return self.text
        return f"{self.text}#{self.port_version}"


@dataclass(frozen=True)
class SchemedVersion:
    version: VersionT
    scheme: Scheme

    def __str__(self) -> str:
        return str(self.version)


@dataclass(frozen=True)
class HistoryEntry:
    """A recorded version paired with the git tree it was recorded against."""
    version: SchemedVersion
    content_hash: str
