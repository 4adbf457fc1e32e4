"""
Exception hierarchy for the addon repository builder.

Per-addon errors derive from :class:`AddonError`; the scanner records them as
failures and keeps going. :class:`DuplicateAddonId` and :class:`BuildFailed`
abort the whole build.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence, Union

PathLike = Union[str, Path]


class AddonRepoError(Exception):
    """Base exception for all repository build errors."""


class InvalidQuery(AddonRepoError):
    """Raised when a manifest path query cannot be compiled."""

    def __init__(self, query: str, reason: str):
        self.query = query
        self.reason = reason
        super().__init__(f"Invalid manifest query {query!r}: {reason}")


# ---------------------------------------------------------------------------
# Per-addon errors
# ---------------------------------------------------------------------------


class AddonError(AddonRepoError):
    """Base class for errors that exclude a single addon from the index."""


class MalformedManifest(AddonError):
    """Raised when a manifest is not well-formed markup."""

    def __init__(self, source_path: Optional[PathLike], reason: str):
        self.source_path = str(source_path) if source_path is not None else None
        self.reason = reason
        super().__init__(f"Malformed manifest {self.source_path or '<memory>'}: {reason}")


class MissingRequiredField(AddonError):
    """Raised when a required manifest field (id, version) is absent."""

    def __init__(self, field: str, source_path: Optional[PathLike]):
        self.field = field
        self.source_path = str(source_path) if source_path is not None else None
        super().__init__(
            f"Missing required field '{field}' in {self.source_path or '<memory>'}"
        )


class MalformedDependency(AddonError):
    """Raised when a dependency entry of an addon cannot be used."""

    def __init__(self, addon_id: str, reason: str):
        self.addon_id = addon_id
        self.reason = reason
        super().__init__(f"Malformed dependency in addon '{addon_id}': {reason}")


class InvalidVersion(AddonError):
    """Raised when an addon's version string does not parse."""

    def __init__(self, addon_id: str, raw: str):
        self.addon_id = addon_id
        self.raw = raw
        super().__init__(f"Invalid version {raw!r} for addon '{addon_id}'")


class UnreadableFile(AddonError):
    """Raised when a package file cannot be read while checksumming."""

    def __init__(self, path: PathLike, reason: str = ""):
        self.path = str(path)
        self.reason = reason
        message = f"Unreadable file {self.path}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class PackageChanged(AddonError):
    """Raised when an addon's files no longer match the checksum it was indexed with."""

    def __init__(self, addon_id: str, expected: str, actual: str):
        self.addon_id = addon_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Addon '{addon_id}' changed since it was indexed "
            f"(indexed {expected}, now {actual})"
        )


# ---------------------------------------------------------------------------
# Build-level errors
# ---------------------------------------------------------------------------


class DuplicateAddonId(AddonRepoError):
    """Raised when two packages declare the same addon id."""

    def __init__(self, addon_id: str, path_a: Optional[PathLike], path_b: Optional[PathLike]):
        self.addon_id = addon_id
        self.path_a = str(path_a) if path_a is not None else None
        self.path_b = str(path_b) if path_b is not None else None
        super().__init__(
            f"Duplicate addon id '{addon_id}' declared by {self.path_a} and {self.path_b}"
        )


class BuildFailed(AddonRepoError):
    """Raised when per-addon failures are configured to fail the build."""

    def __init__(self, failures: Sequence):
        self.failures: List = list(failures)
        paths = ", ".join(f.path for f in self.failures)
        super().__init__(f"{len(self.failures)} addon(s) failed to index: {paths}")


# ---------------------------------------------------------------------------
# Value parsing errors (pure parsers, no addon context)
# ---------------------------------------------------------------------------


class InvalidVersionString(ValueError):
    """Raised by the version parser for text that is not a version."""


class InvalidConstraint(ValueError):
    """Raised by a constraint grammar for text it does not accept."""
