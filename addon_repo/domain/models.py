"""
Pydantic models for the addon repository.

This module defines the data models used throughout the application:
- Repository configuration
- Addon descriptors and their dependencies
- The built repository index and its checksum record
- Scan and build results

Descriptors and the index are immutable once created.
"""

from __future__ import annotations

import hashlib
from datetime import datetime
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from addon_repo.domain.constraints import DEFAULT_GRAMMAR, get_grammar
from addon_repo.domain.versions import AddonVersion


# ---------------------------------------------------------------------------
# Repository Configuration Models
# ---------------------------------------------------------------------------


class RepositoryConfig(BaseModel):
    """
    Top-level configuration for the addon repository.

    Relative directories are resolved against the data directory, except
    ``zip_cache_dir`` which is resolved against the addons directory.

    Persisted at: <DATA_DIR>/repository.json
    """

    repository_name: str = Field(
        default="Kodi addon repository",
        description="Human-friendly name shown on the landing page.",
    )
    description: str = Field(
        default="Addon repository served with FastAPI.",
        description="Longer description shown on the landing page.",
    )
    addons_dir: str = Field(
        default="addons",
        description="Directory whose immediate subdirectories are addon packages.",
    )
    output_dir: str = Field(
        default="repo",
        description="Directory the index artifacts are published to.",
    )
    zip_cache_dir: str = Field(
        default=".zips",
        description="Directory where served addon archives are cached.",
    )
    manifest_name: str = Field(
        default="addon.xml",
        description="File name of the manifest inside each addon directory.",
    )
    checksum_algorithm: str = Field(
        default="sha256",
        description="hashlib algorithm used for addon and index checksums.",
    )
    constraint_grammar: str = Field(
        default=DEFAULT_GRAMMAR,
        description="Grammar used to validate dependency version constraints.",
    )
    max_workers: int = Field(
        default=4,
        ge=1,
        description="Maximum number of addons extracted concurrently.",
    )
    fail_on_error: bool = Field(
        default=False,
        description="If True, any per-addon failure fails the whole build.",
    )
    exclude_patterns: List[str] = Field(
        default_factory=list,
        description="fnmatch patterns for package files left out of addon checksums and archives.",
    )
    write_md5: bool = Field(
        default=True,
        description="If True, also publish addons.xml.md5 for Kodi clients.",
    )
    refresh_interval_seconds: int = Field(
        default=3600,
        ge=60,
        description="How often (in seconds) the server rebuilds the index. Minimum: 60 seconds.",
    )
    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="Timestamp when this repository configuration was first created.",
    )

    @field_validator("checksum_algorithm")
    @classmethod
    def _check_algorithm(cls, value: str) -> str:
        try:
            hashlib.new(value)
        except (ValueError, TypeError) as e:
            raise ValueError(f"Unsupported checksum algorithm {value!r}") from e
        return value

    @field_validator("constraint_grammar")
    @classmethod
    def _check_grammar(cls, value: str) -> str:
        get_grammar(value)
        return value


# ---------------------------------------------------------------------------
# Addon Models
# ---------------------------------------------------------------------------


class Dependency(BaseModel):
    """
    A single ``<import>`` entry of an addon manifest.

    The constraint is kept verbatim; it is never resolved against other addons.
    """

    model_config = ConfigDict(frozen=True)

    addon_id: str = Field(min_length=1, description="Id of the required addon.")
    constraint: Optional[str] = Field(
        default=None,
        description="Version constraint text, e.g. '>=1.0.0' or Kodi's bare minimum version.",
    )
    optional: bool = Field(default=False, description="Kodi 'optional' import flag.")


class ExtensionChild(BaseModel):
    """A direct child element of an ``<extension>``, e.g. ``<provides>video</provides>``."""

    model_config = ConfigDict(frozen=True)

    tag: str
    attributes: Dict[str, str] = Field(default_factory=dict)
    text: Optional[str] = None


class Extension(BaseModel):
    """
    An ``<extension>`` entry other than xbmc.addon.metadata.

    Kodi reads attributes such as ``library`` and children such as
    ``<provides>`` from these, so they are carried into the index.
    """

    model_config = ConfigDict(frozen=True)

    point: str = Field(min_length=1, description="Extension point name.")
    attributes: Dict[str, str] = Field(
        default_factory=dict,
        description="Attributes other than 'point', in manifest order.",
    )
    children: Tuple[ExtensionChild, ...] = Field(default=())


class AddonDescriptor(BaseModel):
    """
    Typed record for one discovered addon package.

    Created fresh on every build and never mutated. ``source_path`` is only
    used while building and is excluded from any serialized output.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, description="Addon id chosen by the author.")
    version: AddonVersion = Field(description="Parsed addon version.")
    name: Optional[str] = Field(default=None, description="Display name.")
    provider_name: Optional[str] = Field(default=None, description="Addon author/provider.")
    dependencies: Tuple[Dependency, ...] = Field(
        default=(),
        description="Required addons in manifest order, unique by id.",
    )
    extension_points: FrozenSet[str] = Field(
        default_factory=frozenset,
        description="Capability tags the addon declares (extension point names).",
    )
    extensions: Tuple[Extension, ...] = Field(
        default=(),
        description="Details of non-metadata extensions, first entry per point, in manifest order.",
    )
    metadata: Dict[str, str] = Field(
        default_factory=dict,
        description="Fields of the xbmc.addon.metadata extension (summary, description, ...).",
    )
    checksum: bytes = Field(description="Digest over the package file set.")
    source_path: Optional[Path] = Field(
        default=None,
        exclude=True,
        description="Package directory the descriptor was built from.",
    )

    @property
    def checksum_hex(self) -> str:
        return self.checksum.hex()

    @property
    def sort_key(self) -> bytes:
        return self.id.encode("utf-8")


# ---------------------------------------------------------------------------
# Index Models
# ---------------------------------------------------------------------------


class RepositoryIndex(BaseModel):
    """
    The aggregate index of one build.

    ``document`` is the serialized addons.xml and ``index_checksum`` its digest.
    """

    model_config = ConfigDict(frozen=True)

    descriptors: Tuple[AddonDescriptor, ...] = Field(default=())
    algorithm: str = Field(default="sha256")
    document: bytes = Field(description="Serialized repository index document.")
    index_checksum: bytes = Field(description="Digest over the serialized document.")
    built_at: Optional[datetime] = Field(default=None)

    def get(self, addon_id: str) -> Optional[AddonDescriptor]:
        for descriptor in self.descriptors:
            if descriptor.id == addon_id:
                return descriptor
        return None

    @property
    def addon_ids(self) -> List[str]:
        return [d.id for d in self.descriptors]


class IndexChecksumRecord(BaseModel):
    """
    Companion record for the index document.

    Persisted next to addons.xml as addons.xml.checksum.json.
    """

    algorithm: str
    index_checksum: str = Field(description="Hex digest of addons.xml.")
    addons: Dict[str, str] = Field(
        default_factory=dict,
        description="Per-addon hex digests keyed by addon id.",
    )


class IndexEntry(BaseModel):
    """An addon as read back from a published addons.xml."""

    id: str
    version: str
    name: Optional[str] = None
    provider_name: Optional[str] = None
    dependencies: List[Dependency] = Field(default_factory=list)
    extension_points: List[str] = Field(default_factory=list)
    extensions: List[Extension] = Field(default_factory=list)
    metadata: Dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Scan / Build Results
# ---------------------------------------------------------------------------


class ScanFailure(BaseModel):
    """An addon that was left out of the index, and why."""

    path: str = Field(description="Addon package directory.")
    kind: str = Field(description="Error class name, e.g. 'MissingRequiredField'.")
    message: str = Field(description="Human readable error message.")


class ScanReport(BaseModel):
    """Descriptors (sorted by id) and failures (sorted by path) of one scan."""

    descriptors: List[AddonDescriptor] = Field(default_factory=list)
    failures: List[ScanFailure] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


class BuildResult(BaseModel):
    """Outcome of a full build: the index, skipped addons and written files."""

    index: RepositoryIndex
    failures: List[ScanFailure] = Field(default_factory=list)
    artifacts: List[Path] = Field(default_factory=list)
