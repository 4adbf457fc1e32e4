"""
Render descriptors into the repository index (addons.xml) and its checksum
record, and read a published index back.

Serialization is pure: nothing here touches the filesystem.
"""

from __future__ import annotations

import hashlib
import json
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from typing import Iterable, List

from addon_repo.domain.models import (
    AddonDescriptor,
    Dependency,
    Extension,
    ExtensionChild,
    IndexChecksumRecord,
    IndexEntry,
    RepositoryIndex,
)
from addon_repo.services.checksum import DEFAULT_ALGORITHM, compute_checksum
from addon_repo.services.extractor import METADATA_FIELDS, METADATA_POINT
from addon_repo.services.manifest import parse_manifest
from addon_repo.services.scanner import sort_descriptors

INDEX_FILENAME = "addons.xml"
MD5_FILENAME = "addons.xml.md5"
CHECKSUM_RECORD_FILENAME = "addons.xml.checksum.json"

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'


def _addon_element(descriptor: AddonDescriptor) -> ET.Element:
    attrs = {"id": descriptor.id}
    if descriptor.name is not None:
        attrs["name"] = descriptor.name
    attrs["version"] = descriptor.version.raw
    if descriptor.provider_name is not None:
        attrs["provider-name"] = descriptor.provider_name
    addon = ET.Element("addon", attrs)

    if descriptor.dependencies:
        requires = ET.SubElement(addon, "requires")
        for dep in descriptor.dependencies:
            dep_attrs = {"addon": dep.addon_id}
            if dep.constraint is not None:
                dep_attrs["version"] = dep.constraint
            if dep.optional:
                dep_attrs["optional"] = "true"
            ET.SubElement(requires, "import", dep_attrs)

    details = {e.point: e for e in descriptor.extensions}
    for point in sorted(descriptor.extension_points):
        extension = ET.SubElement(addon, "extension", {"point": point})
        if point == METADATA_POINT:
            for field in METADATA_FIELDS:
                value = descriptor.metadata.get(field)
                if value:
                    ET.SubElement(extension, field).text = value
        elif point in details:
            detail = details[point]
            extension.attrib.update(detail.attributes)
            for child in detail.children:
                ET.SubElement(extension, child.tag, child.attributes).text = child.text
    return addon


def render_document(descriptors: Iterable[AddonDescriptor]) -> bytes:
    """Render addons.xml for descriptors that are already sorted."""
    root = ET.Element("addons")
    for descriptor in descriptors:
        root.append(_addon_element(descriptor))
    ET.indent(root, space="  ")
    body = ET.tostring(root, encoding="unicode")
    return (XML_DECLARATION + body + "\n").encode("utf-8")


def serialize_index(
    descriptors: Iterable[AddonDescriptor],
    algorithm: str = DEFAULT_ALGORITHM,
) -> RepositoryIndex:
    """
    Build the RepositoryIndex for ``descriptors``.

    Descriptors are sorted by id; duplicate ids raise DuplicateAddonId.
    """
    ordered = sort_descriptors(list(descriptors))
    document = render_document(ordered)
    return RepositoryIndex(
        descriptors=tuple(ordered),
        algorithm=algorithm,
        document=document,
        index_checksum=compute_checksum([(INDEX_FILENAME, document)], algorithm),
        built_at=datetime.now(timezone.utc),
    )


def build_checksum_record(index: RepositoryIndex) -> IndexChecksumRecord:
    return IndexChecksumRecord(
        algorithm=index.algorithm,
        index_checksum=index.index_checksum.hex(),
        addons={d.id: d.checksum_hex for d in index.descriptors},
    )


def render_checksum_record(index: RepositoryIndex) -> bytes:
    record = build_checksum_record(index)
    text = json.dumps(record.model_dump(), indent=2, sort_keys=True)
    return (text + "\n").encode("utf-8")


def render_md5(document: bytes) -> bytes:
    """Kodi's addons.xml.md5: the hex md5 of the exact document bytes."""
    return hashlib.md5(document).hexdigest().encode("ascii")


def verify_index(document: bytes, record: IndexChecksumRecord) -> bool:
    """True if ``document`` matches the digest stored in ``record``."""
    actual = compute_checksum([(INDEX_FILENAME, document)], record.algorithm)
    return actual.hex() == record.index_checksum


# ---------------------------------------------------------------------------
# Reading a published index
# ---------------------------------------------------------------------------


def parse_index(document: bytes) -> List[IndexEntry]:
    """
    Parse addons.xml back into IndexEntry records, in document order.

    Raises MalformedManifest if the document is not well-formed.
    """
    tree = parse_manifest(document)
    entries: List[IndexEntry] = []
    for addon in tree.elements("/addons/addon"):
        dependencies = [
            Dependency(
                addon_id=imp.get("addon", ""),
                constraint=imp.get("version"),
                optional=imp.get("optional") == "true",
            )
            for imp in addon.findall("requires/import")
        ]
        points: List[str] = []
        extensions: List[Extension] = []
        metadata = {}
        for extension in addon.findall("extension"):
            point = extension.get("point")
            if not point or point in points:
                continue
            points.append(point)
            if point == METADATA_POINT:
                for child in extension:
                    if child.tag in METADATA_FIELDS and child.text:
                        metadata[child.tag] = child.text
            else:
                extensions.append(
                    Extension(
                        point=point,
                        attributes={k: v for k, v in extension.attrib.items() if k != "point"},
                        children=tuple(
                            ExtensionChild(tag=c.tag, attributes=dict(c.attrib), text=c.text)
                            for c in extension
                        ),
                    )
                )
        entries.append(
            IndexEntry(
                id=addon.get("id", ""),
                version=addon.get("version", ""),
                name=addon.get("name"),
                provider_name=addon.get("provider-name"),
                dependencies=dependencies,
                extension_points=points,
                extensions=extensions,
                metadata=metadata,
            )
        )
    return entries
