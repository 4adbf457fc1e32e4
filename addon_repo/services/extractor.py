"""
Build an AddonDescriptor from a parsed Kodi addon.xml.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import Dict, List, Optional

from addon_repo.domain.constraints import DEFAULT_GRAMMAR, get_grammar
from addon_repo.domain.errors import (
    InvalidConstraint,
    InvalidVersion,
    InvalidVersionString,
    MalformedDependency,
)
from addon_repo.domain.models import AddonDescriptor, Dependency, Extension, ExtensionChild
from addon_repo.domain.versions import AddonVersion
from addon_repo.services.manifest import ManifestTree

logger = logging.getLogger(__name__)

ID_QUERY = "/addon/@id"
VERSION_QUERY = "/addon/@version"
NAME_QUERY = "/addon/@name"
PROVIDER_QUERY = "/addon/@provider-name"
IMPORTS_QUERY = "/addon/requires/import"
EXTENSION_POINTS_QUERY = "/addon/extension/@point"
EXTENSIONS_QUERY = "/addon/extension"
METADATA_QUERY = "/addon/extension[@point='xbmc.addon.metadata']"

METADATA_POINT = "xbmc.addon.metadata"

# Serialization order of metadata fields in the index.
METADATA_FIELDS = (
    "summary",
    "description",
    "disclaimer",
    "platform",
    "license",
    "language",
    "forum",
    "website",
    "email",
    "source",
    "news",
)

_PREFERRED_LANGS = (None, "en_GB", "en_US", "en")

_TRUE_VALUES = {"true", "1", "yes"}


def _pick_localized(elements: List[ET.Element]) -> Optional[str]:
    """Pick the untagged or English entry of a possibly translated field."""
    by_lang: Dict[Optional[str], str] = {}
    for el in elements:
        text = "".join(el.itertext()).strip()
        by_lang.setdefault(el.get("lang"), text)
    for lang in _PREFERRED_LANGS:
        if lang in by_lang:
            return by_lang[lang]
    return next(iter(by_lang.values()), None)


def extract_metadata(tree: ManifestTree) -> Dict[str, str]:
    """Read the xbmc.addon.metadata fields (first such extension only)."""
    extensions = tree.elements(METADATA_QUERY)
    if not extensions:
        return {}
    extension = extensions[0]
    metadata: Dict[str, str] = {}
    for field in METADATA_FIELDS:
        value = _pick_localized(extension.findall(field))
        if value:
            metadata[field] = value
    return metadata


def extract_extensions(tree: ManifestTree) -> List[Extension]:
    """
    Collect the attributes and direct children of each non-metadata extension.

    Only the first ``<extension>`` per point is kept, matching the
    deduplicated ``extension_points`` set.
    """
    extensions: List[Extension] = []
    seen = set()
    for element in tree.elements(EXTENSIONS_QUERY):
        point = (element.get("point") or "").strip()
        if not point or point == METADATA_POINT or point in seen:
            continue
        seen.add(point)
        children = tuple(
            ExtensionChild(
                tag=child.tag,
                attributes=dict(child.attrib),
                text=(child.text or "").strip() or None,
            )
            for child in element
        )
        attributes = {k: v for k, v in element.attrib.items() if k != "point"}
        extensions.append(Extension(point=point, attributes=attributes, children=children))
    return extensions


def extract_dependencies(
    tree: ManifestTree,
    addon_id: str,
    grammar: str = DEFAULT_GRAMMAR,
) -> List[Dependency]:
    parse_constraint = get_grammar(grammar)
    dependencies: List[Dependency] = []
    seen = set()
    for position, element in enumerate(tree.elements(IMPORTS_QUERY), start=1):
        dep_id = (element.get("addon") or "").strip()
        if not dep_id:
            raise MalformedDependency(addon_id, f"import #{position} has no 'addon' attribute")
        if dep_id in seen:
            raise MalformedDependency(addon_id, f"'{dep_id}' is imported more than once")
        seen.add(dep_id)

        constraint = element.get("version")
        if constraint is not None:
            constraint = constraint.strip() or None
        if constraint is not None:
            try:
                parse_constraint(constraint)
            except InvalidConstraint as e:
                raise MalformedDependency(addon_id, f"import '{dep_id}': {e}") from e

        optional = (element.get("optional") or "").strip().lower() in _TRUE_VALUES
        dependencies.append(Dependency(addon_id=dep_id, constraint=constraint, optional=optional))
    return dependencies


def extract_descriptor(
    tree: ManifestTree,
    checksum: bytes,
    grammar: str = DEFAULT_GRAMMAR,
) -> AddonDescriptor:
    """
    Combine a manifest tree and a package checksum into an AddonDescriptor.

    Raises:
        MissingRequiredField: id or version is absent.
        InvalidVersion: the version does not parse.
        MalformedDependency: an import has no id, is repeated, or has a bad constraint.
    """
    addon_id = tree.require(ID_QUERY, "id")
    raw_version = tree.require(VERSION_QUERY, "version")
    try:
        version = AddonVersion.parse(raw_version)
    except InvalidVersionString as e:
        raise InvalidVersion(addon_id, raw_version) from e

    dependencies = extract_dependencies(tree, addon_id, grammar)
    extension_points = frozenset(p for p in tree.query(EXTENSION_POINTS_QUERY) if p)

    descriptor = AddonDescriptor(
        id=addon_id,
        version=version,
        name=tree.first(NAME_QUERY) or None,
        provider_name=tree.first(PROVIDER_QUERY) or None,
        dependencies=tuple(dependencies),
        extension_points=extension_points,
        extensions=tuple(extract_extensions(tree)),
        metadata=extract_metadata(tree),
        checksum=checksum,
        source_path=tree.source_path.parent if tree.source_path else None,
    )
    logger.debug(
        f"Extracted {descriptor.id} {descriptor.version} "
        f"({len(descriptor.dependencies)} dependencies, "
        f"{len(descriptor.extension_points)} extension points)"
    )
    return descriptor
