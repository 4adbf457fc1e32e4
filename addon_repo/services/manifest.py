"""
Addon manifest parsing and path queries.

Queries use a small XPath subset on top of ElementTree's ElementPath:

    /addon/@id                               attribute of the root element
    /addon/requires/import/@addon            attribute of every matching element
    /addon/extension[@point='x']/summary     element text (all text content)
    /addon/extension/summary/text()          direct text of the element
    requires/import                          relative to the root element

Absolute queries name the root element (or ``*``) as their first step. The
steps in between are handed to ElementPath, so tags, ``*``, ``//``,
``[@attr]``, ``[@attr='v']``, ``[tag='text']`` and ``[n]`` predicates work.
Results are returned in document order as stripped strings.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from functools import lru_cache
from pathlib import Path
from typing import List, NamedTuple, Optional, Union

from addon_repo.domain.errors import (
    InvalidQuery,
    MalformedManifest,
    MissingRequiredField,
    UnreadableFile,
)

logger = logging.getLogger(__name__)


class _Query(NamedTuple):
    absolute: bool
    root_tag: Optional[str]
    path: Optional[str]
    selector: str  # "attr", "text" or "element"
    attribute: Optional[str]


def _split_steps(expr: str) -> List[str]:
    """Split on '/' outside of predicates and quoted strings."""
    steps: List[str] = []
    current: List[str] = []
    depth = 0
    quote: Optional[str] = None
    for ch in expr:
        if quote:
            if ch == quote:
                quote = None
        elif ch in ("'", '"'):
            quote = ch
        elif ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
            if depth < 0:
                raise InvalidQuery(expr, "unbalanced ']'")
        elif ch == "/" and depth == 0:
            steps.append("".join(current))
            current = []
            continue
        current.append(ch)
    if quote or depth:
        raise InvalidQuery(expr, "unterminated predicate or string")
    steps.append("".join(current))
    return steps


@lru_cache(maxsize=256)
def compile_query(expr: str) -> _Query:
    text = (expr or "").strip()
    if not text:
        raise InvalidQuery(expr, "empty query")

    absolute = text.startswith("/") and not text.startswith("//")
    if text.startswith("//"):
        body = ".//" + text[2:]
    elif absolute:
        body = text[1:]
    else:
        body = text

    steps = _split_steps(body)
    if not steps or steps[-1] == "":
        raise InvalidQuery(expr, "trailing '/'")

    selector, attribute = "element", None
    last = steps[-1]
    if last.startswith("@"):
        selector, attribute = "attr", last[1:]
        if not attribute:
            raise InvalidQuery(expr, "empty attribute name")
        steps = steps[:-1]
    elif last == "text()":
        selector = "text"
        steps = steps[:-1]

    for step in steps:
        if step.startswith("@") or step == "text()":
            raise InvalidQuery(expr, f"'{step}' is only allowed as the last step")

    root_tag = None
    if absolute:
        if not steps or not steps[0]:
            raise InvalidQuery(expr, "absolute query must name the root element")
        root_tag = steps[0]
        if "[" in root_tag:
            raise InvalidQuery(expr, "predicates on the root element are not supported")
        steps = steps[1:]

    path = "/".join(steps) if steps else None
    if path:
        try:
            # ElementPath compiles (and caches) the path on first use.
            ET.Element("probe").findall(path)
        except (SyntaxError, KeyError) as e:
            raise InvalidQuery(expr, str(e)) from e

    return _Query(absolute, root_tag, path, selector, attribute)


class ManifestTree:
    """
    A parsed manifest. Read-only: queries never modify the tree.
    """

    def __init__(self, root: ET.Element, source_path: Optional[Path] = None):
        self._root = root
        self.source_path = source_path

    @property
    def root_tag(self) -> str:
        return self._root.tag

    def elements(self, expr: str) -> List[ET.Element]:
        """Return the element nodes selected by ``expr`` (selector step ignored)."""
        q = compile_query(expr)
        return self._select(q)

    def _select(self, q: _Query) -> List[ET.Element]:
        if q.absolute and q.root_tag not in ("*", self._root.tag):
            return []
        if q.path is None:
            return [self._root]
        return self._root.findall(q.path)

    def query(self, expr: str) -> List[str]:
        """Return the values selected by ``expr`` in document order."""
        q = compile_query(expr)
        values: List[str] = []
        for node in self._select(q):
            if q.selector == "attr":
                value = node.get(q.attribute)
                if value is None:
                    continue
                values.append(value.strip())
            elif q.selector == "text":
                if node.text is None:
                    continue
                values.append(node.text.strip())
            else:
                values.append("".join(node.itertext()).strip())
        return values

    def first(self, expr: str) -> Optional[str]:
        values = self.query(expr)
        return values[0] if values else None

    def require(self, expr: str, field: str) -> str:
        """Return the first non-blank value of a required field."""
        for value in self.query(expr):
            if value:
                return value
        raise MissingRequiredField(field, self.source_path)


def parse_manifest(
    content: Union[str, bytes],
    source_path: Optional[Path] = None,
) -> ManifestTree:
    """
    Parse manifest markup into a :class:`ManifestTree`.

    Raises MalformedManifest if the markup is not well-formed.
    """
    if content is None or (isinstance(content, (str, bytes)) and not content.strip()):
        raise MalformedManifest(source_path, "empty document")
    try:
        root = ET.fromstring(content)
    except ET.ParseError as e:
        raise MalformedManifest(source_path, str(e)) from e
    except ValueError as e:
        # e.g. a str with an encoding declaration ElementTree refuses
        raise MalformedManifest(source_path, str(e)) from e
    logger.debug(f"Parsed manifest {source_path or '<memory>'} (root <{root.tag}>)")
    return ManifestTree(root, source_path)


def read_manifest(path: Path) -> ManifestTree:
    """Read and parse a manifest file."""
    try:
        data = path.read_bytes()
    except OSError as e:
        raise UnreadableFile(path, str(e)) from e
    return parse_manifest(data, path)
