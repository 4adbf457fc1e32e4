"""
Dependency constraint grammars.

The constraint text of a dependency is stored verbatim in the index; a grammar
only decides whether the text is acceptable. Grammars are looked up by name so
a repository can switch (``RepositoryConfig.constraint_grammar``) without
touching the extractor.

``comparator`` (default)
    Comma separated clauses ``<op><version>`` with ``op`` one of ``>=``,
    ``<=``, ``>``, ``<``, ``==``, ``!=``, ``~=``. A bare version is Kodi's
    ``<import version="...">`` form and means ``>=version``.

``kodi``
    A single bare version (the minimum accepted version), nothing else.
"""

from __future__ import annotations

import re
from typing import Callable, Dict, List, Tuple

from pydantic import BaseModel, ConfigDict, Field

from addon_repo.domain.errors import InvalidConstraint, InvalidVersionString
from addon_repo.domain.versions import AddonVersion

DEFAULT_GRAMMAR = "comparator"

_CLAUSE_RE = re.compile(r"^(?P<op>>=|<=|==|!=|~=|>|<)?\s*(?P<version>\S+)$")


class ConstraintClause(BaseModel):
    """One comparison of a constraint, e.g. ``>=1.0.0``."""

    model_config = ConfigDict(frozen=True)

    operator: str = Field(description="Comparison operator.")
    version: AddonVersion = Field(description="Version operand.")


class VersionConstraint(BaseModel):
    """A parsed constraint; all clauses must hold."""

    model_config = ConfigDict(frozen=True)

    raw: str = Field(description="Constraint text exactly as written.")
    grammar: str = Field(description="Name of the grammar that parsed it.")
    clauses: Tuple[ConstraintClause, ...] = Field(default=())


ConstraintParser = Callable[[str], VersionConstraint]

GRAMMAR_REGISTRY: Dict[str, ConstraintParser] = {}


def register_grammar(name: str, parser: ConstraintParser) -> None:
    """Register a constraint parser under ``name``."""
    GRAMMAR_REGISTRY[name] = parser


def get_grammar(name: str) -> ConstraintParser:
    try:
        return GRAMMAR_REGISTRY[name]
    except KeyError:
        raise ValueError(
            f"Unknown constraint grammar {name!r}; known: {sorted(GRAMMAR_REGISTRY)}"
        ) from None


def _parse_version(text: str, raw: str) -> AddonVersion:
    try:
        return AddonVersion.parse(text)
    except InvalidVersionString as e:
        raise InvalidConstraint(f"{raw!r}: {e}") from e


def parse_comparator(raw: str) -> VersionConstraint:
    text = (raw or "").strip()
    if not text:
        raise InvalidConstraint("empty constraint")

    clauses: List[ConstraintClause] = []
    for part in text.split(","):
        part = part.strip()
        match = _CLAUSE_RE.match(part)
        if not match:
            raise InvalidConstraint(f"{raw!r}: cannot parse clause {part!r}")
        op = match.group("op") or ">="
        clauses.append(
            ConstraintClause(operator=op, version=_parse_version(match.group("version"), raw))
        )
    return VersionConstraint(raw=text, grammar="comparator", clauses=tuple(clauses))


def parse_kodi(raw: str) -> VersionConstraint:
    text = (raw or "").strip()
    if not text:
        raise InvalidConstraint("empty constraint")
    version = _parse_version(text, raw)
    return VersionConstraint(
        raw=text,
        grammar="kodi",
        clauses=(ConstraintClause(operator=">=", version=version),),
    )


register_grammar("comparator", parse_comparator)
register_grammar("kodi", parse_kodi)
