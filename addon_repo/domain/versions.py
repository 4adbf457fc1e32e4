"""
Structured addon versions.

Kodi addons use dotted numeric versions with an optional ``~`` pre-release
tag (``1.2.0~beta1``). Semver style ``-rc.1`` tags and ``+build`` suffixes are
accepted as well.
"""

from __future__ import annotations

import re
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from addon_repo.domain.errors import InvalidVersionString

MAX_RELEASE_COMPONENTS = 4

_VERSION_RE = re.compile(
    r"^(?P<release>\d+(?:\.\d+){0,%d})"
    r"(?:[~-](?P<pre>[0-9A-Za-z]+(?:[.-][0-9A-Za-z]+)*))?"
    r"(?:\+(?P<build>[0-9A-Za-z]+(?:[.-][0-9A-Za-z]+)*))?$" % (MAX_RELEASE_COMPONENTS - 1)
)


class AddonVersion(BaseModel):
    """
    A parsed, totally ordered addon version.

    Ordering compares release components numerically (missing trailing
    components count as zero), puts a pre-release before its release and
    ignores build metadata. ``raw`` is the text the author wrote and is what
    ends up in the index.
    """

    model_config = ConfigDict(frozen=True)

    raw: str = Field(description="Version text exactly as written in the manifest.")
    release: Tuple[int, ...] = Field(description="Numeric release components.")
    prerelease: Optional[str] = Field(default=None, description="Pre-release tag, if any.")
    build: Optional[str] = Field(default=None, description="Build metadata, if any.")

    @classmethod
    def parse(cls, raw: str) -> "AddonVersion":
        if raw is None:
            raise InvalidVersionString("version is missing")
        text = raw.strip()
        match = _VERSION_RE.match(text)
        if not match:
            raise InvalidVersionString(f"not a version: {raw!r}")
        release = tuple(int(part) for part in match.group("release").split("."))
        return cls(
            raw=text,
            release=release,
            prerelease=match.group("pre"),
            build=match.group("build"),
        )

    def sort_key(self) -> tuple:
        release = self.release + (0,) * (MAX_RELEASE_COMPONENTS - len(self.release))
        if self.prerelease is None:
            # A final release sorts after any of its pre-releases.
            pre: tuple = ((2, 0, ""),)
        else:
            pre = tuple(
                (0, int(part), "") if part.isdigit() else (1, 0, part)
                for part in re.split(r"[.-]", self.prerelease)
            )
        return release, pre

    @property
    def is_prerelease(self) -> bool:
        return self.prerelease is not None

    def __str__(self) -> str:
        return self.raw

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AddonVersion):
            return NotImplemented
        return self.sort_key() == other.sort_key()

    def __hash__(self) -> int:
        return hash(self.sort_key())

    def __lt__(self, other: "AddonVersion") -> bool:
        if not isinstance(other, AddonVersion):
            return NotImplemented
        return self.sort_key() < other.sort_key()

    def __le__(self, other: "AddonVersion") -> bool:
        if not isinstance(other, AddonVersion):
            return NotImplemented
        return self.sort_key() <= other.sort_key()

    def __gt__(self, other: "AddonVersion") -> bool:
        if not isinstance(other, AddonVersion):
            return NotImplemented
        return self.sort_key() > other.sort_key()

    def __ge__(self, other: "AddonVersion") -> bool:
        if not isinstance(other, AddonVersion):
            return NotImplemented
        return self.sort_key() >= other.sort_key()
