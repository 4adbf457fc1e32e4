"""Shared pytest fixtures for the addon repository tests."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple

import pytest


def addon_xml(
    addon_id: Optional[str] = "plugin.test",
    version: Optional[str] = "1.0.0",
    imports: Iterable[Tuple[str, Optional[str]]] = (),
    points: Iterable[str] = ("xbmc.python.pluginsource",),
    name: Optional[str] = "Test addon",
    summary: Optional[str] = None,
) -> str:
    attrs = []
    if addon_id is not None:
        attrs.append(f'id="{addon_id}"')
    if name is not None:
        attrs.append(f'name="{name}"')
    if version is not None:
        attrs.append(f'version="{version}"')
    attrs.append('provider-name="tester"')

    lines = ['<?xml version="1.0" encoding="UTF-8" standalone="yes"?>']
    lines.append(f"<addon {' '.join(attrs)}>")
    imports = list(imports)
    if imports:
        lines.append("  <requires>")
        for dep_id, constraint in imports:
            if constraint is None:
                lines.append(f'    <import addon="{dep_id}"/>')
            else:
                lines.append(f'    <import addon="{dep_id}" version="{constraint}"/>')
        lines.append("  </requires>")
    for point in points:
        lines.append(f'  <extension point="{point}" library="main.py"/>')
    if summary is not None:
        lines.append('  <extension point="xbmc.addon.metadata">')
        lines.append(f'    <summary lang="en_GB">{summary}</summary>')
        lines.append("  </extension>")
    lines.append("</addon>")
    return "\n".join(lines) + "\n"


@pytest.fixture
def make_addon(tmp_path):
    """Create ``<tmp>/addons/<dirname>`` with an addon.xml and some files."""
    root = tmp_path / "addons"
    root.mkdir(exist_ok=True)

    def _make(
        dirname: str,
        manifest: Optional[str] = None,
        files: Optional[Dict[str, bytes]] = None,
        **manifest_kwargs,
    ) -> Path:
        package = root / dirname
        package.mkdir(parents=True, exist_ok=True)
        if manifest is None:
            manifest = addon_xml(**manifest_kwargs)
        (package / "addon.xml").write_text(manifest, encoding="utf-8")
        for rel, content in (files or {"main.py": b"print('hello')\n"}).items():
            target = package / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        return package

    _make.root = root
    return _make


@pytest.fixture
def example_repo(make_addon):
    """The foo/bar repository used throughout the docs."""
    make_addon("addon.foo", addon_id="foo", version="1.0.0", points=())
    make_addon(
        "addon.bar",
        addon_id="bar",
        version="2.1.0",
        imports=[("foo", ">=1.0.0")],
        points=(),
    )
    return make_addon.root
