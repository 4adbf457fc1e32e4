"""Tests for the addon descriptor extractor."""

from __future__ import annotations

from pathlib import Path

import pytest

from addon_repo.domain.errors import InvalidVersion, MalformedDependency, MissingRequiredField
from addon_repo.services.extractor import extract_descriptor
from addon_repo.services.manifest import parse_manifest

from conftest import addon_xml

CHECKSUM = b"\x01" * 32


def extract(text: str, grammar: str = "comparator"):
    tree = parse_manifest(text, Path("/repo/pkg/addon.xml"))
    return extract_descriptor(tree, CHECKSUM, grammar=grammar)


class TestRequiredFields:
    def test_basic(self):
        d = extract(addon_xml(addon_id="plugin.a", version="1.2.0"))
        assert d.id == "plugin.a"
        assert d.version.raw == "1.2.0"
        assert d.name == "Test addon"
        assert d.provider_name == "tester"
        assert d.checksum == CHECKSUM
        assert d.source_path == Path("/repo/pkg")

    def test_missing_id(self):
        with pytest.raises(MissingRequiredField) as exc:
            extract(addon_xml(addon_id=None))
        assert exc.value.field == "id"

    def test_missing_version(self):
        with pytest.raises(MissingRequiredField) as exc:
            extract(addon_xml(version=None))
        assert exc.value.field == "version"
        assert exc.value.source_path == str(Path("/repo/pkg/addon.xml"))

    def test_invalid_version(self):
        with pytest.raises(InvalidVersion) as exc:
            extract(addon_xml(addon_id="plugin.a", version="one"))
        assert exc.value.addon_id == "plugin.a"
        assert exc.value.raw == "one"

    def test_wrong_root_element(self):
        with pytest.raises(MissingRequiredField):
            extract('<package id="x" version="1.0"/>')


class TestDependencies:
    def test_order_and_constraints_verbatim(self):
        d = extract(addon_xml(imports=[("xbmc.python", "3.0.0"), ("foo", ">=1.0.0"), ("bar", None)]))
        assert [(dep.addon_id, dep.constraint) for dep in d.dependencies] == [
            ("xbmc.python", "3.0.0"),
            ("foo", ">=1.0.0"),
            ("bar", None),
        ]

    def test_optional_flag(self):
        text = '<addon id="a" version="1"><requires><import addon="b" optional="true"/></requires></addon>'
        assert extract(text).dependencies[0].optional is True

    def test_missing_dependency_id(self):
        text = '<addon id="a" version="1"><requires><import version="1.0"/></requires></addon>'
        with pytest.raises(MalformedDependency) as exc:
            extract(text)
        assert exc.value.addon_id == "a"

    def test_duplicate_dependency_id(self):
        with pytest.raises(MalformedDependency):
            extract(addon_xml(imports=[("foo", "1.0"), ("foo", "2.0")]))

    def test_bad_constraint(self):
        with pytest.raises(MalformedDependency):
            extract(addon_xml(imports=[("foo", "newest")]))

    def test_grammar_is_pluggable(self):
        text = addon_xml(imports=[("foo", ">=1.0.0")])
        assert extract(text, grammar="comparator").dependencies[0].constraint == ">=1.0.0"
        with pytest.raises(MalformedDependency):
            extract(text, grammar="kodi")

    def test_unresolved_dependencies_are_fine(self):
        d = extract(addon_xml(imports=[("not.in.this.repo", "9.9.9")]))
        assert d.dependencies[0].addon_id == "not.in.this.repo"


class TestExtensionPoints:
    def test_duplicates_are_deduplicated(self):
        d = extract(addon_xml(points=["xbmc.service", "xbmc.service", "xbmc.python.script"]))
        assert d.extension_points == frozenset({"xbmc.service", "xbmc.python.script"})

    def test_metadata(self):
        d = extract(addon_xml(summary="Plays things"))
        assert "xbmc.addon.metadata" in d.extension_points
        assert d.metadata == {"summary": "Plays things"}

    def test_metadata_prefers_english(self):
        text = """<addon id="a" version="1">
          <extension point="xbmc.addon.metadata">
            <summary lang="de_DE">Spielt Dinge</summary>
            <summary lang="en_GB">Plays things</summary>
            <license>GPL-2.0-only</license>
          </extension>
        </addon>"""
        assert extract(text).metadata == {"summary": "Plays things", "license": "GPL-2.0-only"}

    def test_no_extensions(self):
        d = extract(addon_xml(points=()))
        assert d.extension_points == frozenset()
        assert d.metadata == {}

    def test_extension_details_are_kept(self):
        text = """<addon id="plugin.video.a" version="1">
          <extension point="xbmc.python.pluginsource" library="default.py">
            <provides>video audio</provides>
          </extension>
          <extension point="xbmc.python.pluginsource" library="other.py"/>
          <extension point="xbmc.addon.metadata">
            <summary>Videos</summary>
          </extension>
        </addon>"""
        d = extract(text)
        assert [e.point for e in d.extensions] == ["xbmc.python.pluginsource"]
        plugin = d.extensions[0]
        assert plugin.attributes == {"library": "default.py"}
        assert [(c.tag, c.text) for c in plugin.children] == [("provides", "video audio")]
