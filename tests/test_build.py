"""Tests for the build pipeline, artifact publishing and configuration."""

from __future__ import annotations

import hashlib
import json

import pytest

from addon_repo.data.repository import (
    build_repository,
    build_repository_sync,
    load_repository_config,
)
from addon_repo.domain.errors import BuildFailed, DuplicateAddonId
from addon_repo.domain.models import RepositoryConfig
from addon_repo.services.serializer import parse_index, serialize_index, verify_index
from addon_repo.storage.file_artifact_store import FileArtifactStore


class TestBuild:
    def test_publishes_all_artifacts(self, example_repo, tmp_path):
        out = tmp_path / "out"
        result = build_repository_sync(example_repo, out)

        assert sorted(p.name for p in result.artifacts) == [
            "addons.xml",
            "addons.xml.checksum.json",
            "addons.xml.md5",
        ]
        document = (out / "addons.xml").read_bytes()
        assert document == result.index.document
        assert (out / "addons.xml.md5").read_text() == hashlib.md5(document).hexdigest()

        record = json.loads((out / "addons.xml.checksum.json").read_text())
        assert record["index_checksum"] == result.index.index_checksum.hex()
        assert set(record["addons"]) == {"bar", "foo"}
        assert [e.id for e in parse_index(document)] == ["bar", "foo"]
        assert result.failures == []

    def test_md5_optional(self, example_repo, tmp_path):
        out = tmp_path / "out"
        build_repository_sync(example_repo, out, RepositoryConfig(write_md5=False))
        assert not (out / "addons.xml.md5").exists()
        assert (out / "addons.xml").exists()

    def test_no_temp_files_left(self, example_repo, tmp_path):
        out = tmp_path / "out"
        build_repository_sync(example_repo, out)
        assert sorted(p.name for p in out.iterdir()) == [
            "addons.xml",
            "addons.xml.checksum.json",
            "addons.xml.md5",
        ]

    def test_repeated_builds_identical_on_disk(self, example_repo, tmp_path):
        build_repository_sync(example_repo, tmp_path / "one")
        build_repository_sync(example_repo, tmp_path / "two")
        for name in ("addons.xml", "addons.xml.md5", "addons.xml.checksum.json"):
            assert (tmp_path / "one" / name).read_bytes() == (tmp_path / "two" / name).read_bytes()

    def test_partial_failure_still_publishes(self, make_addon, tmp_path):
        make_addon("a", addon_id="a")
        make_addon("b", addon_id="b")
        broken = make_addon("c", addon_id="c", version=None)
        result = build_repository_sync(make_addon.root, tmp_path / "out")
        assert [d.id for d in result.index.descriptors] == ["a", "b"]
        assert [(f.path, f.kind) for f in result.failures] == [(str(broken), "MissingRequiredField")]

    def test_duplicate_produces_no_artifacts(self, make_addon, tmp_path):
        make_addon("one", addon_id="same")
        make_addon("two", addon_id="same")
        out = tmp_path / "out"
        with pytest.raises(DuplicateAddonId):
            build_repository_sync(make_addon.root, out)
        assert not out.exists() or list(out.iterdir()) == []

    def test_failed_build_keeps_previous_artifacts(self, make_addon, tmp_path):
        make_addon("one", addon_id="one")
        out = tmp_path / "out"
        build_repository_sync(make_addon.root, out)
        before = (out / "addons.xml").read_bytes()

        make_addon("two", addon_id="two", version=None)
        with pytest.raises(BuildFailed):
            build_repository_sync(make_addon.root, out, RepositoryConfig(fail_on_error=True))
        assert (out / "addons.xml").read_bytes() == before

    @pytest.mark.asyncio
    async def test_async_build(self, example_repo, tmp_path):
        store = FileArtifactStore(tmp_path / "out")
        result = await build_repository(example_repo, store, RepositoryConfig(max_workers=1))
        assert store.read_document() == result.index.document
        record = store.read_checksum_record()
        assert record is not None
        assert verify_index(store.read_document(), record)


class TestArtifactStore:
    def test_empty_store(self, tmp_path):
        store = FileArtifactStore(tmp_path)
        assert store.read_document() is None
        assert store.read_checksum_record() is None

    def test_publish_failure_cleans_up(self, tmp_path, monkeypatch):
        store = FileArtifactStore(tmp_path / "out")
        index = serialize_index([])

        def _boom(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr("addon_repo.storage.file_artifact_store.os.replace", _boom)
        with pytest.raises(OSError):
            store.publish(index)
        assert list((tmp_path / "out").iterdir()) == []

    def test_corrupt_record_is_ignored(self, tmp_path):
        (tmp_path / "addons.xml.checksum.json").write_text("{not json")
        assert FileArtifactStore(tmp_path).read_checksum_record() is None


class TestConfig:
    def test_defaults_are_written(self, tmp_path):
        config = load_repository_config(tmp_path)
        assert config.checksum_algorithm == "sha256"
        assert config.fail_on_error is False
        saved = json.loads((tmp_path / "repository.json").read_text())
        assert saved["manifest_name"] == "addon.xml"
        assert saved["max_workers"] == 4

    def test_existing_values_are_kept(self, tmp_path):
        (tmp_path / "repository.json").write_text(json.dumps({"max_workers": 8, "fail_on_error": True}))
        config = load_repository_config(tmp_path)
        assert config.max_workers == 8
        assert config.fail_on_error is True
        assert json.loads((tmp_path / "repository.json").read_text())["addons_dir"] == "addons"

    def test_invalid_file_falls_back_to_defaults(self, tmp_path):
        original = json.dumps({"checksum_algorithm": "rot13", "max_workers": 16})
        (tmp_path / "repository.json").write_text(original)
        assert load_repository_config(tmp_path).checksum_algorithm == "sha256"
        assert (tmp_path / "repository.json").read_text() == original

    def test_validation(self):
        with pytest.raises(ValueError):
            RepositoryConfig(max_workers=0)
        with pytest.raises(ValueError):
            RepositoryConfig(constraint_grammar="unknown")
