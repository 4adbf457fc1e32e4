"""Tests for the HTTP serving layer."""

from __future__ import annotations

import hashlib
import io
import zipfile

import pytest
from fastapi.testclient import TestClient

from addon_repo.data import repository as repository_state
from addon_repo.main import app

from conftest import addon_xml


def _write_addon(addons_dir, dirname, **kwargs):
    package = addons_dir / dirname
    (package / "resources").mkdir(parents=True)
    (package / "addon.xml").write_text(addon_xml(**kwargs), encoding="utf-8")
    (package / "main.py").write_bytes(b"print('main')\n")
    (package / "resources" / "settings.xml").write_bytes(b"<settings/>")
    return package


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    data = tmp_path / "data"
    addons = data / "addons"
    addons.mkdir(parents=True)
    _write_addon(addons, "plugin.video.foo", addon_id="plugin.video.foo", version="1.0.0", summary="Foo videos")
    _write_addon(
        addons,
        "script.bar",
        addon_id="script.bar",
        version="2.1.0",
        imports=[("plugin.video.foo", ">=1.0.0")],
    )
    (addons / "broken").mkdir()
    (addons / "broken" / "addon.xml").write_text("<addon")

    monkeypatch.setenv(repository_state.DATA_ROOT_ENV_VAR, str(data))
    repository_state.reset_state()
    yield data
    repository_state.reset_state()


@pytest.fixture
def client(data_dir):
    with TestClient(app) as c:
        yield c


class TestArtifacts:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok", "indexed": True}

    def test_addons_xml(self, client, data_dir):
        response = client.get("/addons.xml")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/xml")
        assert response.content == (data_dir / "repo" / "addons.xml").read_bytes()
        assert b'id="plugin.video.foo"' in response.content
        assert b"broken" not in response.content

    def test_md5_matches(self, client):
        document = client.get("/addons.xml").content
        assert client.get("/addons.xml.md5").text == hashlib.md5(document).hexdigest()

    def test_checksum_record(self, client):
        record = client.get("/addons.xml.checksum.json").json()
        assert sorted(record["addons"]) == ["plugin.video.foo", "script.bar"]
        assert record["algorithm"] == "sha256"

    def test_config_written(self, client, data_dir):
        assert (data_dir / "repository.json").is_file()


class TestAddons:
    def test_summary(self, client):
        body = client.get("/addons/script.bar").json()
        assert body["id"] == "script.bar"
        assert body["version"] == "2.1.0"
        assert body["dependencies"] == [
            {"addon_id": "plugin.video.foo", "constraint": ">=1.0.0", "optional": False}
        ]
        assert body["archive"] == "script.bar/script.bar-2.1.0.zip"

    def test_unknown_addon(self, client):
        assert client.get("/addons/nope").status_code == 404

    def test_download_archive(self, client, data_dir):
        response = client.get("/addons/plugin.video.foo/plugin.video.foo-1.0.0.zip")
        assert response.status_code == 200
        with zipfile.ZipFile(io.BytesIO(response.content)) as zf:
            assert sorted(zf.namelist()) == [
                "plugin.video.foo/addon.xml",
                "plugin.video.foo/main.py",
                "plugin.video.foo/resources/settings.xml",
            ]
        cached = data_dir / "addons" / ".zips" / "plugin.video.foo" / "plugin.video.foo-1.0.0.zip"
        assert cached.is_file()

    def test_archive_is_reused_and_stable(self, client):
        url = "/addons/plugin.video.foo/plugin.video.foo-1.0.0.zip"
        assert client.get(url).content == client.get(url).content

    def test_archive_of_changed_addon_is_refused(self, client, data_dir):
        (data_dir / "addons" / "script.bar" / "main.py").write_bytes(b"print('edited')\n")
        response = client.get("/addons/script.bar/script.bar-2.1.0.zip")
        assert response.status_code == 500
        assert not (data_dir / "addons" / ".zips" / "script.bar" / "script.bar-2.1.0.zip").exists()

    def test_wrong_version(self, client):
        assert client.get("/addons/plugin.video.foo/plugin.video.foo-0.9.zip").status_code == 404

    def test_landing_page(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert "plugin.video.foo" in response.text
        assert "MalformedManifest" in response.text


def test_missing_artifacts_are_404(tmp_path, monkeypatch):
    data = tmp_path / "data"
    data.mkdir()
    (data / "repository.json").write_text('{"output_dir": "repo"}')
    monkeypatch.setenv(repository_state.DATA_ROOT_ENV_VAR, str(data))
    repository_state.reset_state()
    try:
        with TestClient(app) as c:
            # an empty addons dir still builds an (empty) index
            assert c.get("/addons.xml").status_code == 200
            (data / "repo" / "addons.xml.md5").unlink()
            assert c.get("/addons.xml.md5").status_code == 404
    finally:
        repository_state.reset_state()
