"""HTTP tests for the FastAPI application."""

import subprocess

import pytest
from fastapi.testclient import TestClient

from tunebox.app import create_app
from tunebox.config import Settings


@pytest.fixture
def settings(tmp_path, library_root):
    return Settings(
        library_root=library_root,
        annotations_path=tmp_path / "data" / "annotations.json",
        playlists_path=tmp_path / "data" / "playlists.json",
        scan_workers=2,
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def library(library_root, mp3_writer):
    mp3_writer(library_root / "A" / "song1.mp3", title="One", artist="Band", album="X", track=2)
    mp3_writer(library_root / "A" / "song2.mp3", title="Two", artist="Band", album="X", track=1)
    (library_root / "A" / "broken.flac").write_bytes(b"junk")
    (library_root / "raw.wav").write_bytes(bytes(range(256)) * 4)
    return library_root


class TestFiles:
    def test_listing(self, client, library):
        response = client.get("/files")
        assert response.status_code == 200

        by_path = {f["relPath"]: f for f in response.json()}
        assert set(by_path) == {"A/song1.mp3", "A/song2.mp3", "A/broken.flac", "raw.wav"}
        assert by_path["A/song1.mp3"]["name"] == "song1.mp3"
        assert by_path["A/song1.mp3"]["metadata"]["title"] == "One"
        assert by_path["A/song1.mp3"]["metadata"]["track"] == {"no": 2, "of": None}
        assert by_path["A/broken.flac"]["metadata"] == {"error": "Could not read metadata"}
        assert by_path["A/song1.mp3"]["annotation"] == {}

    def test_dir_filter(self, client, library):
        paths = [f["relPath"] for f in client.get("/files", params={"dir": "A"}).json()]
        assert sorted(paths) == ["A/broken.flac", "A/song1.mp3", "A/song2.mp3"]

    def test_dir_escape(self, client, library):
        response = client.get("/files", params={"dir": "../.."})
        assert response.status_code == 400
        assert "error" in response.json()

    def test_search(self, client, library):
        paths = [f["relPath"] for f in client.get("/files", params={"search": "two"}).json()]
        assert paths == ["A/song2.mp3"]

    def test_legacy_non_object_annotation(self, client, library, settings):
        settings.annotations_path.parent.mkdir(parents=True, exist_ok=True)
        settings.annotations_path.write_text('{"raw.wav": "legacy string"}', encoding="utf-8")

        response = client.get("/files")

        assert response.status_code == 200
        by_path = {f["relPath"]: f for f in response.json()}
        assert by_path["raw.wav"]["annotation"] == {}
        assert len(by_path) == 4

    def test_unexpected_failure_is_500(self, client, app, library, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(app.state.services.library, "list_files", boom)

        response = client.get("/files")
        assert response.status_code == 500
        assert response.json() == {"error": "disk on fire"}


class TestAnnotations:
    def test_round_trip(self, client, library):
        doc = {"tags": ["chill", "night"], "notes": "nice", "anything": ["kept"]}
        response = client.post("/annotations", json={"relPath": "A/song1.mp3", "document": doc})
        assert response.status_code == 200
        assert response.json() == {"success": True}

        by_path = {f["relPath"]: f for f in client.get("/files").json()}
        assert by_path["A/song1.mp3"]["annotation"] == doc

    def test_json_data_alias(self, client, library):
        client.post("/annotations", json={"relPath": "raw.wav", "jsonData": {"notes": "legacy"}})
        by_path = {f["relPath"]: f for f in client.get("/files").json()}
        assert by_path["raw.wav"]["annotation"] == {"notes": "legacy"}

    def test_missing_rel_path(self, client):
        response = client.post("/annotations", json={"document": {"notes": "x"}})
        assert response.status_code == 400
        assert response.json() == {"error": "Missing relative path"}

    def test_delete(self, client, library):
        client.post("/annotations", json={"relPath": "raw.wav", "document": {"notes": "x"}})
        response = client.delete("/annotations", params={"relPath": "raw.wav"})
        assert response.json() == {"success": True}

        by_path = {f["relPath"]: f for f in client.get("/files").json()}
        assert by_path["raw.wav"]["annotation"] == {}


class TestMetadata:
    def test_mp3_update(self, client, library):
        response = client.post("/metadata", json={
            "relPath": "A/song1.mp3",
            "metadata": {"title": "Renamed", "artist": "Band", "album": "X", "track": 5},
        })
        assert response.status_code == 200
        assert response.json() == {"success": True}

        by_path = {f["relPath"]: f for f in client.get("/files").json()}
        assert by_path["A/song1.mp3"]["metadata"]["title"] == "Renamed"
        assert by_path["A/song1.mp3"]["metadata"]["track"]["no"] == 5

    def test_missing_fields(self, client):
        assert client.post("/metadata", json={"relPath": "A/song1.mp3"}).status_code == 400
        assert client.post("/metadata", json={"metadata": {"title": "x"}}).status_code == 400

    def test_unsupported_format(self, client, library_root):
        (library_root / "notes.txt").write_text("hello")
        response = client.post("/metadata", json={"relPath": "notes.txt", "metadata": {"title": "x"}})
        assert response.status_code == 400
        assert response.json() == {"error": "Unsupported file type."}
        assert (library_root / "notes.txt").read_text() == "hello"

    def test_remux_failure_is_500(self, client, app, library, monkeypatch):
        def failing_run(args, **kwargs):
            return subprocess.CompletedProcess(args, 1, "", "boom")

        remux = app.state.services.editor.writers[".wav"]
        monkeypatch.setattr(remux, "_run", failing_run)
        before = (library / "raw.wav").read_bytes()

        response = client.post("/metadata", json={"relPath": "raw.wav", "metadata": {"title": "x"}})

        assert response.status_code == 500
        assert "error" in response.json()
        assert (library / "raw.wav").read_bytes() == before

    def test_does_not_touch_annotations(self, client, library, settings):
        client.post("/metadata", json={"relPath": "A/song2.mp3", "metadata": {"title": "T"}})
        assert not settings.annotations_path.exists()


class TestStream:
    def test_full(self, client, library):
        response = client.get("/stream", params={"path": "raw.wav"})
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("audio/wav")
        assert response.headers["content-length"] == "1024"
        assert response.content == (library / "raw.wav").read_bytes()

    def test_partial(self, client, library):
        response = client.get("/stream", params={"path": "raw.wav"}, headers={"Range": "bytes=0-99"})
        assert response.status_code == 206
        assert len(response.content) == 100
        assert response.headers["content-range"] == "bytes 0-99/1024"
        assert response.headers["accept-ranges"] == "bytes"
        assert response.headers["content-length"] == "100"

    def test_open_ended(self, client, library):
        response = client.get("/stream", params={"path": "raw.wav"}, headers={"Range": "bytes=500-"})
        assert response.status_code == 206
        assert response.content == (library / "raw.wav").read_bytes()[500:]

    def test_unsatisfiable(self, client, library):
        response = client.get("/stream", params={"path": "raw.wav"}, headers={"Range": "bytes=5000-"})
        assert response.status_code == 416
        assert response.headers["content-range"] == "bytes */1024"

    def test_not_found(self, client, library):
        response = client.get("/stream", params={"path": "A/missing.mp3"})
        assert response.status_code == 404
        assert response.json() == {"error": "File not found"}

    def test_missing_param(self, client):
        assert client.get("/stream").status_code == 400


class TestPlaylists:
    def test_crud(self, client):
        assert client.get("/playlists").json() == []

        created = client.post("/playlists", json={"name": "Mix", "tracks": ["a.mp3"]}).json()
        assert created["name"] == "Mix"
        assert created["tracks"] == ["a.mp3"]
        assert isinstance(created["id"], int)

        assert client.get(f"/playlists/{created['id']}").json() == created

        updated = client.put(f"/playlists/{created['id']}", json={"tracks": ["b.mp3", "a.mp3"]})
        assert updated.status_code == 200
        assert updated.json()["tracks"] == ["b.mp3", "a.mp3"]

        assert client.delete(f"/playlists/{created['id']}").json() == {"success": True}
        assert client.get("/playlists").json() == []

    def test_create_without_name(self, client):
        response = client.post("/playlists", json={"tracks": []})
        assert response.status_code == 400
        assert response.json() == {"error": "Missing playlist name"}

    def test_put_unknown(self, client):
        response = client.put("/playlists/999", json={"tracks": ["x.mp3"]})
        assert response.status_code == 404
        assert response.json() == {"error": "Playlist not found"}

    def test_put_without_tracks(self, client):
        created = client.post("/playlists", json={"name": "Mix"}).json()
        assert client.put(f"/playlists/{created['id']}", json={}).status_code == 400

    def test_delete_is_idempotent(self, client):
        assert client.delete("/playlists/424242").json() == {"success": True}
        assert client.delete("/playlists/424242").status_code == 200

    def test_non_numeric_id_get_and_put_are_404(self, client):
        client.post("/playlists", json={"name": "Mix"})

        assert client.get("/playlists/abc").status_code == 404
        response = client.put("/playlists/abc", json={"tracks": ["x.mp3"]})
        assert response.status_code == 404
        assert response.json() == {"error": "Playlist not found"}

    def test_non_numeric_id_delete_succeeds(self, client):
        created = client.post("/playlists", json={"name": "Mix"}).json()

        response = client.delete("/playlists/abc")

        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert client.get("/playlists").json() == [created]

    def test_album_reconciliation(self, client, library):
        first = client.post("/playlists/albums")
        assert first.status_code == 200

        by_name = {p["name"]: p for p in client.get("/playlists").json()}
        assert by_name["Album: X"]["tracks"] == ["A/song2.mp3", "A/song1.mp3"]
        assert "Album: Unknown Album" in by_name

        second = client.post("/playlists/albums").json()
        assert second["created"] == []
        assert second["removed"] == []
        assert len(client.get("/playlists").json()) == len(by_name)


def test_health(client, library_root):
    body = client.get("/health").json()
    assert body["status"] == "ok"
    assert body["libraryRoot"] == str(library_root)
