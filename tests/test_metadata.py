"""Unit tests for embedded tag extraction."""

import base64

import pytest
from tunebox.metadata import _extract_year, _parse_number_pair, read_metadata
from tunebox.models import METADATA_ERROR, MetadataError, NumberPair, TrackMetadata


class TestReadMetadata:
    def test_reads_id3_tags(self, tmp_path, mp3_writer):
        path = mp3_writer(
            tmp_path / "song.mp3",
            title="Wrap Me Up", artist="Jimmy", album="Singles", track="3/12", year="2019-05-01",
        )
        meta = read_metadata(path)

        assert isinstance(meta, TrackMetadata)
        assert meta.title == "Wrap Me Up"
        assert meta.artist == "Jimmy"
        assert meta.album == "Singles"
        assert meta.track == NumberPair(no=3, of=12)
        assert meta.year == 2019
        assert meta.duration is not None and meta.duration > 0

    def test_untagged_file_has_empty_metadata(self, tmp_path, mp3_writer):
        meta = read_metadata(mp3_writer(tmp_path / "bare.mp3"))

        assert isinstance(meta, TrackMetadata)
        assert meta.title is None
        assert meta.album is None
        assert meta.track.no is None
        assert meta.picture == []

    def test_embedded_picture(self, tmp_path, mp3_writer):
        cover = b"\x89PNG\r\n\x1a\nfake"
        meta = read_metadata(mp3_writer(tmp_path / "art.mp3", title="x", cover=cover))

        assert len(meta.picture) == 1
        assert meta.picture[0].format == "image/png"
        assert base64.b64decode(meta.picture[0].data) == cover

    def test_garbage_file_returns_sentinel(self, tmp_path):
        path = tmp_path / "broken.mp3"
        path.write_bytes(b"\x00" * 100)

        meta = read_metadata(path)

        assert isinstance(meta, MetadataError)
        assert meta.error == METADATA_ERROR

    def test_missing_file_returns_sentinel(self, tmp_path):
        assert isinstance(read_metadata(tmp_path / "gone.flac"), MetadataError)

    def test_sentinel_serialises_as_error_only(self):
        assert MetadataError().model_dump() == {"error": "Could not read metadata"}


class TestParseNumberPair:
    @pytest.mark.parametrize("raw,expected", [
        ("5/12", NumberPair(no=5, of=12)),
        ("5", NumberPair(no=5)),
        (" 7 / ", NumberPair(no=7)),
        (5, NumberPair(no=5)),
        ((4, 10), NumberPair(no=4, of=10)),
        ((4, 0), NumberPair(no=4)),
        ("A1", NumberPair()),
        (None, NumberPair()),
    ])
    def test_parse(self, raw, expected):
        assert _parse_number_pair(raw) == expected


class TestExtractYear:
    @pytest.mark.parametrize("raw,expected", [
        ("2019", 2019),
        ("2019-05-01", 2019),
        ("May 1999", 1999),
        ("unknown", None),
        (None, None),
        ("", None),
    ])
    def test_extract(self, raw, expected):
        assert _extract_year(raw) == expected
