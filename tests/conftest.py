"""Shared fixtures: a temporary library root and a minimal MP3 writer."""

from pathlib import Path

import pytest

# MPEG1 Layer3 128kbps 44100Hz frame = 417 bytes; several are needed for mutagen to sync
_MP3_FRAME = b"\xff\xfb\x90\x00" + b"\x00" * 413


def write_mp3(path: Path, title=None, artist=None, album=None, track=None, year=None, cover=None) -> Path:
    """Create a tiny valid MP3, with ID3 tags when any are given."""
    from mutagen.id3 import APIC, ID3, TALB, TDRC, TIT2, TPE1, TRCK

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(_MP3_FRAME * 10)

    frames = [
        (TIT2, title),
        (TPE1, artist),
        (TALB, album),
        (TRCK, track),
        (TDRC, year),
    ]
    if not any(value is not None for _, value in frames) and cover is None:
        return path

    tags = ID3()
    for frame_cls, value in frames:
        if value is not None:
            tags.add(frame_cls(encoding=3, text=[str(value)]))
    if cover is not None:
        tags.add(APIC(encoding=3, mime="image/png", type=3, desc="Cover", data=cover))
    tags.save(str(path))
    return path


@pytest.fixture
def library_root(tmp_path):
    root = tmp_path / "library"
    root.mkdir()
    return root.resolve()


@pytest.fixture
def mp3_writer():
    return write_mp3
