"""Embedded tag extraction using mutagen.

Reads title/artist/album/track/year and cover art from any container mutagen
understands (ID3, Vorbis comments, MP4 atoms, ASF attributes). The reader
never raises: an unreadable file yields a ``MetadataError`` sentinel so a
single bad file cannot break a library listing.
"""

from __future__ import annotations

import base64
import re
from pathlib import Path
from typing import Any, List, Optional, Tuple, Union

from loguru import logger
from mutagen import File as MutagenFile
from mutagen.flac import Picture as FlacPicture
from mutagen.mp4 import MP4Cover

from .models import MetadataError, NumberPair, Picture, TrackMetadata

_TITLE_KEYS = ["TIT2", "title", "\xa9nam", "Title"]
_ARTIST_KEYS = ["TPE1", "artist", "\xa9ART", "Author"]
_ALBUM_KEYS = ["TALB", "album", "\xa9alb", "WM/AlbumTitle"]
_ALBUM_ARTIST_KEYS = ["TPE2", "albumartist", "aART", "WM/AlbumArtist"]
_GENRE_KEYS = ["TCON", "genre", "\xa9gen", "WM/Genre"]
_TRACK_KEYS = ["TRCK", "tracknumber", "trkn", "WM/TrackNumber"]
_DISK_KEYS = ["TPOS", "discnumber", "disk", "WM/PartOfSet"]
_DATE_KEYS = ["TDRC", "TYER", "date", "year", "\xa9day", "WM/Year"]

_YEAR_RE = re.compile(r"(\d{4})")

_MP4_COVER_MIME = {
    MP4Cover.FORMAT_JPEG: "image/jpeg",
    MP4Cover.FORMAT_PNG: "image/png",
}


def read_metadata(path: Union[str, Path]) -> Union[TrackMetadata, MetadataError]:
    """
    Extract embedded metadata from ``path``.

    Returns ``MetadataError`` when mutagen cannot identify or parse the file.
    Files that parse but carry no tags get an empty ``TrackMetadata`` (with
    duration, when the stream info is available).
    """
    try:
        audio = MutagenFile(str(path))
    except Exception as exc:  # noqa: BLE001
        logger.warning(f"Could not read metadata from {path}: {exc}")
        return MetadataError()

    if audio is None:
        logger.warning(f"Could not read metadata from {path}: unrecognised format")
        return MetadataError()

    try:
        return _build_metadata(audio)
    except Exception as exc:  # noqa: BLE001
        logger.warning(f"Could not interpret tags of {path}: {exc}")
        return MetadataError()


def _build_metadata(audio: Any) -> TrackMetadata:
    info = getattr(audio, "info", None)
    duration = getattr(info, "length", None)
    tags = audio.tags
    if tags is None:
        return TrackMetadata(duration=duration, picture=_extract_pictures(audio))

    date_raw = _get_text(tags, _DATE_KEYS)
    return TrackMetadata(
        title=_get_text(tags, _TITLE_KEYS),
        artist=_get_text(tags, _ARTIST_KEYS),
        album=_get_text(tags, _ALBUM_KEYS),
        album_artist=_get_text(tags, _ALBUM_ARTIST_KEYS),
        genre=_get_text(tags, _GENRE_KEYS),
        track=_parse_number_pair(_get_first(tags, _TRACK_KEYS)),
        disk=_parse_number_pair(_get_first(tags, _DISK_KEYS)),
        year=_extract_year(date_raw),
        duration=duration,
        picture=_extract_pictures(audio),
    )


def _get_first(tags: Any, keys: List[str]) -> Any:
    """First raw value found under any of ``keys``."""
    for key in keys:
        try:
            if key not in tags:
                continue
            value = tags[key]
        except (KeyError, ValueError):
            continue
        if hasattr(value, "text"):
            # ID3 frame
            if value.text:
                return value.text[0]
        elif isinstance(value, list):
            # Vorbis comments, MP4 atoms, ASF attributes
            if value:
                first = value[0]
                return getattr(first, "value", first)
        elif value is not None:
            return value
    return None


def _get_text(tags: Any, keys: List[str]) -> Optional[str]:
    value = _get_first(tags, keys)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_number_pair(value: Any) -> NumberPair:
    """Parse ``'5/12'``, ``'5'``, ``5`` or an MP4 ``(5, 12)`` tuple."""
    if value is None:
        return NumberPair()
    if isinstance(value, tuple):
        number, total = (list(value) + [None, None])[:2]
        return NumberPair(no=number or None, of=total or None)
    if isinstance(value, int):
        return NumberPair(no=value)

    number_s, _, total_s = str(value).partition("/")
    return NumberPair(no=_to_int(number_s), of=_to_int(total_s))


def _to_int(text: str) -> Optional[int]:
    try:
        return int(text.strip())
    except ValueError:
        return None


def _extract_year(date_raw: Optional[str]) -> Optional[int]:
    if not date_raw:
        return None
    match = _YEAR_RE.search(date_raw)
    return int(match.group(1)) if match else None


# ---------------------------------------------------------------------------
# Cover art
# ---------------------------------------------------------------------------

def _extract_pictures(audio: Any) -> List[Picture]:
    found: List[Tuple[str, bytes, Optional[str]]] = []

    # FLAC picture blocks
    for pic in getattr(audio, "pictures", None) or []:
        found.append((pic.mime, pic.data, pic.desc or None))

    tags = audio.tags
    if tags is not None:
        # ID3 APIC frames (MP3, WAV with ID3 chunk)
        if hasattr(tags, "getall"):
            for frame in tags.getall("APIC"):
                found.append((frame.mime, frame.data, frame.desc or None))
        else:
            # Ogg Vorbis / Opus: base64 FLAC picture block in a comment
            for raw in _safe_get(tags, "metadata_block_picture"):
                try:
                    pic = FlacPicture(base64.b64decode(raw))
                except Exception as exc:  # noqa: BLE001
                    logger.debug(f"Skipping malformed embedded picture: {exc}")
                    continue
                found.append((pic.mime, pic.data, pic.desc or None))
            # MP4 cover atoms
            for cover in _safe_get(tags, "covr"):
                mime = _MP4_COVER_MIME.get(getattr(cover, "imageformat", None), "image/jpeg")
                found.append((mime, bytes(cover), None))

    return [
        Picture(
            format=mime or "image/jpeg",
            data=base64.b64encode(data).decode("ascii"),
            description=desc,
        )
        for mime, data, desc in found
    ]


def _safe_get(tags: Any, key: str) -> list:
    try:
        return list(tags[key]) if key in tags else []
    except (KeyError, ValueError, TypeError):
        return []
