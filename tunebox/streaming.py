"""
Streaming Service: serves a library file's bytes with HTTP range support.

Browsers' media elements issue ``Range: bytes=N-`` requests when seeking, so
partial responses are what make playback seekable.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, Optional, Tuple

from loguru import logger

from .errors import NotFoundError, RangeNotSatisfiableError, ValidationError
from .library import resolve_library_path

CHUNK_SIZE = 64 * 1024
DEFAULT_CONTENT_TYPE = "audio/mpeg"

CONTENT_TYPES: Dict[str, str] = {
    ".mp3": "audio/mpeg",
    ".flac": "audio/flac",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".aac": "audio/aac",
    ".m4a": "audio/mp4",
    ".wma": "audio/x-ms-wma",
}

_RANGE_RE = re.compile(r"^\s*bytes\s*=\s*(\d*)\s*-\s*(\d*)\s*$", re.IGNORECASE)


def content_type_for(path: Path) -> str:
    return CONTENT_TYPES.get(path.suffix.lower(), DEFAULT_CONTENT_TYPE)


def parse_range(header: Optional[str], file_size: int) -> Optional[Tuple[int, int]]:
    """
    Parse a single ``bytes=start-end`` range into inclusive offsets.

    * ``bytes=500-``  → 500 to EOF
    * ``bytes=-200``  → the last 200 bytes
    * ``end`` past EOF is clamped to the last byte

    Returns None for a missing or malformed header (serve the whole file) and
    raises ``RangeNotSatisfiableError`` when the range cannot be served.
    """
    if not header:
        return None
    match = _RANGE_RE.match(header)
    if not match:
        logger.debug(f"Ignoring malformed Range header: {header!r}")
        return None

    start_s, end_s = match.groups()
    if not start_s and not end_s:
        return None

    last = file_size - 1
    if not start_s:
        suffix = int(end_s)
        if suffix == 0 or file_size == 0:
            raise RangeNotSatisfiableError(f"Range {header} not satisfiable", file_size)
        return max(0, file_size - suffix), last

    start = int(start_s)
    end = min(int(end_s), last) if end_s else last
    if start >= file_size or start > end:
        raise RangeNotSatisfiableError(f"Range {header} not satisfiable", file_size)
    return start, end


def iter_file(path: Path, start: int, length: int, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    """Yield ``length`` bytes of ``path`` starting at ``start``."""
    with path.open("rb") as fh:
        fh.seek(start)
        remaining = length
        while remaining > 0:
            chunk = fh.read(min(chunk_size, remaining))
            if not chunk:
                break
            remaining -= len(chunk)
            yield chunk


@dataclass
class AudioStream:
    """Status, headers and body iterator for one stream response."""

    path: Path
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    start: int = 0
    length: int = 0

    @property
    def media_type(self) -> str:
        return self.headers["Content-Type"]

    def body(self) -> Iterator[bytes]:
        return iter_file(self.path, self.start, self.length)


class StreamingService:
    """Opens library files for full or ranged delivery."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root).expanduser().resolve()

    def open_stream(self, rel_path: Optional[str], range_header: Optional[str] = None) -> AudioStream:
        if not rel_path:
            raise ValidationError("Missing path parameter")

        path = resolve_library_path(self.root, rel_path)
        if not path.is_file():
            raise NotFoundError("File not found")

        file_size = path.stat().st_size
        content_type = content_type_for(path)
        byte_range = parse_range(range_header, file_size)

        if byte_range is None:
            return AudioStream(
                path=path,
                status_code=200,
                headers={
                    "Content-Length": str(file_size),
                    "Content-Type": content_type,
                    "Accept-Ranges": "bytes",
                },
                start=0,
                length=file_size,
            )

        start, end = byte_range
        length = end - start + 1
        return AudioStream(
            path=path,
            status_code=206,
            headers={
                "Content-Range": f"bytes {start}-{end}/{file_size}",
                "Accept-Ranges": "bytes",
                "Content-Length": str(length),
                "Content-Type": content_type,
            },
            start=start,
            length=length,
        )
