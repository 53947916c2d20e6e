"""
Tag Writer: rewrites embedded metadata of a file on disk.

Two strategies, picked by file extension from ``default_tag_writers()``:

* ``ID3TagWriter``   edits the ID3 frames of an MP3 in place with mutagen.
* ``RemuxTagWriter`` has ffmpeg copy the audio stream untouched into a
  temporary sibling with new container metadata, then renames it over the
  original. The original is never modified unless the rename happens.

Tag writes never touch the annotation store.
"""

from __future__ import annotations

import os
import subprocess
import tempfile
from pathlib import Path
from typing import Callable, Dict, Mapping, Optional, Protocol

from loguru import logger
from mutagen import MutagenError
from mutagen.id3 import ID3, ID3NoHeaderError, TALB, TIT2, TPE1, TRCK

from .errors import NotFoundError, TagWriteError, UnsupportedFormatError, ValidationError
from .library import resolve_library_path

REMUX_FIELDS = ("title", "artist", "album", "track")

Runner = Callable[..., subprocess.CompletedProcess]


class TagWriter(Protocol):
    def write(self, path: Path, fields: Mapping[str, str]) -> None:
        """Write ``fields`` (title/artist/album/track) into ``path``."""


# ---------------------------------------------------------------------------
# Direct ID3 rewrite
# ---------------------------------------------------------------------------

_ID3_FRAMES = {
    "title": TIT2,
    "artist": TPE1,
    "album": TALB,
    "track": TRCK,
}


class ID3TagWriter:
    """Edit ID3v2 frames in place. Fields the caller did not send are left alone."""

    def write(self, path: Path, fields: Mapping[str, str]) -> None:
        try:
            try:
                tags = ID3(str(path))
            except ID3NoHeaderError:
                tags = ID3()

            for name, frame_cls in _ID3_FRAMES.items():
                value = fields.get(name)
                if value is None:
                    continue
                tags.add(frame_cls(encoding=3, text=[str(value)]))

            tags.save(str(path))
        except (MutagenError, OSError) as exc:
            raise TagWriteError(f"Failed to update MP3 tags: {exc}") from exc


# ---------------------------------------------------------------------------
# ffmpeg remux
# ---------------------------------------------------------------------------

def _temp_path(path: Path) -> Path:
    """
    Reserve a uniquely named hidden sibling of ``path`` with the same suffix,
    so ffmpeg still infers the container and no library file is overwritten.
    """
    fd, name = tempfile.mkstemp(prefix=f".{path.stem}.", suffix=f".tmp{path.suffix}", dir=path.parent)
    os.close(fd)
    return Path(name)


class RemuxTagWriter:
    """
    Rewrite container metadata by stream-copying the file through ffmpeg.

    ``runner`` defaults to ``subprocess.run``; tests pass a fake with the same
    call signature.
    """

    def __init__(self, ffmpeg_binary: str = "ffmpeg", runner: Optional[Runner] = None) -> None:
        self.ffmpeg_binary = ffmpeg_binary
        self._run = runner or subprocess.run

    def build_args(self, source: Path, target: Path, fields: Mapping[str, str]) -> list:
        args = [self.ffmpeg_binary, "-i", str(source), "-y", "-c", "copy", "-map_metadata", "0"]
        for name in REMUX_FIELDS:
            args += ["-metadata", f"{name}={fields.get(name) or ''}"]
        args.append(str(target))
        return args

    def write(self, path: Path, fields: Mapping[str, str]) -> None:
        try:
            tmp = _temp_path(path)
        except OSError as exc:
            raise TagWriteError(f"Could not create a temporary file next to {path.name}: {exc}") from exc
        args = self.build_args(path, tmp, fields)
        logger.debug(f"Running {' '.join(args)}")

        try:
            try:
                result = self._run(args, capture_output=True, text=True)
            except OSError as exc:
                raise TagWriteError(f"Could not start {self.ffmpeg_binary}: {exc}") from exc

            if result.returncode != 0:
                stderr = (result.stderr or "").strip()
                logger.error(f"ffmpeg exited with {result.returncode} for {path}: {stderr[-400:]}")
                raise TagWriteError(f"ffmpeg exited with status {result.returncode}")

            if not tmp.exists() or tmp.stat().st_size == 0:
                raise TagWriteError("ffmpeg did not create output file")

            try:
                os.replace(tmp, path)
            except OSError as exc:
                raise TagWriteError(f"Could not replace {path.name}: {exc}") from exc
        finally:
            if tmp.exists():
                try:
                    tmp.unlink()
                except OSError as exc:
                    logger.warning(f"Could not remove temporary file {tmp}: {exc}")


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

def default_tag_writers(ffmpeg_binary: str = "ffmpeg", runner: Optional[Runner] = None) -> Dict[str, TagWriter]:
    """Extension → strategy table."""
    remux = RemuxTagWriter(ffmpeg_binary, runner=runner)
    writers: Dict[str, TagWriter] = {".mp3": ID3TagWriter()}
    for ext in (".flac", ".wav", ".ogg", ".aac", ".m4a", ".wma"):
        writers[ext] = remux
    return writers


class MetadataEditor:
    """Routes metadata edits for library files to the matching tag writer."""

    def __init__(self, root: Path, writers: Optional[Dict[str, TagWriter]] = None) -> None:
        self.root = Path(root).expanduser().resolve()
        self.writers = writers if writers is not None else default_tag_writers()

    def writer_for(self, path: Path) -> TagWriter:
        writer = self.writers.get(path.suffix.lower())
        if writer is None:
            raise UnsupportedFormatError("Unsupported file type.")
        return writer

    def update_metadata(self, rel_path: Optional[str], fields: Optional[Mapping[str, str]]) -> None:
        if not rel_path or fields is None:
            raise ValidationError("Missing data")

        path = resolve_library_path(self.root, rel_path)
        writer = self.writer_for(path)
        if not path.is_file():
            raise NotFoundError(f"File not found: {rel_path}")

        logger.info(f"Updating tags of {rel_path} with {type(writer).__name__}: {dict(fields)}")
        writer.write(path, fields)
