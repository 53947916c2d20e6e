"""Recursive directory walk for audio files."""

import os
from pathlib import Path
from typing import FrozenSet, List

from loguru import logger

AUDIO_EXTENSIONS: FrozenSet[str] = frozenset(
    {".mp3", ".flac", ".wav", ".aac", ".ogg", ".wma", ".m4a"}
)


def is_audio_file(path: Path) -> bool:
    return path.suffix.lower() in AUDIO_EXTENSIONS


def scan_directory(root: Path) -> List[Path]:
    """
    Return every audio file under ``root``, recursively.

    A directory that is missing or unreadable contributes nothing instead of
    aborting the scan. Entries that cannot be stat'ed are skipped. Symlinked
    directories are followed and loops are not detected. Result order is not
    defined.
    """
    results: List[Path] = []
    try:
        entries = list(os.scandir(root))
    except OSError as exc:
        logger.debug(f"Skipping unreadable directory {root}: {exc}")
        return results

    for entry in entries:
        try:
            if entry.is_dir():
                results.extend(scan_directory(Path(entry.path)))
            elif entry.is_file() and is_audio_file(Path(entry.name)):
                results.append(Path(entry.path))
        except OSError as exc:
            logger.debug(f"Skipping {entry.path}: {exc}")
            continue
    return results
