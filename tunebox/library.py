"""
Library Service: joins the scanner, the metadata reader and the annotation
store into the file listing, and owns annotation updates.

Every listing rescans the library root and re-parses every file; nothing is
cached, so the response always reflects what is on disk.
"""

from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from .errors import ValidationError
from .metadata import read_metadata
from .models import AudioFile, TrackMetadata
from .scanner import scan_directory
from .store import AnnotationStore

AnnotationHook = Callable[[str, Dict[str, Any]], None]


def resolve_library_path(root: Path, rel_path: str) -> Path:
    """
    Join ``rel_path`` onto ``root`` and reject anything that lands outside it.

    The check is lexical (``..`` segments and absolute paths are caught) so
    symlinks inside the library keep working.
    """
    if rel_path is None:
        raise ValidationError("Missing relative path")
    candidate = Path(os.path.normpath(root / rel_path))
    if candidate != root and root not in candidate.parents:
        raise ValidationError(f"Path escapes the library root: {rel_path}")
    return candidate


def _log_annotation_update(rel_path: str, document: Dict[str, Any]) -> None:
    logger.info(f"Annotation updated for {rel_path} ({len(document)} fields)")


class LibraryService:
    """File listing and annotation updates over one library root."""

    def __init__(
        self,
        root: Path,
        annotations: AnnotationStore,
        scan_workers: int = 8,
        metadata_reader: Callable[[Path], Any] = read_metadata,
    ) -> None:
        self.root = Path(root).expanduser().resolve()
        self.annotations = annotations
        self.scan_workers = max(1, scan_workers)
        self._read_metadata = metadata_reader
        self._annotation_hooks: List[AnnotationHook] = [_log_annotation_update]

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def resolve(self, rel_path: str) -> Path:
        return resolve_library_path(self.root, rel_path)

    def relative(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix()

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list_files(
        self,
        directory: Optional[str] = None,
        search: Optional[str] = None,
    ) -> List[AudioFile]:
        """
        Scan ``directory`` (default: the library root) and return one record
        per audio file. A file whose tags cannot be read still appears, with
        the metadata error sentinel in place of its tags.
        """
        target = self.resolve(directory) if directory else self.root
        paths = scan_directory(target)
        annotations = self.annotations.load()

        with ThreadPoolExecutor(max_workers=self.scan_workers) as pool:
            metadata = list(pool.map(self._read_metadata, paths))

        files = []
        for path, meta in zip(paths, metadata):
            rel_path = self.relative(path)
            annotation = annotations.get(rel_path) or {}
            if not isinstance(annotation, dict):
                logger.warning(f"Ignoring annotation for {rel_path}: expected an object, got {type(annotation).__name__}")
                annotation = {}
            files.append(AudioFile(
                rel_path=rel_path,
                name=path.name,
                metadata=meta,
                annotation=annotation,
            ))

        if search:
            files = [f for f in files if _matches(f, search)]

        logger.debug(f"Listed {len(files)} files under {target}")
        return files

    # ------------------------------------------------------------------
    # Annotations
    # ------------------------------------------------------------------

    def add_annotation_hook(self, hook: AnnotationHook) -> None:
        """Register ``hook(rel_path, document)`` to run after each annotation write."""
        self._annotation_hooks.append(hook)

    def set_annotation(self, rel_path: Optional[str], document: Dict[str, Any]) -> None:
        """Replace the annotation document for ``rel_path`` wholesale."""
        if not rel_path:
            raise ValidationError("Missing relative path")
        self.annotations.set(rel_path, document)
        for hook in self._annotation_hooks:
            hook(rel_path, document)

    def delete_annotation(self, rel_path: Optional[str]) -> None:
        if not rel_path:
            raise ValidationError("Missing relative path")
        if self.annotations.delete(rel_path):
            logger.info(f"Annotation removed for {rel_path}")


def _matches(file: AudioFile, query: str) -> bool:
    """Case-insensitive substring match over name, main tags and annotation text."""
    q = query.strip().lower()
    if not q:
        return True

    haystack = [file.name]
    if isinstance(file.metadata, TrackMetadata):
        haystack += [file.metadata.title or "", file.metadata.artist or "", file.metadata.album or ""]
    for value in file.annotation.values():
        if isinstance(value, str):
            haystack.append(value)
        elif isinstance(value, list):
            haystack += [v for v in value if isinstance(v, str)]

    return any(q in h.lower() for h in haystack)
