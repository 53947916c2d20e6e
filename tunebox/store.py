"""
Flat JSON persistence for annotations and playlists.

Each store is one JSON document that is read fully on every access and
rewritten fully on every mutation. Writes go to a ``.tmp`` sibling first and
are moved into place with ``Path.replace()``.

There is no locking: two concurrent writers can lose an update (last writer
wins). That is accepted for a single-user local tool.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TypeVar

from loguru import logger

from .models import Playlist

T = TypeVar("T")


class JsonStore:
    """
    Repository over a single JSON file.

    ``load`` returns a fresh copy of the document, ``save`` replaces it, and
    ``mutate`` runs a callback against the loaded document and saves the result.
    Services only talk to this interface, so a different backend can be swapped
    in without touching them.
    """

    def __init__(self, path: Path, default_factory: Callable[[], Any]) -> None:
        self.path = Path(path)
        self._default_factory = default_factory

    def load(self) -> Any:
        if not self.path.exists():
            return self._default_factory()
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.warning(f"Store {self.path} is unreadable, treating as empty: {exc}")
            return self._default_factory()

    def save(self, data: Any) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        tmp.replace(self.path)

    def mutate(self, fn: Callable[[Any], T]) -> T:
        """Load, apply ``fn`` in place, save, and return whatever ``fn`` returned."""
        data = self.load()
        result = fn(data)
        self.save(data)
        return result

    def __repr__(self) -> str:
        return f"{type(self).__name__}(path={self.path})"


class AnnotationStore(JsonStore):
    """Relative audio path → annotation document."""

    def __init__(self, path: Path) -> None:
        super().__init__(path, dict)

    def load(self) -> Dict[str, Any]:
        data = super().load()
        if not isinstance(data, dict):
            logger.warning(f"Annotation store {self.path} is not an object, ignoring it")
            return {}
        return data

    def get(self, rel_path: str) -> Optional[Dict[str, Any]]:
        return self.load().get(rel_path)

    def set(self, rel_path: str, document: Dict[str, Any]) -> None:
        def _replace(data: Dict[str, Any]) -> None:
            data[rel_path] = document

        self.mutate(_replace)

    def delete(self, rel_path: str) -> bool:
        """Remove the document for ``rel_path``. Returns False if none existed."""
        return self.mutate(lambda data: data.pop(rel_path, None) is not None)


class PlaylistStore(JsonStore):
    """Ordered list of playlists."""

    def __init__(self, path: Path) -> None:
        super().__init__(path, list)

    def load_playlists(self) -> List[Playlist]:
        data = self.load()
        if not isinstance(data, list):
            logger.warning(f"Playlist store {self.path} is not an array, ignoring it")
            return []
        return [Playlist.model_validate(p) for p in data]

    def save_playlists(self, playlists: List[Playlist]) -> None:
        self.save([p.model_dump() for p in playlists])
