"""
Playlist Service: CRUD over the playlist store plus album auto-playlists.

Track lists are stored verbatim: duplicates and paths to files that no longer
exist are kept, and consumers filter them when rendering.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from typing import Callable, Iterable, List, Optional, Set, Tuple

from loguru import logger

from .errors import NotFoundError, ValidationError
from .models import ALBUM_PLAYLIST_PREFIX, AudioFile, Playlist, ReconcileReport
from .store import PlaylistStore


def _now_ms() -> int:
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Album reconciliation (pure helpers)
# ---------------------------------------------------------------------------

def group_by_album(files: Iterable[AudioFile]) -> "OrderedDict[str, List[str]]":
    """
    Album name → relative paths sorted by track number.

    Files without an album (or with unreadable tags) land in "Unknown Album";
    a missing track number sorts as 0, ahead of numbered tracks. The sort is
    stable, so ties keep listing order.
    """
    groups: "OrderedDict[str, List[AudioFile]]" = OrderedDict()
    for f in files:
        groups.setdefault(f.album(), []).append(f)

    return OrderedDict(
        (album, [f.rel_path for f in sorted(members, key=lambda f: f.track_number())])
        for album, members in groups.items()
    )


def album_playlist_name(album: str) -> str:
    return f"{ALBUM_PLAYLIST_PREFIX}{album}"


def find_duplicate_indexes(playlists: List[Playlist]) -> List[int]:
    """
    Positions of playlists that repeat an earlier one's name and exact track
    sequence. The first of each duplicate set survives. Order matters:
    ``[a, b]`` and ``[b, a]`` are different playlists.
    """
    seen: Set[Tuple[str, Tuple[str, ...]]] = set()
    duplicates: List[int] = []
    for index, playlist in enumerate(playlists):
        key = (playlist.name, tuple(playlist.tracks))
        if key in seen:
            duplicates.append(index)
        else:
            seen.add(key)
    return duplicates


def plan_album_playlists(
    files: Iterable[AudioFile],
    playlists: List[Playlist],
) -> Tuple[List[int], List[Tuple[str, List[str]]]]:
    """
    Decide what a reconciliation run changes, without touching storage.

    Returns the indexes of duplicate playlists to drop and the
    ``(name, tracks)`` pairs of album playlists to create. Name existence is
    checked against the survivors, after duplicates are dropped.
    """
    duplicates = find_duplicate_indexes(playlists)
    dropped = set(duplicates)
    existing_names = {p.name for i, p in enumerate(playlists) if i not in dropped}

    to_create = []
    for album, tracks in group_by_album(files).items():
        name = album_playlist_name(album)
        if name not in existing_names:
            to_create.append((name, tracks))
            existing_names.add(name)
    return duplicates, to_create


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class PlaylistService:
    """Playlist operations backed by a ``PlaylistStore``."""

    def __init__(self, store: PlaylistStore, clock: Callable[[], int] = _now_ms) -> None:
        self.store = store
        self._clock = clock

    def _next_id(self, playlists: List[Playlist]) -> int:
        """Creation time in ms, bumped past every existing id so ids stay unique."""
        candidate = self._clock()
        highest = max((p.id for p in playlists), default=0)
        return max(candidate, highest + 1)

    def list(self) -> List[Playlist]:
        return self.store.load_playlists()

    def get(self, playlist_id: int) -> Playlist:
        for playlist in self.store.load_playlists():
            if playlist.id == playlist_id:
                return playlist
        raise NotFoundError("Playlist not found")

    def create(self, name: Optional[str], tracks: Optional[List[str]] = None) -> Playlist:
        if not name:
            raise ValidationError("Missing playlist name")

        playlists = self.store.load_playlists()
        playlist = Playlist(id=self._next_id(playlists), name=name, tracks=list(tracks or []))
        playlists.append(playlist)
        self.store.save_playlists(playlists)
        logger.info(f"Created playlist {playlist.id} '{name}' with {len(playlist.tracks)} tracks")
        return playlist

    def replace_tracks(self, playlist_id: int, tracks: List[str]) -> Playlist:
        """Replace the whole track sequence. Add, remove and reorder all go through here."""
        playlists = self.store.load_playlists()
        for index, playlist in enumerate(playlists):
            if playlist.id == playlist_id:
                updated = playlist.model_copy(update={"tracks": list(tracks)})
                playlists[index] = updated
                self.store.save_playlists(playlists)
                logger.info(f"Playlist {playlist_id} now has {len(updated.tracks)} tracks")
                return updated
        raise NotFoundError("Playlist not found")

    def delete(self, playlist_id: int) -> None:
        """Remove every playlist with ``playlist_id``. Unknown ids are a no-op."""
        playlists = self.store.load_playlists()
        remaining = [p for p in playlists if p.id != playlist_id]
        if len(remaining) != len(playlists):
            self.store.save_playlists(remaining)
            logger.info(f"Deleted playlist {playlist_id}")

    def reconcile_album_playlists(self, files: Iterable[AudioFile]) -> ReconcileReport:
        """
        Drop exact duplicate playlists, then create an "Album: <name>" playlist
        for every album that lacks one. Running it again against an unchanged
        library changes nothing.
        """
        files = list(files)
        playlists = self.store.load_playlists()
        duplicates, to_create = plan_album_playlists(files, playlists)

        dropped = set(duplicates)
        removed = [playlists[i].id for i in duplicates]
        survivors = [p for i, p in enumerate(playlists) if i not in dropped]

        created: List[Playlist] = []
        for name, tracks in to_create:
            playlist = Playlist(id=self._next_id(survivors), name=name, tracks=tracks)
            survivors.append(playlist)
            created.append(playlist)

        if removed or created:
            self.store.save_playlists(survivors)

        for playlist_id in removed:
            logger.info(f"Removed duplicate playlist {playlist_id}")
        for playlist in created:
            logger.info(f"Created album playlist '{playlist.name}' with {len(playlist.tracks)} tracks")

        return ReconcileReport(removed=removed, created=created, playlists=survivors)
