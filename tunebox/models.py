"""
Data Models for tunebox

Pydantic models for the file listing, annotations, playlists and the request
bodies accepted by the HTTP API. JSON field names are camelCase (``relPath``)
while Python attributes stay snake_case.
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


METADATA_ERROR = "Could not read metadata"
UNKNOWN_ALBUM = "Unknown Album"
ALBUM_PLAYLIST_PREFIX = "Album: "


class _ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Embedded metadata
# ---------------------------------------------------------------------------

class NumberPair(_ApiModel):
    """Position within a set, e.g. track 3 of 12."""

    no: Optional[int] = None
    of: Optional[int] = None


class Picture(_ApiModel):
    """Embedded cover art, base64-encoded."""

    format: str = Field("image/jpeg", description="MIME type declared by the tag")
    data: str = Field(..., description="Base64 image bytes")
    description: Optional[str] = None


class TrackMetadata(_ApiModel):
    """Tags extracted from an audio file. Every field is optional."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    album_artist: Optional[str] = Field(None, alias="albumArtist")
    genre: Optional[str] = None
    track: NumberPair = Field(default_factory=NumberPair)
    disk: NumberPair = Field(default_factory=NumberPair)
    year: Optional[int] = None
    duration: Optional[float] = Field(None, description="Length in seconds")
    picture: List[Picture] = Field(default_factory=list)


class MetadataError(_ApiModel):
    """Sentinel returned in place of metadata when a file cannot be parsed."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    error: str = METADATA_ERROR


# ---------------------------------------------------------------------------
# Library listing
# ---------------------------------------------------------------------------

class AudioFile(_ApiModel):
    """One discovered file joined with its metadata and annotation."""

    rel_path: str = Field(..., alias="relPath", description="Path relative to the library root")
    name: str
    metadata: Union[TrackMetadata, MetadataError]
    annotation: Dict[str, Any] = Field(default_factory=dict)

    def album(self) -> str:
        if isinstance(self.metadata, TrackMetadata) and self.metadata.album:
            return self.metadata.album
        return UNKNOWN_ALBUM

    def track_number(self) -> int:
        if isinstance(self.metadata, TrackMetadata) and self.metadata.track.no:
            return self.metadata.track.no
        return 0


# ---------------------------------------------------------------------------
# Playlists
# ---------------------------------------------------------------------------

class Playlist(_ApiModel):
    """User-defined or album-generated playlist."""

    id: int
    name: str
    tracks: List[str] = Field(default_factory=list)


class ReconcileReport(_ApiModel):
    """Outcome of an album playlist reconciliation run."""

    removed: List[int] = Field(default_factory=list)
    created: List[Playlist] = Field(default_factory=list)
    playlists: List[Playlist] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------

class AnnotationUpdate(_ApiModel):
    rel_path: Optional[str] = Field(None, alias="relPath")
    document: Dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("document", "jsonData"),
    )


class MetadataFields(_ApiModel):
    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    track: Optional[Union[int, str]] = None

    def as_tags(self) -> Dict[str, str]:
        """Field name → text, leaving out fields the client did not send."""
        tags: Dict[str, str] = {}
        for name in ("title", "artist", "album", "track"):
            value = getattr(self, name)
            if value is not None:
                tags[name] = str(value)
        return tags


class MetadataUpdate(_ApiModel):
    rel_path: Optional[str] = Field(None, alias="relPath")
    metadata: Optional[MetadataFields] = None


class PlaylistCreate(_ApiModel):
    name: Optional[str] = None
    tracks: List[str] = Field(default_factory=list)


class PlaylistTracksUpdate(_ApiModel):
    tracks: List[str]
