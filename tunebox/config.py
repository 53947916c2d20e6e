"""
Runtime configuration for tunebox.

Every setting has a sensible default and can be overridden with a
``TUNEBOX_*`` environment variable; the CLI in ``app.main`` overrides both.
"""

import os
import sys
from pathlib import Path
from typing import List, Optional

from loguru import logger
from pydantic import BaseModel, Field


_DEFAULT_DATA_DIR = Path(".data")


def _env_path(name: str, default: Path) -> Path:
    value = os.environ.get(name)
    return Path(value) if value else default


def _env_int(name: str, default: int, minimum: int = 1, maximum: Optional[int] = None) -> int:
    """Integer env var; a malformed or out-of-range value falls back to ``default`` with a warning."""
    value = os.environ.get(name)
    if not value:
        return default
    try:
        parsed = int(value)
    except ValueError:
        logger.warning(f"Ignoring {name}={value!r}: not an integer, using {default}")
        return default
    if parsed < minimum or (maximum is not None and parsed > maximum):
        logger.warning(f"Ignoring {name}={value!r}: out of range, using {default}")
        return default
    return parsed


class Settings(BaseModel):
    """Paths and server options shared by every service."""

    library_root: Path = Field(Path("audio-library"), description="Directory scanned for audio files")
    annotations_path: Path = Field(_DEFAULT_DATA_DIR / "annotations.json", description="Annotation store file")
    playlists_path: Path = Field(_DEFAULT_DATA_DIR / "playlists.json", description="Playlist store file")
    ffmpeg_binary: str = Field("ffmpeg", description="Executable used for remux tag writes")
    host: str = "127.0.0.1"
    port: int = Field(5050, ge=1, le=65535)
    log_level: str = "INFO"
    scan_workers: int = Field(8, ge=1, description="Threads used for metadata reads per listing")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from TUNEBOX_* environment variables."""
        origins = os.environ.get("TUNEBOX_CORS_ORIGINS", "*")
        return cls(
            library_root=_env_path("TUNEBOX_LIBRARY_ROOT", Path("audio-library")),
            annotations_path=_env_path("TUNEBOX_ANNOTATIONS_PATH", _DEFAULT_DATA_DIR / "annotations.json"),
            playlists_path=_env_path("TUNEBOX_PLAYLISTS_PATH", _DEFAULT_DATA_DIR / "playlists.json"),
            ffmpeg_binary=os.environ.get("TUNEBOX_FFMPEG", "ffmpeg"),
            host=os.environ.get("TUNEBOX_HOST", "127.0.0.1"),
            port=_env_int("TUNEBOX_PORT", 5050, maximum=65535),
            log_level=os.environ.get("TUNEBOX_LOG_LEVEL", "INFO").upper(),
            scan_workers=_env_int("TUNEBOX_SCAN_WORKERS", 8),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        )

    def resolved_root(self) -> Path:
        return self.library_root.expanduser().resolve()


def configure_logging(level: str = "INFO") -> None:
    """Replace loguru's default sink with a single stderr sink at ``level``."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {name}:{line} - {message}",
    )
