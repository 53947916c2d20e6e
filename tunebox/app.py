"""
FastAPI Web Application for tunebox

Endpoints:
  GET    /files                 - Scan the library and list files with tags + annotations
  POST   /annotations           - Replace the annotation document of a file
  DELETE /annotations           - Remove the annotation document of a file
  POST   /metadata              - Rewrite embedded tags of a file
  GET    /stream                - Stream a file (supports Range requests)
  GET    /playlists             - List playlists
  GET    /playlists/{id}        - Get one playlist
  POST   /playlists             - Create a playlist
  PUT    /playlists/{id}        - Replace a playlist's tracks
  DELETE /playlists/{id}        - Delete a playlist (idempotent)
  POST   /playlists/albums      - Dedupe playlists and create missing album playlists
  GET    /health                - Liveness check
"""

import argparse
import shutil
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Optional

import uvicorn
from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings, configure_logging
from .errors import NotFoundError, RangeNotSatisfiableError, TuneboxError
from .library import LibraryService
from .models import (
    AnnotationUpdate,
    AudioFile,
    MetadataUpdate,
    Playlist,
    PlaylistCreate,
    PlaylistTracksUpdate,
    ReconcileReport,
)
from .playlists import PlaylistService
from .store import AnnotationStore, PlaylistStore
from .streaming import StreamingService
from .tag_writer import MetadataEditor, default_tag_writers


class Services:
    """Everything a request handler needs, wired from one ``Settings``."""

    def __init__(self, settings: Settings) -> None:
        root = settings.resolved_root()
        self.settings = settings
        self.library = LibraryService(
            root,
            AnnotationStore(settings.annotations_path),
            scan_workers=settings.scan_workers,
        )
        self.editor = MetadataEditor(root, default_tag_writers(settings.ffmpeg_binary))
        self.streaming = StreamingService(root)
        self.playlists = PlaylistService(PlaylistStore(settings.playlists_path))


def get_services(request: Request) -> Services:
    return request.app.state.services


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    services = Services(settings)

    @asynccontextmanager
    async def lifespan(app_instance: FastAPI):
        root = services.library.root
        if not root.is_dir():
            logger.warning(f"Library root {root} does not exist; listings will be empty.")
        if shutil.which(settings.ffmpeg_binary) is None:
            logger.warning(
                f"{settings.ffmpeg_binary} not found on PATH. "
                "Tag edits for non-MP3 files will fail."
            )
        logger.info(f"tunebox ready. Library root: {root}")
        yield

    app = FastAPI(title="tunebox", lifespan=lifespan)
    app.state.services = services
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Range", "Content-Length", "Accept-Ranges"],
    )
    _register_error_handlers(app)
    _register_routes(app)
    return app


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(TuneboxError)
    async def tunebox_error(request: Request, exc: TuneboxError):
        headers = None
        if isinstance(exc, RangeNotSatisfiableError):
            headers = {"Content-Range": f"bytes */{exc.file_size}"}
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse({"error": exc.message}, status_code=exc.status_code, headers=headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}"
            for err in exc.errors()
        )
        return JSONResponse({"error": details or "Invalid request"}, status_code=400)

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse({"error": exc.detail}, status_code=exc.status_code)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

def _parse_playlist_id(raw: str) -> Optional[int]:
    """Playlist ids in URLs; anything that is not an integer matches no playlist."""
    try:
        return int(raw)
    except ValueError:
        return None


def _register_routes(app: FastAPI) -> None:

    @app.get("/health")
    def health(services: Services = Depends(get_services)):
        return {"status": "ok", "libraryRoot": str(services.library.root)}

    # -- Library ----------------------------------------------------------

    @app.get("/files", response_model=List[AudioFile])
    def list_files(
        directory: Optional[str] = Query(None, alias="dir"),
        search: Optional[str] = None,
        services: Services = Depends(get_services),
    ):
        """Scan the library (or a subdirectory of it) and list every audio file."""
        try:
            return services.library.list_files(directory=directory, search=search)
        except TuneboxError:
            raise
        except Exception as e:
            logger.exception(f"Listing files failed: {e}")
            return JSONResponse({"error": str(e)}, status_code=500)

    @app.post("/annotations")
    def update_annotation(body: AnnotationUpdate, services: Services = Depends(get_services)):
        services.library.set_annotation(body.rel_path, body.document)
        return {"success": True}

    @app.delete("/annotations")
    def delete_annotation(
        rel_path: Optional[str] = Query(None, alias="relPath"),
        services: Services = Depends(get_services),
    ):
        services.library.delete_annotation(rel_path)
        return {"success": True}

    @app.post("/metadata")
    def update_metadata(body: MetadataUpdate, services: Services = Depends(get_services)):
        fields = body.metadata.as_tags() if body.metadata is not None else None
        services.editor.update_metadata(body.rel_path, fields)
        return {"success": True}

    @app.get("/stream")
    def stream(
        path: Optional[str] = None,
        range_header: Optional[str] = Header(None, alias="Range"),
        services: Services = Depends(get_services),
    ):
        audio = services.streaming.open_stream(path, range_header)
        return StreamingResponse(
            audio.body(),
            status_code=audio.status_code,
            headers=audio.headers,
            media_type=audio.media_type,
        )

    # -- Playlists --------------------------------------------------------

    @app.get("/playlists", response_model=List[Playlist])
    def list_playlists(services: Services = Depends(get_services)):
        return services.playlists.list()

    @app.post("/playlists/albums", response_model=ReconcileReport)
    def reconcile_album_playlists(services: Services = Depends(get_services)):
        """Group the library by album and make sure each album has a playlist."""
        files = services.library.list_files()
        return services.playlists.reconcile_album_playlists(files)

    @app.get("/playlists/{playlist_id}", response_model=Playlist)
    def get_playlist(playlist_id: str, services: Services = Depends(get_services)):
        parsed = _parse_playlist_id(playlist_id)
        if parsed is None:
            raise NotFoundError("Playlist not found")
        return services.playlists.get(parsed)

    @app.post("/playlists", response_model=Playlist)
    def create_playlist(body: PlaylistCreate, services: Services = Depends(get_services)):
        return services.playlists.create(body.name, body.tracks)

    @app.put("/playlists/{playlist_id}", response_model=Playlist)
    def replace_playlist_tracks(
        playlist_id: str,
        body: PlaylistTracksUpdate,
        services: Services = Depends(get_services),
    ):
        parsed = _parse_playlist_id(playlist_id)
        if parsed is None:
            raise NotFoundError("Playlist not found")
        return services.playlists.replace_tracks(parsed, body.tracks)

    @app.delete("/playlists/{playlist_id}")
    def delete_playlist(playlist_id: str, services: Services = Depends(get_services)):
        parsed = _parse_playlist_id(playlist_id)
        if parsed is not None:
            services.playlists.delete(parsed)
        return {"success": True}


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> None:
    env = Settings.from_env()
    parser = argparse.ArgumentParser(description="Local audio library server")
    parser.add_argument("--root", type=Path, default=env.library_root, help="Library root directory")
    parser.add_argument("--annotations", type=Path, default=env.annotations_path, help="Annotation store file")
    parser.add_argument("--playlists", type=Path, default=env.playlists_path, help="Playlist store file")
    parser.add_argument("--ffmpeg", default=env.ffmpeg_binary, help="ffmpeg executable")
    parser.add_argument("--host", default=env.host)
    parser.add_argument("--port", type=int, default=env.port)
    parser.add_argument("--log-level", default=env.log_level)
    args = parser.parse_args(argv)

    settings = env.model_copy(update={
        "library_root": args.root,
        "annotations_path": args.annotations,
        "playlists_path": args.playlists,
        "ffmpeg_binary": args.ffmpeg,
        "host": args.host,
        "port": args.port,
        "log_level": args.log_level.upper(),
    })
    configure_logging(settings.log_level)
    logger.info(f"Starting tunebox on {settings.host}:{settings.port}")
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


app = create_app()


if __name__ == "__main__":
    main()
