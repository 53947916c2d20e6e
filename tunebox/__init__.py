"""tunebox: local audio library server with tag editing, streaming and playlists."""

__version__ = "0.1.0"
