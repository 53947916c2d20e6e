"""Error taxonomy. Each error knows the HTTP status it maps to."""


class TuneboxError(Exception):
    """Base class for all errors surfaced to API callers."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(TuneboxError):
    """A required request field is missing or a path escapes the library root."""

    status_code = 400


class NotFoundError(TuneboxError):
    """Unknown playlist id or missing audio file."""

    status_code = 404


class UnsupportedFormatError(TuneboxError):
    """The file extension has no tag writer."""

    status_code = 400


class TagWriteError(TuneboxError):
    """The tag writer or the remux subprocess failed."""

    status_code = 500


class RangeNotSatisfiableError(TuneboxError):
    """The requested byte range lies outside the file."""

    status_code = 416

    def __init__(self, message: str, file_size: int) -> None:
        super().__init__(message)
        self.file_size = file_size
