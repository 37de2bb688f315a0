"""Error taxonomy for the content core and the caller-facing service.

Load errors come from reading or parsing source files. Application errors
carry a stable ``code`` that the external API layer maps to a status:

    NotFoundError    -> not found
    BadRequestError  -> bad request
    InternalError    -> internal error
"""

from __future__ import annotations

ERR_INTERNAL_SERVER = "ERR_INTERNAL_SERVER"
ERR_BAD_REQUEST = "ERR_BAD_REQUEST"
ERR_ARTICLE_NOT_FOUND = "ERR_ARTICLE_NOT_FOUND"
ERR_NOTE_NOT_FOUND = "ERR_NOTE_NOT_FOUND"
ERR_VERSION_NOT_FOUND = "ERR_VERSION_NOT_FOUND"
ERR_FULLTEXT_DISABLED = "ERR_FULLTEXT_DISABLED"
ERR_EMPTY_SEARCH_QUERY = "ERR_EMPTY_SEARCH_QUERY"


# ---------------------------------------------------------------------------
# Source loading
# ---------------------------------------------------------------------------


class LoadError(Exception):
    """Raised when a source file cannot be turned into a catalog entry."""


class ContentIOError(LoadError):
    """Filesystem failure while listing or reading content."""


class FrontMatterParseError(LoadError):
    """Front matter is malformed YAML or does not match the metadata shape."""


class MissingFrontMatterError(LoadError):
    """The file does not start with a ``---`` delimited front-matter block."""


class InvalidFileNameError(LoadError):
    """The file stem cannot be used as a slug."""


# ---------------------------------------------------------------------------
# Writers and indexer
# ---------------------------------------------------------------------------


class IndexerError(Exception):
    """The search index could not complete an operation."""


class InvalidTitleError(ValueError):
    """A title produced an empty slug."""


class CapacityExceededError(ValueError):
    """Slug generation ran out of ``-N`` suffix candidates."""


class VersionNotFoundError(LookupError):
    """The requested snapshot does not exist in the version archive."""


# ---------------------------------------------------------------------------
# Caller-facing errors
# ---------------------------------------------------------------------------


class AppError(Exception):
    """Error surfaced to the API layer with a stable error code."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"error_code": self.code, "message": self.message}


class NotFoundError(AppError):
    pass


class BadRequestError(AppError):
    pass


class InternalError(AppError):
    pass
