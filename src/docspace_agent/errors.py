"""Error taxonomy shared by the index, the tools and the HTTP adapter."""

from __future__ import annotations


class DocspaceError(Exception):
    """Base class; `status_code` is the HTTP status the adapter reports."""

    status_code = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InvalidRequestError(DocspaceError):
    """Missing or malformed request fields. Raised before any side effect."""

    status_code = 400


class InvalidArgumentError(InvalidRequestError):
    """A tool argument is out of range."""


class AccessDeniedError(DocspaceError):
    """A resolved path escapes the workspace root."""

    status_code = 403


class NotFoundError(DocspaceError):
    status_code = 404


class ParseError(DocspaceError):
    """A document could not be turned into text segments."""

    status_code = 422


class UnsupportedTypeError(ParseError):
    pass


class IndexingError(DocspaceError):
    """Embedding a document failed; the index was left untouched."""


class ToolExecutionError(DocspaceError):
    """A tool failed inside the agent loop. Fed back to the model as a result."""


class UpstreamModelError(DocspaceError):
    """The language model call failed. Not retried."""

    status_code = 502
