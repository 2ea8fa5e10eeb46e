"""Error types raised by the decode-and-bind pipeline."""

from __future__ import annotations

import json
from typing import Any, Sequence


class ReqbindError(Exception):
    """Base class for every error raised by reqbind."""

    code = "REQBIND_ERROR"


class DecodeError(ReqbindError, ValueError):
    """The request body could not be decoded into the target."""

    code = "DECODE_ERROR"

    def __init__(self, message: str, loc: Sequence[Any] | None = None) -> None:
        self.loc = list(loc or [])
        self.message = message
        if self.loc:
            where = ".".join(str(part) for part in self.loc)
            message = f"decode failed on field '{where}': {message}"
        super().__init__(message)


class UnsupportedContentTypeError(DecodeError):
    """No decoder is registered for the request's content type."""

    code = "UNSUPPORTED_CONTENT_TYPE"

    def __init__(self, content_type: str | None = None) -> None:
        self.content_type = content_type
        super().__init__("bind: unsupported content type")


class InvalidArgumentError(ReqbindError, TypeError):
    """A destination of the wrong shape was passed."""

    code = "INVALID_ARGUMENT"


class RecursionLimitError(ReqbindError, RecursionError):
    """The bound value is nested deeper than the engine allows."""

    code = "RECURSION_LIMIT"

    def __init__(self, limit: int) -> None:
        self.limit = limit
        super().__init__(f"max recursion depth ({limit}) exceeded")


class BindError(ReqbindError):
    """A failure tied to the field path where it happened.

    ``field`` is the dotted member path from the root value, empty when the
    failure belongs to the root itself (including decode failures).
    """

    code = "BIND_ERROR"

    def __init__(self, field: str | None, cause: BaseException) -> None:
        self.field = field or ""
        self.cause = cause
        super().__init__(self.field, cause)

    def __str__(self) -> str:
        if self.field:
            return f"bind failed on field '{self.field}': {self.cause}"
        return f"bind failed: {self.cause}"

    def __repr__(self) -> str:
        return f"BindError(field={self.field!r}, cause={self.cause!r})"

    def unwrap(self) -> BaseException:
        """Return the wrapped cause."""
        return self.cause


def error_to_map(exc: BaseException | None) -> dict[str, str]:
    """Return ``{"error": <message>}``; ``None`` gives an empty message."""
    if exc is None:
        return {"error": ""}
    return {"error": str(exc)}


def error_to_json(exc: BaseException | None) -> bytes:
    """Serialize *exc* as the compact JSON object ``{"error":"..."}``."""
    return json.dumps(error_to_map(exc), separators=(",", ":")).encode()


__all__ = [
    "BindError",
    "DecodeError",
    "InvalidArgumentError",
    "RecursionLimitError",
    "ReqbindError",
    "UnsupportedContentTypeError",
    "error_to_json",
    "error_to_map",
]
