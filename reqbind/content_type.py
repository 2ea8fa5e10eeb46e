"""Media type resolution for inbound request bodies."""

from __future__ import annotations

from enum import IntEnum


class ContentType(IntEnum):
    """Request body kinds the pipeline knows how to tell apart."""

    UNKNOWN = 0
    PLAIN_TEXT = 1
    HTML = 2
    JSON = 3
    XML = 4
    FORM = 5
    MULTIPART = 6
    EVENT_STREAM = 7

    @property
    def media_type(self) -> str:
        """Canonical media type string, empty for ``UNKNOWN``."""
        return _CANONICAL.get(self, "")


_MEDIA_TYPES: dict[str, ContentType] = {
    "text/plain": ContentType.PLAIN_TEXT,
    "text/html": ContentType.HTML,
    "application/xhtml+xml": ContentType.HTML,
    "application/json": ContentType.JSON,
    "text/javascript": ContentType.JSON,
    "application/problem+json": ContentType.JSON,
    "application/vnd.api+json": ContentType.JSON,
    "text/xml": ContentType.XML,
    "application/xml": ContentType.XML,
    "application/x-www-form-urlencoded": ContentType.FORM,
    "multipart/form-data": ContentType.MULTIPART,
    "text/event-stream": ContentType.EVENT_STREAM,
}

_CANONICAL: dict[ContentType, str] = {
    ContentType.PLAIN_TEXT: "text/plain",
    ContentType.HTML: "text/html",
    ContentType.JSON: "application/json",
    ContentType.XML: "application/xml",
    ContentType.FORM: "application/x-www-form-urlencoded",
    ContentType.MULTIPART: "multipart/form-data",
    ContentType.EVENT_STREAM: "text/event-stream",
}


def resolve_content_type(raw: str | None) -> ContentType:
    """Map a ``Content-Type`` header value to a :class:`ContentType`.

    Parameters such as ``; charset=utf-8`` are ignored. Matching is exact and
    case-sensitive; wildcards and anything unlisted resolve to ``UNKNOWN``.
    """

    if not raw:
        return ContentType.UNKNOWN
    media = raw.split(";", 1)[0].strip()
    return _MEDIA_TYPES.get(media, ContentType.UNKNOWN)


__all__ = ["ContentType", "resolve_content_type"]
