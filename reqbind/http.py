"""Minimal request primitives consumed by the decoders."""

from __future__ import annotations

import io
import logging
import tempfile
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Mapping
from urllib.parse import parse_qs

from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header

from .exceptions import DecodeError

_LOGGER = logging.getLogger("reqbind.http")

_CHUNK_SIZE = 64 * 1024

# Non-file values may use this much beyond the upload memory threshold.
VALUE_HEADROOM = 10 << 20


class UploadFile:
    """An uploaded multipart file part.

    The content lives in a :class:`tempfile.SpooledTemporaryFile` that stays
    in memory until the owning request rolls it over to disk.
    """

    def __init__(
        self,
        filename: str,
        *,
        field_name: str = "",
        content_type: str = "",
        headers: Mapping[str, str] | None = None,
    ) -> None:
        self.filename = filename
        self.field_name = field_name
        self.content_type = content_type
        self.headers = dict(headers or {})
        self.size = 0
        self.in_memory = True
        self.file: Any = tempfile.SpooledTemporaryFile(max_size=0)

    def write(self, data: bytes) -> int:
        written = self.file.write(data)
        self.size += written
        return written

    def rollover(self) -> None:
        """Move the buffered content to a temporary file on disk."""
        if self.in_memory:
            self.file.rollover()
            self.in_memory = False
            _LOGGER.debug(
                "upload %r (%d bytes) spilled to disk", self.filename, self.size
            )

    def read(self, size: int = -1) -> bytes:
        return self.file.read(size)

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        return self.file.seek(offset, whence)

    def close(self) -> None:
        self.file.close()

    def __repr__(self) -> str:
        return (
            f"UploadFile(filename={self.filename!r}, size={self.size}, "
            f"content_type={self.content_type!r})"
        )


@dataclass
class MultipartForm:
    """Values and files parsed from a ``multipart/form-data`` body."""

    values: dict[str, list[str]] = field(default_factory=dict)
    files: dict[str, list[UploadFile]] = field(default_factory=dict)


class _MultipartReader:
    """Collect parts emitted by :class:`MultipartParser` callbacks.

    Uploaded bytes are kept in memory while the running in-memory total stays
    within ``max_memory``; the part that crosses it is rolled over to disk.
    Plain values are always buffered and together may not exceed
    ``max_memory + VALUE_HEADROOM`` bytes. A part with an empty filename is a
    plain value.
    """

    def __init__(self, boundary: bytes, max_memory: int) -> None:
        self.max_memory = max_memory
        self.form = MultipartForm()
        self.complete = False
        self._memory_used = 0
        self._values_left = max_memory + VALUE_HEADROOM
        self._header_field = b""
        self._header_value = b""
        self._headers: dict[str, str] = {}
        self._name = ""
        self._value = bytearray()
        self._upload: UploadFile | None = None
        self._parser = MultipartParser(
            boundary,
            {
                "on_part_begin": self._on_part_begin,
                "on_part_data": self._on_part_data,
                "on_part_end": self._on_part_end,
                "on_header_field": self._on_header_field,
                "on_header_value": self._on_header_value,
                "on_header_end": self._on_header_end,
                "on_headers_finished": self._on_headers_finished,
                "on_end": self._on_end,
            },
        )

    def feed(self, stream: BinaryIO) -> MultipartForm:
        try:
            while True:
                chunk = stream.read(_CHUNK_SIZE)
                if not chunk:
                    break
                self._parser.write(chunk)
            self._parser.finalize()
        except MultipartParseError as exc:
            self.close()
            raise DecodeError(f"multipart: {exc}") from exc
        except DecodeError:
            self.close()
            raise
        if not self.complete:
            self.close()
            raise DecodeError("multipart: unexpected end of body")
        for uploads in self.form.files.values():
            for upload in uploads:
                upload.seek(0)
        return self.form

    def close(self) -> None:
        for uploads in self.form.files.values():
            for upload in uploads:
                upload.close()
        if self._upload is not None:
            self._upload.close()

    def _on_part_begin(self) -> None:
        self._headers = {}
        self._name = ""
        self._value = bytearray()
        self._upload = None

    def _on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field += data[start:end]

    def _on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def _on_header_end(self) -> None:
        name = self._header_field.decode("latin-1").strip().lower()
        self._headers[name] = self._header_value.decode("latin-1").strip()
        self._header_field = b""
        self._header_value = b""

    def _on_headers_finished(self) -> None:
        _, options = parse_options_header(self._headers.get("content-disposition"))
        try:
            self._name = options.get(b"name", b"").decode("utf-8")
            filename = options.get(b"filename")
            if filename:
                self._upload = UploadFile(
                    filename.decode("utf-8"),
                    field_name=self._name,
                    content_type=self._headers.get("content-type", ""),
                    headers=self._headers,
                )
        except UnicodeDecodeError as exc:
            raise DecodeError(f"multipart: invalid part header: {exc}") from exc

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        chunk = data[start:end]
        upload = self._upload
        if upload is None:
            self._values_left -= len(chunk)
            if self._values_left < 0:
                raise DecodeError("multipart: message too large")
            self._value.extend(chunk)
            return
        upload.write(chunk)
        if upload.in_memory:
            self._memory_used += len(chunk)
            if self._memory_used > self.max_memory:
                self._memory_used -= upload.size
                upload.rollover()

    def _on_part_end(self) -> None:
        if self._upload is not None:
            self._upload.file.flush()
            self.form.files.setdefault(self._name, []).append(self._upload)
            self._upload = None
            return
        try:
            text = self._value.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(
                f"multipart: field {self._name!r} is not valid UTF-8"
            ) from exc
        self.form.values.setdefault(self._name, []).append(text)

    def _on_end(self) -> None:
        self.complete = True


class Request:
    """Represent an incoming HTTP request."""

    def __init__(
        self,
        method: str = "POST",
        url: str = "/",
        body: bytes | BinaryIO = b"",
        headers: Mapping[str, str] | None = None,
    ) -> None:
        self.method = method.upper()
        self.url = url
        self.headers = {k.lower(): v for k, v in (headers or {}).items()}
        self.stream: BinaryIO = io.BytesIO(body) if isinstance(body, bytes) else body
        self._form: dict[str, list[str]] | None = None
        self._multipart: MultipartForm | None = None

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "")

    def read(self) -> bytes:
        """Return the unread remainder of the body."""
        return self.stream.read()

    def drain(self) -> int:
        """Discard any unread body bytes and return how many were dropped."""
        discarded = 0
        while True:
            chunk = self.stream.read(_CHUNK_SIZE)
            if not chunk:
                return discarded
            discarded += len(chunk)

    def parse_form(self) -> dict[str, list[str]]:
        """Return the urlencoded body values, parsing them once."""

        if self._form is not None:
            return self._form
        data = self.read()
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"form: body is not valid UTF-8: {exc}") from exc
        self._form = parse_qs(text, keep_blank_values=True)
        return self._form

    def parse_multipart_form(self, max_memory: int) -> MultipartForm:
        """Parse a ``multipart/form-data`` body once and return its parts."""

        if self._multipart is not None:
            return self._multipart
        _, params = parse_options_header(self.content_type)
        boundary = params.get(b"boundary")
        if not boundary:
            raise DecodeError("multipart: no boundary in content type")
        self._multipart = _MultipartReader(boundary, max_memory).feed(self.stream)
        return self._multipart

    @property
    def multipart_form(self) -> MultipartForm | None:
        return self._multipart

    def close(self) -> None:
        """Close every uploaded file held by the request."""
        if self._multipart is None:
            return
        for uploads in self._multipart.files.values():
            for upload in uploads:
                upload.close()


__all__ = ["MultipartForm", "Request", "UploadFile"]
