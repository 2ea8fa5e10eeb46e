"""Content-type keyed decoders and the registry that selects them."""

from __future__ import annotations

import dataclasses
import json
import logging
import xml.etree.ElementTree as ET
from typing import Any, Callable

from .coercion import FORM_FIELDS, JSON_FIELDS, XML_FIELDS, nest_form_values
from .config import MAX_RECURSION_DEPTH, load_settings
from .content_type import ContentType, resolve_content_type
from .exceptions import (
    DecodeError,
    InvalidArgumentError,
    RecursionLimitError,
    UnsupportedContentTypeError,
)
from .http import Request
from .locks import ReadWriteLock
from .structure import FILE_MANY, FILE_SINGLE, members

_LOGGER = logging.getLogger("reqbind.decoder")

Decoder = Callable[[Request, Any], None]

_IMMUTABLE_DESTINATIONS = (str, bytes, bytearray, int, float, complex, bool, tuple, frozenset)


def decode_json(request: Request, target: Any) -> None:
    """Decode a JSON body into *target*."""
    try:
        try:
            payload = json.loads(request.read())
        except (ValueError, UnicodeDecodeError) as exc:
            raise DecodeError(f"json: {exc}") from exc
        except RecursionError as exc:
            _LOGGER.warning("json body nested beyond the parser stack")
            raise RecursionLimitError(MAX_RECURSION_DEPTH) from exc
        JSON_FIELDS.populate(target, payload)
    finally:
        request.drain()


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def xml_to_data(root: ET.Element) -> Any:
    """Convert an element tree to nested mappings without recursion.

    Leaf elements become their stripped text, attributes and children become
    keys, repeated children are collected into lists. A child element takes
    precedence over an attribute with the same local name.
    """

    order: list[ET.Element] = []
    stack = [root]
    while stack:
        element = stack.pop()
        order.append(element)
        stack.extend(element)

    converted: dict[int, Any] = {}
    for element in reversed(order):
        children = list(element)
        text = (element.text or "").strip()
        if not children and not element.attrib:
            converted[id(element)] = text
            continue
        data: dict[str, Any] = {_local_name(k): v for k, v in element.attrib.items()}
        attributes = set(data)
        repeated: set[str] = set()
        for child in children:
            name = _local_name(child.tag)
            value = converted.pop(id(child))
            if name in attributes:
                # a child element replaces the attribute of the same name
                attributes.discard(name)
                data[name] = value
            elif name in repeated:
                data[name].append(value)
            elif name in data:
                data[name] = [data[name], value]
                repeated.add(name)
            else:
                data[name] = value
        if text:
            data["#text"] = text
        converted[id(element)] = data
    return converted[id(root)]


def decode_xml(request: Request, target: Any) -> None:
    """Decode an XML body into *target*; the root element name is ignored."""
    try:
        try:
            root = ET.fromstring(request.read())
        except ET.ParseError as exc:
            raise DecodeError(f"xml: {exc}") from exc
        payload = xml_to_data(root)
        if not isinstance(payload, dict):
            payload = {}
        XML_FIELDS.populate(target, payload)
    finally:
        request.drain()


def decode_form(request: Request, target: Any) -> None:
    """Decode an ``application/x-www-form-urlencoded`` body into *target*."""
    try:
        values = request.parse_form()
        FORM_FIELDS.populate(target, nest_form_values(values))
    finally:
        request.drain()


def populate_files(request: Request, target: Any) -> None:
    """Assign uploaded files to ``form``-tagged members of *target*.

    *target* must be a mutable instance; anything that is not a dataclass
    instance has no file members and is left alone. A member receives the
    first upload when declared as ``UploadFile`` and every upload when
    declared as a sequence of ``UploadFile``. Untagged members, members of any
    other type, private (``_``-prefixed) members and members that refuse
    assignment are skipped.
    """

    if (
        target is None
        or isinstance(target, type)
        or isinstance(target, _IMMUTABLE_DESTINATIONS)
    ):
        raise InvalidArgumentError(
            f"bind: populate_files needs a mutable instance, got {type(target).__name__}"
        )
    if not dataclasses.is_dataclass(target):
        return
    form = request.multipart_form
    if form is None:
        return
    for member in members(type(target)):
        tag = member.metadata.get("form")
        if not tag or tag == "-":
            continue
        uploads = form.files.get(tag)
        if not uploads:
            continue
        if member.name.startswith("_") or member.files is None:
            continue
        value = uploads[0] if member.files == FILE_SINGLE else list(uploads)
        try:
            setattr(target, member.name, value)
        except AttributeError:
            _LOGGER.debug(
                "skipping read-only file member %s.%s",
                type(target).__qualname__,
                member.name,
            )


class DecoderRegistry:
    """Map content-type kinds to decoders.

    Lookups happen once per request and take the shared side of a
    reader/writer lock; registration takes the exclusive side and is visible
    to every later lookup.
    """

    def __init__(self, max_multipart_memory: int | None = None) -> None:
        if max_multipart_memory is None:
            max_multipart_memory = load_settings().max_multipart_memory
        self._lock = ReadWriteLock()
        self._max_multipart_memory = 0
        self.set_max_multipart_memory(max_multipart_memory)
        self._decoders: dict[ContentType, Decoder] = {
            ContentType.JSON: decode_json,
            ContentType.XML: decode_xml,
            ContentType.FORM: decode_form,
            ContentType.MULTIPART: self.decode_multipart,
        }

    @property
    def max_multipart_memory(self) -> int:
        return self._max_multipart_memory

    def set_max_multipart_memory(self, size: int) -> None:
        """Set the in-memory budget for uploaded files, in bytes."""
        if size < 0:
            raise ValueError(f"max multipart memory must not be negative: {size}")
        self._max_multipart_memory = size

    def get_decoder(self, kind: ContentType) -> Decoder | None:
        with self._lock.reading():
            return self._decoders.get(kind)

    def register_decoder(self, kind: ContentType, decoder: Decoder) -> None:
        """Add or replace the decoder used for *kind*."""
        with self._lock.writing():
            self._decoders[kind] = decoder
        _LOGGER.debug("registered decoder %r for %s", decoder, kind.name)

    def default_decode(self, request: Request, target: Any) -> None:
        """Decode *request* into *target* using its declared content type."""
        raw = request.headers.get("content-type", "")
        kind = resolve_content_type(raw)
        decoder = self.get_decoder(kind)
        if decoder is None:
            _LOGGER.warning("no decoder for content type %r", raw)
            raise UnsupportedContentTypeError(raw)
        decoder(request, target)

    def decode_multipart(self, request: Request, target: Any) -> None:
        """Decode ``multipart/form-data``: files first, then plain values."""
        try:
            form = request.parse_multipart_form(self._max_multipart_memory)
            populate_files(request, target)
            FORM_FIELDS.populate(target, nest_form_values(form.values))
        finally:
            request.drain()


default_registry = DecoderRegistry()


def get_decoder(kind: ContentType) -> Decoder | None:
    """Return the decoder registered for *kind* on the default registry."""
    return default_registry.get_decoder(kind)


def register_decoder(kind: ContentType, decoder: Decoder) -> None:
    """Register *decoder* for *kind* on the default registry."""
    default_registry.register_decoder(kind, decoder)


def default_decode(request: Request, target: Any) -> None:
    default_registry.default_decode(request, target)


def set_max_multipart_memory(size: int) -> None:
    default_registry.set_max_multipart_memory(size)


__all__ = [
    "Decoder",
    "DecoderRegistry",
    "decode_form",
    "decode_json",
    "decode_xml",
    "default_decode",
    "default_registry",
    "get_decoder",
    "populate_files",
    "register_decoder",
    "set_max_multipart_memory",
    "xml_to_data",
]
