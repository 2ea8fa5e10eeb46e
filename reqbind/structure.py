"""Per-type introspection of dataclass members."""

from __future__ import annotations

import collections.abc
import dataclasses
import logging
import threading
import types
from dataclasses import dataclass
from typing import Any, Mapping, Union, get_args, get_origin, get_type_hints

from .http import UploadFile

_LOGGER = logging.getLogger("reqbind.structure")

SEQUENCE_ORIGINS = (
    list,
    tuple,
    set,
    frozenset,
    collections.abc.Sequence,
    collections.abc.MutableSequence,
    collections.abc.Set,
)

FILE_SINGLE = "single"
FILE_MANY = "many"


@dataclass(frozen=True)
class Member:
    """One dataclass field as seen by the decoders and the bind engine."""

    name: str
    annotation: Any
    target: Any
    metadata: Mapping[str, Any]
    aggregate: type | None
    sequence: bool
    files: str | None

    def external_name(self, tag: str) -> str | None:
        """Return the wire name under *tag*, ``None`` when excluded."""
        name = self.metadata.get(tag) or self.name
        return None if name == "-" else name


def unwrap_optional(tp: Any) -> Any:
    """Strip ``None`` from ``Optional[X]`` / ``X | None``."""

    if get_origin(tp) in (Union, types.UnionType):
        args = [arg for arg in get_args(tp) if arg is not type(None)]
        if len(args) == 1:
            return args[0]
    return tp


def is_aggregate(tp: Any) -> bool:
    return isinstance(tp, type) and dataclasses.is_dataclass(tp)


def file_shape(tp: Any) -> str | None:
    """Classify *tp* as a single upload, a sequence of uploads, or neither."""

    if tp is UploadFile:
        return FILE_SINGLE
    if get_origin(tp) in SEQUENCE_ORIGINS:
        args = [arg for arg in get_args(tp) if arg is not Ellipsis]
        if len(args) == 1 and unwrap_optional(args[0]) is UploadFile:
            return FILE_MANY
    return None


def _resolve_hints(tp: type) -> dict[str, Any]:
    try:
        return get_type_hints(tp)
    except (NameError, TypeError) as exc:
        _LOGGER.warning(
            "could not resolve annotations of %s (%s); using raw field types",
            tp.__qualname__,
            exc,
        )
        return {}


def _build_members(tp: type) -> tuple[Member, ...]:
    hints = _resolve_hints(tp)
    result = []
    for f in dataclasses.fields(tp):
        annotation = hints.get(f.name, f.type)
        if isinstance(annotation, str):
            annotation = Any
        target = unwrap_optional(annotation)
        result.append(
            Member(
                name=f.name,
                annotation=annotation,
                target=target,
                metadata=f.metadata,
                aggregate=target if is_aggregate(target) else None,
                sequence=get_origin(target) in SEQUENCE_ORIGINS,
                files=file_shape(target),
            )
        )
    return tuple(result)


_MEMBER_CACHE: dict[type, tuple[Member, ...]] = {}
_MEMBER_LOCK = threading.Lock()


def members(tp: type) -> tuple[Member, ...]:
    """Return the cached members of dataclass type *tp*.

    Inherited fields are included in declaration order, so members promoted
    from a base class are seen exactly as if declared on *tp*.
    """

    cached = _MEMBER_CACHE.get(tp)
    if cached is not None:
        return cached
    built = _build_members(tp)
    with _MEMBER_LOCK:
        return _MEMBER_CACHE.setdefault(tp, built)


def tagged_field(
    *,
    json: str | None = None,
    xml: str | None = None,
    form: str | None = None,
    **kwargs: Any,
) -> Any:
    """``dataclasses.field`` carrying per-format wire names.

    >>> @dataclass
    ... class Upload:
    ...     avatar: UploadFile | None = tagged_field(form="avatar", default=None)
    """

    metadata = dict(kwargs.pop("metadata", None) or {})
    for tag, name in (("json", json), ("xml", xml), ("form", form)):
        if name is not None:
            metadata[tag] = name
    return dataclasses.field(metadata=metadata, **kwargs)


__all__ = [
    "FILE_MANY",
    "FILE_SINGLE",
    "Member",
    "file_shape",
    "is_aggregate",
    "members",
    "tagged_field",
    "unwrap_optional",
]

