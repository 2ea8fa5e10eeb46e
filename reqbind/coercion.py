"""Populate dataclass targets from decoded request data."""

from __future__ import annotations

import dataclasses
import decimal
import inspect
from collections.abc import Mapping, MutableMapping
from typing import Any, get_args, get_origin

from pydantic import BaseModel, PydanticUserError, TypeAdapter, ValidationError

from .capability import implements_binder
from .exceptions import DecodeError
from .structure import SEQUENCE_ORIGINS, is_aggregate, members, unwrap_optional

_TYPE_ADAPTER_CACHE: dict[Any, Any] = {}
_ADAPTER_UNAVAILABLE = object()

# Loose formats send an empty element or field for a zero value.
_ZERO_WHEN_EMPTY = (bool, int, float, decimal.Decimal)


def _get_type_adapter(tp: Any) -> Any | None:
    """Return a cached ``TypeAdapter`` for *tp*, ``None`` when unsupported."""

    try:
        return _TYPE_ADAPTER_CACHE[tp]
    except KeyError:
        pass
    except TypeError:
        return None
    try:
        adapter = TypeAdapter(tp)
    except (PydanticUserError, NameError):
        adapter = None
    _TYPE_ADAPTER_CACHE[tp] = adapter
    return adapter


def _validate_with_type_adapter(value: Any, tp: Any, loc: list[Any]) -> Any:
    adapter = _get_type_adapter(tp)
    if adapter is None:
        return _ADAPTER_UNAVAILABLE
    try:
        return adapter.validate_python(value)
    except ValidationError as exc:
        err = exc.errors()[0]
        err_loc = [part for part in err.get("loc", ()) if part != "__root__"]
        raise DecodeError(err.get("msg", "invalid value"), loc + err_loc) from exc


def _is_plain_binder(tp: Any) -> bool:
    return (
        implements_binder(tp)
        and not is_aggregate(tp)
        and not issubclass(tp, BaseModel)
    )


def new_instance(tp: type) -> Any:
    """Create *tp* with field defaults applied and required fields unset."""

    instance = tp.__new__(tp)
    for f in dataclasses.fields(tp):
        if f.default is not dataclasses.MISSING:
            setattr(instance, f.name, f.default)
        elif f.default_factory is not dataclasses.MISSING:
            setattr(instance, f.name, f.default_factory())
    return instance


class FieldDecoder:
    """Copy decoded data onto dataclass members named by one wire tag.

    ``tag`` selects the metadata key holding each member's wire name
    (``json``, ``xml`` or ``form``). In ``loose`` mode, used for XML and form
    bodies where values arrive untyped, a scalar member receiving a list takes
    its first item and a sequence member receiving a scalar gets a one-item
    list. An empty string sets a numeric or boolean member to zero.

    Nested aggregates are walked with an explicit work list so arbitrarily
    deep payloads never recurse through the interpreter stack.
    """

    def __init__(self, tag: str, *, loose: bool = False) -> None:
        self.tag = tag
        self.loose = loose

    def __repr__(self) -> str:
        return f"FieldDecoder(tag={self.tag!r}, loose={self.loose})"

    def populate(self, target: Any, data: Any, loc: list[Any] | None = None) -> None:
        """Write *data* into *target* in place."""

        base = list(loc or [])
        if isinstance(target, MutableMapping):
            if not isinstance(data, Mapping):
                raise DecodeError(
                    f"cannot decode {type(data).__name__} into a mapping", base
                )
            target.update(data)
            return
        if isinstance(target, type) or not dataclasses.is_dataclass(target):
            raise DecodeError(
                f"cannot decode into {type(target).__name__}: not a dataclass instance",
                base,
            )
        if not isinstance(data, Mapping):
            raise DecodeError(
                f"expected an object for {type(target).__name__}, got {type(data).__name__}",
                base,
            )

        pending: list[tuple[Any, Mapping[str, Any], list[Any]]] = [(target, data, base)]
        created: list[tuple[Any, list[Any]]] = []
        while pending:
            instance, payload, where = pending.pop()
            for member in members(type(instance)):
                if member.files is not None:
                    continue
                key = member.external_name(self.tag)
                if key is None or key not in payload:
                    continue
                raw = payload[key]
                path = where + [member.name]
                if member.aggregate is not None and isinstance(raw, Mapping):
                    child = getattr(instance, member.name, None)
                    if not isinstance(child, member.aggregate):
                        child = new_instance(member.aggregate)
                        setattr(instance, member.name, child)
                        created.append((child, path))
                    pending.append((child, raw, path))
                    continue
                if self.loose:
                    raw = self._loosen(raw, member.sequence)
                    if raw == "" and member.target in _ZERO_WHEN_EMPTY:
                        raw = member.target()
                setattr(instance, member.name, self.coerce(raw, member.annotation, path))

        for instance, path in created:
            self._check_required(instance, path)

    def coerce(self, value: Any, tp: Any, loc: list[Any]) -> Any:
        """Convert *value* to the declared type *tp*."""

        target = unwrap_optional(tp)
        if value is None and (target is not tp or is_aggregate(target)):
            return None
        if target is Any:
            return value
        if is_aggregate(target):
            if isinstance(value, target):
                return value
            instance = new_instance(target)
            self.populate(instance, value, loc)
            self._check_required(instance, loc)
            return instance
        origin = get_origin(target)
        if origin in SEQUENCE_ORIGINS:
            args = [arg for arg in get_args(target) if arg is not Ellipsis]
            item_tp = args[0] if len(args) == 1 else Any
            if is_aggregate(unwrap_optional(item_tp)) or _is_plain_binder(
                unwrap_optional(item_tp)
            ):
                if isinstance(value, (str, bytes)) or not isinstance(value, (list, tuple)):
                    raise DecodeError("expected a list", loc)
                items = [
                    self.coerce(item, item_tp, loc + [idx])
                    for idx, item in enumerate(value)
                ]
                if inspect.isclass(origin) and not inspect.isabstract(origin):
                    return origin(items)
                return items
        if _is_plain_binder(target):
            if isinstance(value, target):
                return value
            try:
                return target(value)
            except (TypeError, ValueError) as exc:
                raise DecodeError(str(exc), loc) from exc
        result = _validate_with_type_adapter(value, target, loc)
        if result is not _ADAPTER_UNAVAILABLE:
            return result
        if inspect.isclass(target) and not isinstance(value, target):
            raise DecodeError(f"expected {target.__name__}", loc)
        return value

    @staticmethod
    def _loosen(raw: Any, sequence: bool) -> Any:
        if sequence:
            return raw if isinstance(raw, list) else [raw]
        if isinstance(raw, list):
            return raw[0] if raw else None
        return raw

    @staticmethod
    def _check_required(instance: Any, loc: list[Any]) -> None:
        for f in dataclasses.fields(instance):
            if not hasattr(instance, f.name):
                raise DecodeError("Field required", loc + [f.name])


JSON_FIELDS = FieldDecoder("json")
XML_FIELDS = FieldDecoder("xml", loose=True)
FORM_FIELDS = FieldDecoder("form", loose=True)


def nest_form_values(values: Mapping[str, list[str]]) -> dict[str, Any]:
    """Turn dotted form keys into nested mappings.

    ``{"inner.name": ["x"], "tags": ["a", "b"]}`` becomes
    ``{"inner": {"name": ["x"]}, "tags": ["a", "b"]}``.
    """

    nested: dict[str, Any] = {}
    for key, vals in values.items():
        node = nested
        *parents, leaf = key.split(".")
        for part in parents:
            child = node.get(part)
            if not isinstance(child, dict):
                child = node[part] = {}
            node = child
        if not isinstance(node.get(leaf), dict):
            node[leaf] = list(vals)
    return nested


__all__ = [
    "FORM_FIELDS",
    "FieldDecoder",
    "JSON_FIELDS",
    "XML_FIELDS",
    "nest_form_values",
    "new_instance",
]
