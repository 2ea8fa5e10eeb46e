"""Decode a request into a value and run its ``bind`` hooks bottom-up."""

from __future__ import annotations

import dataclasses
import logging
import threading
from typing import Any, Iterator

from .capability import Binder, implements_binder
from .config import MAX_RECURSION_DEPTH
from .decoder import Decoder, DecoderRegistry, default_registry
from .exceptions import BindError, RecursionLimitError
from .http import Request
from .locks import ReadWriteLock
from .structure import members

_LOGGER = logging.getLogger("reqbind")


class DescriptorCache:
    """Remember, per dataclass type, which members hold ``Binder`` values.

    Entries are computed on first use and never evicted. Two threads racing on
    the same type may both compute it; the first one stored wins.
    """

    def __init__(self) -> None:
        self._entries: dict[type, tuple[str, ...]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, tp: object) -> bool:
        return tp in self._entries

    def get(self, tp: type) -> tuple[str, ...]:
        cached = self._entries.get(tp)
        if cached is not None:
            return cached
        descriptor = tuple(m.name for m in members(tp) if implements_binder(m.target))
        with self._lock:
            stored = self._entries.setdefault(tp, descriptor)
        _LOGGER.debug("binder members of %s: %s", tp.__qualname__, stored)
        return stored


class _Visit:
    __slots__ = ("value", "path", "depth", "pending")

    def __init__(self, value: Any, path: str, depth: int) -> None:
        self.value = value
        self.path = path
        self.depth = depth
        self.pending: Iterator[str] | None = None


def _invoke(value: Binder, request: Request, path: str) -> None:
    try:
        value.bind(request)
    except BindError:
        raise
    except Exception as exc:
        raise BindError(path, exc) from exc


class BindEngine:
    """Run the decode step followed by the recursive ``bind`` pass.

    The engine owns the decoder registry it reads from, the swappable
    top-level decode function and the per-type descriptor cache. One engine
    may serve any number of concurrent requests.
    """

    def __init__(self, decoders: DecoderRegistry | None = None) -> None:
        self.decoders = decoders if decoders is not None else DecoderRegistry()
        self.descriptors = DescriptorCache()
        self._decode_lock = ReadWriteLock()
        self._decode: Decoder = self.decoders.default_decode

    def get_decode(self) -> Decoder:
        with self._decode_lock.reading():
            return self._decode

    def set_decode(self, decode: Decoder | None) -> None:
        """Replace the top-level decode function; ``None`` restores the default."""
        with self._decode_lock.writing():
            self._decode = decode if decode is not None else self.decoders.default_decode

    def action(self, request: Request, target: Binder) -> None:
        """Decode *request* into *target*, then bind it bottom-up.

        Raises
        ------
        BindError
            The decode step failed (empty field path) or a ``bind`` hook
            raised (path of the value whose hook raised).
        RecursionLimitError
            The value is nested deeper than ``MAX_RECURSION_DEPTH``.
        """

        if not isinstance(target, Binder):
            raise TypeError(f"{type(target).__name__} does not implement Binder")
        try:
            self.get_decode()(request, target)
        except (BindError, RecursionLimitError):
            raise
        except Exception as exc:
            raise BindError(None, exc) from exc
        self._walk(request, target)

    def _walk(self, request: Request, root: Binder) -> None:
        # Explicit stack: each visit binds its members in order, then itself.
        stack = [_Visit(root, "", 0)]
        while stack:
            visit = stack[-1]
            if visit.pending is None:
                if visit.depth > MAX_RECURSION_DEPTH:
                    _LOGGER.warning(
                        "bind aborted at %r: nesting exceeds %d",
                        visit.path[:200],
                        MAX_RECURSION_DEPTH,
                    )
                    raise RecursionLimitError(MAX_RECURSION_DEPTH)
                value = visit.value
                if not isinstance(value, Binder):
                    stack.pop()
                    continue
                if not dataclasses.is_dataclass(value):
                    stack.pop()
                    _invoke(value, request, visit.path)
                    continue
                visit.pending = iter(self.descriptors.get(type(value)))

            name = next(visit.pending, None)
            if name is not None:
                path = f"{visit.path}.{name}" if visit.path else name
                stack.append(_Visit(getattr(visit.value, name, None), path, visit.depth + 1))
                continue
            stack.pop()
            _invoke(visit.value, request, visit.path)


default_engine = BindEngine(default_registry)


def action(request: Request, target: Binder) -> None:
    """Bind *request* into *target* with the default engine."""
    default_engine.action(request, target)


def set_decode(decode: Decoder | None) -> None:
    default_engine.set_decode(decode)


def get_decode() -> Decoder:
    return default_engine.get_decode()


__all__ = [
    "MAX_RECURSION_DEPTH",
    "BindEngine",
    "DescriptorCache",
    "action",
    "default_engine",
    "get_decode",
    "set_decode",
]
