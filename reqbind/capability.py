"""The post-decode hook contract."""

from __future__ import annotations

import abc
import inspect
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:  # pragma: no cover
    from .http import Request


class Binder(abc.ABC):
    """Value that finishes its own binding once its fields are populated.

    ``bind`` runs after decoding, innermost values first. It may normalise
    the value in place; raising any exception fails the whole bind and is
    reported with the field path of the value that raised.
    """

    @abc.abstractmethod
    def bind(self, request: Request) -> None:
        """Validate or normalise ``self`` for *request*."""


def implements_binder(tp: Any) -> bool:
    """Return whether values declared as *tp* take part in binding."""
    return inspect.isclass(tp) and issubclass(tp, Binder)


__all__ = ["Binder", "implements_binder"]
