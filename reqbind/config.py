"""Environment-driven settings for the default registry."""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_MAX_MULTIPART_MEMORY = 32 << 20

# Deeper values are treated as hostile input rather than validated.
MAX_RECURSION_DEPTH = 1000


@dataclass
class Settings:
    """Runtime settings populated from the environment."""

    max_multipart_memory: int = DEFAULT_MAX_MULTIPART_MEMORY


def validate_settings(settings: Settings) -> None:
    """Validate *settings* for safe operation.

    Raises
    ------
    ValueError
        If the multipart memory threshold is negative.
    """

    if settings.max_multipart_memory < 0:
        raise ValueError(
            f"max_multipart_memory must not be negative: {settings.max_multipart_memory}"
        )


def load_settings() -> Settings:
    """Return configuration derived from `REQBIND_*` variables."""

    raw = os.getenv("REQBIND_MAX_MULTIPART_MEMORY", "").strip()
    if raw:
        try:
            memory = int(raw)
        except ValueError as exc:
            raise ValueError(
                f"REQBIND_MAX_MULTIPART_MEMORY must be an integer, got {raw!r}"
            ) from exc
    else:
        memory = DEFAULT_MAX_MULTIPART_MEMORY
    settings = Settings(max_multipart_memory=memory)
    validate_settings(settings)
    return settings


__all__ = [
    "DEFAULT_MAX_MULTIPART_MEMORY",
    "MAX_RECURSION_DEPTH",
    "Settings",
    "load_settings",
    "validate_settings",
]
