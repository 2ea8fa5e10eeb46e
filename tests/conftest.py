"""
Pytest configuration and shared fixtures for the reqbind test suite.

Fixtures hand out isolated engines and registries so tests that register
decoders or swap the decode function never leak into each other.
"""

import sys
from pathlib import Path
from typing import Callable, Iterable, Tuple

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from reqbind import BindEngine, DecoderRegistry, Request  # noqa: E402


# ============================================================================
# Engine fixtures
# ============================================================================

@pytest.fixture
def registry() -> DecoderRegistry:
    """Provide a fresh registry holding only the built-in decoders."""
    return DecoderRegistry(max_multipart_memory=32 << 20)


@pytest.fixture
def engine(registry: DecoderRegistry) -> BindEngine:
    """Provide an engine bound to the fresh registry."""
    return BindEngine(registry)


# ============================================================================
# Request builders
# ============================================================================

Part = Tuple[str, str, bytes, str | None]


def build_multipart(
    parts: Iterable[Part], boundary: str = "BOUNDARY"
) -> Tuple[bytes, str]:
    """
    Encode ``(name, filename, content, content_type)`` parts.

    An empty filename produces a plain form value. Returns the body and the
    matching ``Content-Type`` header value.
    """
    chunks: list[bytes] = []
    for name, filename, content, content_type in parts:
        chunks.append(f"--{boundary}\r\n".encode())
        disposition = f'Content-Disposition: form-data; name="{name}"'
        if filename:
            disposition += f'; filename="{filename}"'
        chunks.append(disposition.encode() + b"\r\n")
        if content_type:
            chunks.append(f"Content-Type: {content_type}\r\n".encode())
        chunks.append(b"\r\n" + content + b"\r\n")
    chunks.append(f"--{boundary}--\r\n".encode())
    return b"".join(chunks), f"multipart/form-data; boundary={boundary}"


@pytest.fixture
def multipart_body() -> Callable[..., Tuple[bytes, str]]:
    """Provide the multipart body builder."""
    return build_multipart


@pytest.fixture
def make_request() -> Callable[[bytes, str], Request]:
    """Build a POST request with the given body and content type."""

    def _make(body: bytes, content_type: str) -> Request:
        return Request("POST", "/", body, {"Content-Type": content_type})

    return _make


# ============================================================================
# Hooks
# ============================================================================

def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers based on test names."""
    for item in items:
        if "error" in item.name or "invalid" in item.name:
            item.add_marker(pytest.mark.error_handling)
        else:
            item.add_marker(pytest.mark.unit)
