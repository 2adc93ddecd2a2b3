"""
Pytest configuration for the chatpilot test suite.

Async tests use the anyio plugin (``@pytest.mark.anyio``). The library is
built on asyncio primitives, so the backend is pinned to asyncio.
"""

import pytest


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"
