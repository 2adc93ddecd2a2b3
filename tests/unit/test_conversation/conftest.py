"""Shared fixtures for chatpilot.conversation tests."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from chatpilot.conversation.streaming import ChatCompletionClient


class ScriptedTransport:
    """ChatTransport that replays a fixed list of frames.

    Attributes:
        requests: ``(body, headers)`` pairs, one per ``open()`` call.
        yielded: Number of frames handed to the client so far.
        closed: Whether the last opened stream has been closed.
    """

    def __init__(
        self,
        frames: list[Any] | None = None,
        error: BaseException | None = None,
        hang_after: int | None = None,
    ) -> None:
        self.frames = list(frames or [])
        self.error = error
        self.hang_after = hang_after
        self.requests: list[tuple[dict[str, Any], dict[str, str]]] = []
        self.yielded = 0
        self.closed = False

    async def open(self, body: dict[str, Any], headers: dict[str, str]):
        self.requests.append((body, headers))
        self.closed = False
        try:
            for index, frame in enumerate(self.frames):
                if index == self.hang_after:
                    await asyncio.Event().wait()
                self.yielded += 1
                yield frame
            if self.hang_after is not None and self.hang_after >= len(self.frames):
                await asyncio.Event().wait()
            if self.error is not None:
                raise self.error
        finally:
            self.closed = True


@pytest.fixture
def make_client():
    """Return a factory building ``(ChatCompletionClient, ScriptedTransport)`` pairs."""

    def _make(
        frames: list[Any] | None = None,
        error: BaseException | None = None,
        hang_after: int | None = None,
    ) -> tuple[ChatCompletionClient, ScriptedTransport]:
        transport = ScriptedTransport(frames, error, hang_after)
        return ChatCompletionClient(transport), transport

    return _make
