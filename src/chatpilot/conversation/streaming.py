"""
Streaming completion client for chatpilot conversations.

``ChatCompletionClient.stream()`` owns exactly one request/response cycle with
the completion service. It sends the conversation (and the compiled function
schema) through a ``ChatTransport``, reads the streamed chat-completion chunks
and turns them into a flat sequence of typed events:

- ``ContentEvent`` for each text delta, in arrival order.
- ``FunctionCallEvent`` once, when the model selects a function instead of
  answering in text. The transport is closed as soon as the call is complete.
- ``EndEvent`` or ``ErrorEvent`` exactly once, as the last event.

Cancellation goes through a ``CancellationToken``: cancelling it aborts the
transport, discards anything already received, and ends the stream with a
single ``ErrorEvent(Aborted)``.

Two transports are provided:

- ``HttpxChatTransport`` POSTs to a chat endpoint and parses the Server-Sent
  Events response (``data: {...}`` lines, ``data: [DONE]`` terminator).
- ``OpenAIChatTransport`` streams from any OpenAI-compatible API through
  ``openai.AsyncOpenAI``.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Protocol, Sequence, runtime_checkable

import httpx
from openai import APIConnectionError, APIError, APIStatusError, AsyncOpenAI

from chatpilot.conversation.errors import (
    Aborted,
    ChatError,
    MalformedStreamError,
    TransportError,
)
from chatpilot.conversation.functions import FunctionSchema
from chatpilot.conversation.messages import Message

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Stream events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ContentEvent:
    """A text delta from the model."""

    text: str


@dataclass(frozen=True)
class FunctionCallEvent:
    """The model selected a function.

    Attributes:
        name: Function name.
        arguments: The fully assembled arguments JSON text.
    """

    name: str
    arguments: str


@dataclass(frozen=True)
class EndEvent:
    """The stream finished normally."""


@dataclass(frozen=True)
class ErrorEvent:
    """The stream failed or was aborted.

    Attributes:
        error: The cause. ``Aborted`` when the cycle was cancelled.
    """

    error: ChatError


StreamEvent = ContentEvent | FunctionCallEvent | EndEvent | ErrorEvent


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class CancellationToken:
    """One-shot cancellation signal for a single completion cycle.

    A token is cancelled at most once. After the cycle reaches its terminal
    event the token is closed: ``cancel()`` then does nothing and returns
    ``False``. Tokens are never reused across cycles.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._closed = False
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def closed(self) -> bool:
        return self._closed

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Run *callback* on cancellation (immediately if already cancelled)."""
        if self._closed:
            return
        if self._cancelled:
            callback()
            return
        self._callbacks.append(callback)

    def cancel(self) -> bool:
        """Signal cancellation. Returns ``True`` if this call had an effect."""
        if self._closed or self._cancelled:
            return False
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()
        return True

    def close(self) -> None:
        """Make the token inert."""
        self._closed = True
        self._callbacks.clear()


# ---------------------------------------------------------------------------
# Transports
# ---------------------------------------------------------------------------


@dataclass
class ChatApiConfig:
    """Where and how completion requests are sent.

    Attributes:
        endpoint: Chat endpoint URL. ``config.build_transport`` hands it to
            ``HttpxChatTransport``.
        headers: Headers added to every request.
        body: Extra fields merged into every request body.
    """

    endpoint: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    body: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class ChatTransport(Protocol):
    """Protocol for the wire-level side of a completion request.

    ``open()`` must be an async generator: it performs one streaming request
    and yields each response chunk as a dict in the OpenAI chat-completion
    chunk shape. Closing the generator must release the connection.
    """

    def open(
        self,
        body: dict[str, Any],
        headers: dict[str, str],
    ) -> AsyncIterator[dict[str, Any]]:
        """Send *body* with *headers* and yield the decoded response chunks.

        Raises:
            TransportError: On connection failure or a non-2xx response.
            MalformedStreamError: If a chunk cannot be decoded.
        """
        ...


def _decode_sse_data(payload: str) -> dict[str, Any]:
    try:
        return json.loads(payload)
    except json.JSONDecodeError as exc:
        raise MalformedStreamError(f"Undecodable stream frame {payload[:80]!r}: {exc}") from exc


async def iter_sse_data(lines: AsyncIterator[str]) -> AsyncIterator[dict[str, Any]]:
    """Decode a Server-Sent Events line stream into JSON ``data`` payloads.

    Multi-line ``data`` fields are joined with newlines, comment lines and
    other fields (``event``, ``id``, ``retry``) are ignored, and a
    ``[DONE]`` payload ends the stream.
    """
    data_lines: list[str] = []
    async for line in lines:
        if not line:
            if data_lines:
                payload = "\n".join(data_lines)
                data_lines = []
                if payload.strip() == "[DONE]":
                    return
                yield _decode_sse_data(payload)
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "data":
            data_lines.append(value)

    if data_lines:
        payload = "\n".join(data_lines)
        if payload.strip() != "[DONE]":
            yield _decode_sse_data(payload)


class HttpxChatTransport:
    """Streams completions from a chat endpoint over HTTP with Server-Sent Events.

    Attributes:
        endpoint: Chat endpoint URL.
        timeout: Request timeout in seconds.
    """

    DEFAULT_HEADERS: dict[str, str] = {
        "Content-Type": "application/json",
        "Accept": "text/event-stream",
    }

    def __init__(
        self,
        endpoint: str,
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.timeout = timeout
        self._client = client

    async def open(
        self,
        body: dict[str, Any],
        headers: dict[str, str],
    ) -> AsyncIterator[dict[str, Any]]:
        client = self._client or httpx.AsyncClient(timeout=self.timeout)
        request_headers = {**self.DEFAULT_HEADERS, **headers}
        try:
            async with client.stream(
                "POST", self.endpoint, json=body, headers=request_headers
            ) as response:
                if not response.is_success:
                    await response.aread()
                    logger.error(
                        "Chat endpoint %s returned status %d", self.endpoint, response.status_code
                    )
                    raise TransportError(
                        f"Chat endpoint returned status {response.status_code}: "
                        f"{response.text[:200]}",
                        status_code=response.status_code,
                    )
                async for frame in iter_sse_data(response.aiter_lines()):
                    yield frame
        except httpx.HTTPError as exc:
            logger.error("Chat endpoint %s failed: %s", self.endpoint, exc)
            raise TransportError(f"Could not stream from {self.endpoint}: {exc}") from exc
        finally:
            if self._client is None:
                await client.aclose()


class OpenAIChatTransport:
    """Streams completions from any OpenAI-compatible API.

    The ``messages`` and ``functions`` body fields become SDK arguments;
    ``model`` and ``temperature`` may be overridden per request through the
    body; any other body field is forwarded via ``extra_body``.

    Attributes:
        base_url: The API base URL.
        model: Default model identifier.
        temperature: Default sampling temperature.
    """

    def __init__(
        self,
        base_url: str = "https://api.openai.com/v1",
        api_key: str = "",
        model: str = "gpt-4o-mini",
        temperature: float = 0.7,
    ) -> None:
        self.base_url = base_url
        self.model = model
        self.temperature = temperature
        self._client = AsyncOpenAI(base_url=base_url, api_key=api_key)

    async def open(
        self,
        body: dict[str, Any],
        headers: dict[str, str],
    ) -> AsyncIterator[dict[str, Any]]:
        extra = dict(body)
        kwargs: dict[str, Any] = {
            "model": extra.pop("model", self.model),
            "messages": extra.pop("messages", []),
            "temperature": extra.pop("temperature", self.temperature),
            "stream": True,
        }
        functions = extra.pop("functions", None)
        if functions:
            kwargs["functions"] = functions
        if headers:
            kwargs["extra_headers"] = headers
        if extra:
            kwargs["extra_body"] = extra

        try:
            stream = await self._client.chat.completions.create(**kwargs)
        except APIConnectionError as exc:
            logger.error("LLM connection failed: %s", exc)
            raise TransportError(f"Could not connect to LLM endpoint: {exc}") from exc
        except APIStatusError as exc:
            logger.error("LLM API error %d: %s", exc.status_code, exc)
            raise TransportError(
                f"LLM API returned status {exc.status_code}: {exc}",
                status_code=exc.status_code,
            ) from exc

        try:
            async for chunk in stream:
                yield chunk.model_dump()
        except APIError as exc:
            logger.error("LLM stream failed: %s", exc)
            raise TransportError(f"LLM stream failed: {exc}") from exc
        finally:
            await stream.close()


# ---------------------------------------------------------------------------
# Chunk decoding
# ---------------------------------------------------------------------------


class ChunkDecoder:
    """Turns chat-completion chunks into content events and one function call.

    Text deltas are returned as they arrive. Once a ``function_call`` (or
    first ``tool_calls``) delta appears, its name and argument fragments are
    accumulated and further text is ignored. The call is complete when a chunk
    carries a ``finish_reason``, or when the stream ends.
    """

    def __init__(self) -> None:
        self._in_call = False
        self._call_index: Any = None
        self._name_parts: list[str] = []
        self._argument_parts: list[str] = []
        self.finished = False

    def feed(self, frame: Any) -> list[ContentEvent]:
        """Decode one chunk.

        Raises:
            MalformedStreamError: If the chunk does not have the expected shape.
            TransportError: If the chunk is an error report from the service.
        """
        if not isinstance(frame, dict):
            raise MalformedStreamError(f"Stream frame is not an object: {frame!r:.80}")
        if "error" in frame and "choices" not in frame:
            error = frame["error"]
            message = error.get("message") if isinstance(error, dict) else error
            raise TransportError(f"Completion service reported an error: {message}")

        choices = frame.get("choices")
        if not isinstance(choices, list):
            raise MalformedStreamError("Stream frame has no 'choices' list")
        if not choices:
            return []

        choice = choices[0]
        if not isinstance(choice, dict):
            raise MalformedStreamError("Stream frame choice is not an object")
        delta = choice.get("delta") or {}
        if not isinstance(delta, dict):
            raise MalformedStreamError("Stream frame delta is not an object")

        events: list[ContentEvent] = []
        content = delta.get("content")
        if content is not None and not isinstance(content, str):
            raise MalformedStreamError("Stream frame content is not a string")
        if content and not self._in_call:
            events.append(ContentEvent(content))

        call_delta = self._function_delta(delta)
        if call_delta is not None:
            self._in_call = True
            name = call_delta.get("name")
            arguments = call_delta.get("arguments")
            if name:
                self._name_parts.append(name)
            if arguments:
                self._argument_parts.append(arguments)

        if self._in_call and choice.get("finish_reason"):
            self.finished = True
        return events

    def _function_delta(self, delta: dict[str, Any]) -> dict[str, Any] | None:
        function_call = delta.get("function_call")
        if function_call is None:
            tool_calls = delta.get("tool_calls") or []
            if not isinstance(tool_calls, list):
                raise MalformedStreamError("Stream frame 'tool_calls' is not a list")
            for tool_call in tool_calls:
                if not isinstance(tool_call, dict):
                    raise MalformedStreamError("Stream frame tool call is not an object")
                index = tool_call.get("index", 0)
                if self._call_index is None:
                    self._call_index = index
                if index == self._call_index:
                    function_call = tool_call.get("function") or {}
                    break
        if function_call is None:
            return None
        if not isinstance(function_call, dict):
            raise MalformedStreamError("Stream frame 'function_call' is not an object")
        return function_call

    def function_call(self) -> FunctionCallEvent | None:
        """Return the assembled function call, if the model selected one."""
        if not self._in_call:
            return None
        return FunctionCallEvent(
            name="".join(self._name_parts),
            arguments="".join(self._argument_parts),
        )


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

_END_OF_STREAM = object()
_ABORTED = object()


class ChatCompletionClient:
    """Runs completion cycles against a ``ChatTransport``.

    Attributes:
        transport: The wire-level transport.
        config: Default headers and body fields for every request.
    """

    def __init__(self, transport: ChatTransport, config: ChatApiConfig | None = None) -> None:
        self.transport = transport
        self.config = config or ChatApiConfig()

    def build_request(
        self,
        messages: Sequence[Message],
        functions: Sequence[FunctionSchema] | None = None,
        headers: dict[str, str] | None = None,
        body: dict[str, Any] | None = None,
    ) -> tuple[dict[str, Any], dict[str, str]]:
        """Return the ``(body, headers)`` pair for a request."""
        request_body: dict[str, Any] = {"messages": [m.to_wire() for m in messages]}
        if functions:
            request_body["functions"] = [f.to_dict() for f in functions]
        request_body.update(self.config.body)
        request_body.update(body or {})
        request_headers = {**self.config.headers, **(headers or {})}
        return request_body, request_headers

    async def stream(
        self,
        messages: Sequence[Message],
        *,
        functions: Sequence[FunctionSchema] | None = None,
        headers: dict[str, str] | None = None,
        body: dict[str, Any] | None = None,
        token: CancellationToken | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Run one completion cycle and yield its events.

        Args:
            messages: Full context for the request.
            functions: Function schema offered to the model.
            headers: Per-request headers (override ``config.headers``).
            body: Per-request body fields (override ``config.body``).
            token: Cancellation token for this cycle. A fresh one is created
                if omitted.

        Yields:
            ``ContentEvent``/``FunctionCallEvent`` items followed by exactly one
            ``EndEvent`` or ``ErrorEvent``.

        Raises:
            ValueError: If *token* belongs to a cycle that already finished.
        """
        if token is None:
            token = CancellationToken()
        elif token.closed:
            raise ValueError("CancellationToken has already been used for a finished cycle.")

        request_body, request_headers = self.build_request(messages, functions, headers, body)
        logger.debug(
            "Completion request: messages=%d, functions=%d",
            len(request_body["messages"]),
            len(request_body.get("functions", [])),
        )

        # One-slot channel: the producer is never more than one frame ahead.
        channel: asyncio.Queue[Any] = asyncio.Queue(maxsize=1)
        producer = asyncio.create_task(self._pump(request_body, request_headers, channel))

        def _abort() -> None:
            logger.info("Cancelling in-flight completion request")
            producer.cancel()
            if not channel.full():
                channel.put_nowait(_ABORTED)

        token.add_callback(_abort)
        decoder = ChunkDecoder()

        try:
            while not token.cancelled:
                item = await channel.get()
                if token.cancelled or item is _END_OF_STREAM:
                    break
                if isinstance(item, ChatError):
                    token.close()
                    yield ErrorEvent(item)
                    return
                try:
                    events = decoder.feed(item)
                except ChatError as exc:
                    logger.error("Completion stream failed: %s", exc)
                    token.close()
                    yield ErrorEvent(exc)
                    return
                for event in events:
                    if token.cancelled:
                        break
                    yield event
                if decoder.finished:
                    break

            if token.cancelled:
                token.close()
                yield ErrorEvent(Aborted())
                return

            call = decoder.function_call()
            if call is not None:
                await self._close(producer)
                yield call
                if token.cancelled:
                    token.close()
                    yield ErrorEvent(Aborted())
                    return

            token.close()
            yield EndEvent()
        finally:
            token.close()
            await self._close(producer)

    async def _pump(
        self,
        body: dict[str, Any],
        headers: dict[str, str],
        channel: asyncio.Queue[Any],
    ) -> None:
        try:
            async with contextlib.aclosing(self.transport.open(body, headers)) as frames:
                async for frame in frames:
                    await channel.put(frame)
        except ChatError as exc:
            logger.warning("Completion transport failed: %s", exc)
            await channel.put(exc)
        except Exception as exc:
            logger.error("Unexpected completion transport failure: %s", exc, exc_info=True)
            error = TransportError(f"Completion transport failed: {exc}")
            error.__cause__ = exc
            await channel.put(error)
        else:
            await channel.put(_END_OF_STREAM)

    @staticmethod
    async def _close(producer: asyncio.Task[None]) -> None:
        if not producer.done():
            producer.cancel()
        await asyncio.wait({producer})
