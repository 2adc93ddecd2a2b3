"""
ChatSession: the conversation state machine.

A ``ChatSession`` owns the message history of one conversation and runs at
most one completion cycle at a time. Each cycle streams the assistant's reply
into a single growing message and republishes the full history to
subscribers on every change, so a UI layer can re-render incrementally.

Typical usage::

    client = ChatCompletionClient(HttpxChatTransport("http://localhost:3000/api/chat"))
    registry = EntryPointRegistry()
    session = ChatSession(client, registry)

    session.subscribe(lambda messages: render(messages))
    await session.append(Message(role="user", content="hi"))

When the model selects a function, the cycle ends immediately and the
function-call handler (by default ``registry.resolve_and_invoke``) is awaited
with the history preceding the call.
"""

from __future__ import annotations

import contextlib
import logging
import uuid
from dataclasses import replace
from typing import Any, Awaitable, Callable, Sequence

from chatpilot.conversation.functions import FunctionSchema
from chatpilot.conversation.messages import FunctionCall, Message
from chatpilot.conversation.registry import EntryPointRegistry
from chatpilot.conversation.streaming import (
    CancellationToken,
    ChatCompletionClient,
    ContentEvent,
    EndEvent,
    ErrorEvent,
    FunctionCallEvent,
)

logger = logging.getLogger(__name__)

# Receives (history_before_call, function_call); may return anything.
FunctionCallHandler = Callable[[Sequence[Message], FunctionCall], Awaitable[Any]]

# Receives a snapshot of the full message list.
MessagesListener = Callable[[list[Message]], None]


class ChatSession:
    """Runs completion cycles for one conversation.

    States are *idle* and *streaming*; a failed cycle returns to idle. While
    streaming, ``append()`` and ``reload()`` are silently ignored.

    Attributes:
        session_id: Identifier of this conversation.
        client: The streaming completion client.
        registry: Entry points offered to the model, if any.
        initial_messages: Context (typically system messages) prepended to
            every request but not part of the visible history.
    """

    def __init__(
        self,
        client: ChatCompletionClient,
        registry: EntryPointRegistry | None = None,
        *,
        initial_messages: Sequence[Message] | None = None,
        headers: dict[str, str] | None = None,
        body: dict[str, Any] | None = None,
        functions: Sequence[FunctionSchema] | None = None,
        on_function_call: FunctionCallHandler | None = None,
        session_id: str | None = None,
    ) -> None:
        self.session_id = session_id or uuid.uuid4().hex
        self.client = client
        self.registry = registry
        self.initial_messages = list(initial_messages or [])
        self.headers = dict(headers or {})
        self.body = dict(body or {})
        self._functions = list(functions) if functions is not None else None
        if on_function_call is None and registry is not None:
            on_function_call = registry.resolve_and_invoke
        self._on_function_call = on_function_call

        self._messages: list[Message] = []
        self._is_loading = False
        self._token: CancellationToken | None = None
        self._listeners: list[MessagesListener] = []

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    @property
    def messages(self) -> list[Message]:
        """A copy of the current message history."""
        return list(self._messages)

    @property
    def is_loading(self) -> bool:
        """Whether a completion cycle is in flight."""
        return self._is_loading

    def set_messages(self, messages: Sequence[Message]) -> None:
        """Replace the history.

        Raises:
            RuntimeError: If a cycle is in flight.
        """
        if self._is_loading:
            raise RuntimeError("Cannot replace messages while a completion is in flight.")
        self._publish(list(messages))

    def subscribe(self, listener: MessagesListener) -> Callable[[], None]:
        """Call *listener* with the full message list on every change.

        Returns:
            A callable that removes the listener.
        """
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _unsubscribe

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def append(self, message: Message) -> None:
        """Append *message* and stream the assistant's reply.

        Ignored while another cycle is in flight.

        Raises:
            ChatError: The cycle's failure (``Aborted`` after ``stop()``), or a
                ``FunctionCallError`` from the function-call handler.
        """
        if self._is_loading:
            logger.debug("append() ignored: a completion is already in flight")
            return
        self._is_loading = True
        history = [*self._messages, message]
        await self._run(history)

    async def reload(self) -> None:
        """Regenerate the last assistant reply.

        A trailing assistant message is dropped and the remaining history is
        replayed. Ignored while streaming or when the history is empty.
        """
        if self._is_loading or not self._messages:
            return
        self._is_loading = True
        history = list(self._messages)
        if history[-1].role == "assistant":
            history.pop()
        await self._run(history)

    def stop(self) -> None:
        """Abort the in-flight cycle, keeping any text generated so far.

        Safe to call at any time and any number of times.
        """
        token = self._token
        if token is not None and token.cancel():
            logger.info("Session %s: stop requested", self.session_id)

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    async def _run(self, history: list[Message]) -> None:
        try:
            self._publish(history)
            assistant = await self._run_cycle(history)
        finally:
            self._is_loading = False
            self._token = None

        if assistant.function_call is not None and self._on_function_call is not None:
            await self._on_function_call(history, assistant.function_call)

    async def _run_cycle(self, history: list[Message]) -> Message:
        token = CancellationToken()
        self._token = token
        assistant = Message(role="assistant", content="")
        self._publish([*history, replace(assistant)])

        functions = self._functions
        if functions is None and self.registry is not None:
            functions = self.registry.compile_schema()

        events = self.client.stream(
            [*self.initial_messages, *history],
            functions=functions,
            headers=self.headers,
            body=self.body,
            token=token,
        )
        async with contextlib.aclosing(events):
            async for event in events:
                if isinstance(event, ContentEvent):
                    assistant.content += event.text
                    self._publish([*history, replace(assistant)])
                elif isinstance(event, FunctionCallEvent):
                    assistant.function_call = FunctionCall(
                        name=event.name, arguments=event.arguments
                    )
                    self._publish([*history, replace(assistant)])
                    logger.debug("Session %s: model selected %r", self.session_id, event.name)
                    break
                elif isinstance(event, ErrorEvent):
                    raise event.error
                elif isinstance(event, EndEvent):
                    break
        return assistant

    def _publish(self, messages: list[Message]) -> None:
        self._messages = messages
        snapshot = list(messages)
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as exc:
                logger.error("Messages listener %r failed: %s", listener, exc, exc_info=True)
