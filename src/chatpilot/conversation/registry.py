"""
Entry-point registry for chatpilot conversations.

Provides ``EntryPointRegistry``, a container the application fills with
``AnnotatedFunction`` entries as its components come and go. The registry
compiles the entries into the function schema sent with each completion
request, and resolves a model-selected ``FunctionCall`` back to its callable.

Typical usage::

    from chatpilot.conversation.registry import EntryPointRegistry
    from chatpilot.conversation.session import ChatSession

    registry = EntryPointRegistry()
    registry.register("weather-widget", get_weather_fn)

    session = ChatSession(client, registry)
    await session.append(Message(role="user", content="Weather in Paris?"))

    registry.unregister("weather-widget")
"""

from __future__ import annotations

import inspect
import json
import logging
from typing import Any, Sequence

from chatpilot.conversation.errors import ArgumentParseError, InvocationError
from chatpilot.conversation.functions import AnnotatedFunction, FunctionSchema, compile_function
from chatpilot.conversation.messages import FunctionCall, Message

logger = logging.getLogger(__name__)


class EntryPointRegistry:
    """Registry mapping registration ids to ``AnnotatedFunction`` entries.

    Registration ids belong to the owning scope (for example one per UI
    component); function names are what the model sees. Both are unique.
    Schema emission follows insertion order so that repeated compilations of
    an unchanged registry are identical.
    """

    def __init__(self) -> None:
        self._entries: dict[str, AnnotatedFunction] = {}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, entry_id: str, fn: AnnotatedFunction) -> None:
        """Register *fn* under *entry_id*, replacing any previous entry with that id.

        Raises:
            ValueError: If another id already exposes a function named
                ``fn.name``.
        """
        for other_id, other in self._entries.items():
            if other_id != entry_id and other.name == fn.name:
                raise ValueError(
                    f"Function {fn.name!r} is already registered under id {other_id!r}. "
                    "Unregister it first before re-registering."
                )
        self._entries[entry_id] = fn
        logger.debug("Registered entry point %r as function %r", entry_id, fn.name)

    def unregister(self, entry_id: str) -> None:
        """Remove the entry registered under *entry_id*; unknown ids are ignored."""
        fn = self._entries.pop(entry_id, None)
        if fn is None:
            logger.debug("unregister(%r): no such entry point", entry_id)
            return
        logger.debug("Unregistered entry point %r (function %r)", entry_id, fn.name)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get(self, name: str) -> AnnotatedFunction | None:
        """Return the entry whose function name is *name*, if any."""
        for fn in self._entries.values():
            if fn.name == name:
                return fn
        return None

    def entry_ids(self) -> list[str]:
        """Return registration ids in insertion order."""
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, entry_id: str) -> bool:
        return entry_id in self._entries

    # ------------------------------------------------------------------
    # Schema and dispatch
    # ------------------------------------------------------------------

    def compile_schema(self) -> list[FunctionSchema]:
        """Return the function schema for all registered entries (insertion order)."""
        return [compile_function(fn) for fn in self._entries.values()]

    async def resolve_and_invoke(
        self,
        history: Sequence[Message],
        call: FunctionCall,
    ) -> Any:
        """Invoke the entry point the model selected.

        Arguments are taken from the call's JSON object and passed positionally
        in the entry's annotation order, regardless of the key order in the
        payload. Absent arguments are passed as ``None``.

        Args:
            history: Conversation messages preceding the function call.
                Available to continuation logic; not used for dispatch.
            call: The model's function selection.

        Returns:
            The implementation's (awaited) return value, or ``None`` when no
            entry point is registered under ``call.name``.

        Raises:
            ArgumentParseError: If ``call.arguments`` is not a JSON object.
            InvocationError: If the implementation raises.
        """
        fn = self.get(call.name)
        if fn is None:
            logger.warning("Model requested unregistered function %r; ignoring", call.name)
            return None

        arguments = _parse_arguments(call)

        positional: list[Any] = []
        for annotation in fn.argument_annotations:
            if annotation.name not in arguments and annotation.required:
                logger.warning(
                    "Function %r called without required argument %r",
                    fn.name,
                    annotation.name,
                )
            positional.append(arguments.get(annotation.name))

        logger.debug("Invoking %r with %d positional argument(s)", fn.name, len(positional))
        try:
            result = fn.implementation(*positional)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            logger.error("Entry point %r failed: %s", fn.name, exc, exc_info=True)
            raise InvocationError(
                f"Entry point {fn.name!r} failed: {exc}", function_name=fn.name
            ) from exc
        return result


def _parse_arguments(call: FunctionCall) -> dict[str, Any]:
    if not call.arguments:
        return {}
    try:
        arguments = json.loads(call.arguments)
    except json.JSONDecodeError as exc:
        raise ArgumentParseError(
            f"Arguments for {call.name!r} are not valid JSON: {exc}",
            function_name=call.name,
        ) from exc
    if not isinstance(arguments, dict):
        raise ArgumentParseError(
            f"Arguments for {call.name!r} must be a JSON object, "
            f"got {type(arguments).__name__}",
            function_name=call.name,
        )
    return arguments
