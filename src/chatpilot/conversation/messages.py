"""
Conversation message model.

A conversation is an ordered list of ``Message`` objects. Only the
``ChatSession`` creates assistant messages, and only the message currently
being streamed has its content extended.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

ROLES = frozenset({"system", "user", "assistant", "function"})


def new_message_id() -> str:
    """Return a fresh opaque message id."""
    return uuid.uuid4().hex


@dataclass
class FunctionCall:
    """A function invocation selected by the model.

    Attributes:
        name: Name of the entry point to invoke.
        arguments: JSON text of the name -> value argument mapping. Left
            unparsed here; the registry parses it at dispatch time.
    """

    name: str
    arguments: str = ""


@dataclass
class Message:
    """One turn of the conversation.

    Attributes:
        role: One of ``system``, ``user``, ``assistant`` or ``function``.
        content: Message text. Grows while the message is being streamed.
        id: Opaque unique identifier.
        created_at: Creation time (UTC).
        function_call: Set on assistant messages that selected a function
            instead of (or after) producing text.
        name: For ``function`` messages, the name of the function whose
            result the content carries.
    """

    role: str
    content: str = ""
    id: str = field(default_factory=new_message_id)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    function_call: FunctionCall | None = None
    name: str | None = None

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            raise ValueError(
                f"Invalid message role {self.role!r}; expected one of {sorted(ROLES)}"
            )

    def to_wire(self) -> dict[str, Any]:
        """Serialise to the request form.

        Ids and timestamps are stripped; ``name`` and ``function_call`` are
        included only when set.
        """
        wire: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.name is not None:
            wire["name"] = self.name
        if self.function_call is not None:
            wire["function_call"] = {
                "name": self.function_call.name,
                "arguments": self.function_call.arguments,
            }
        return wire
