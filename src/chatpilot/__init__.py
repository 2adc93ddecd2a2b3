"""
chatpilot - streaming chat with function calling.

Register Python callables as entry points, converse with a completion service
that streams its replies, and let the model invoke the entry points:

    >>> from chatpilot import ChatSession, ChatCompletionClient, EntryPointRegistry
    >>> from chatpilot import HttpxChatTransport, Message
    >>> registry = EntryPointRegistry()
    >>> client = ChatCompletionClient(HttpxChatTransport("http://localhost:3000/api/chat"))
    >>> session = ChatSession(client, registry)
    >>> await session.append(Message(role="user", content="What time is it?"))
"""

from chatpilot.config import Settings, get_settings
from chatpilot.conversation import (
    AnnotatedFunction,
    ArgumentAnnotation,
    ChatCompletionClient,
    ChatSession,
    EntryPointRegistry,
    HttpxChatTransport,
    Message,
    OpenAIChatTransport,
)

__version__ = "0.1.0"
__all__ = [
    "AnnotatedFunction",
    "ArgumentAnnotation",
    "ChatCompletionClient",
    "ChatSession",
    "EntryPointRegistry",
    "HttpxChatTransport",
    "Message",
    "OpenAIChatTransport",
    "Settings",
    "get_settings",
]
