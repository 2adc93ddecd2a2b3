"""
chatpilot conversation package.

Streams multi-turn conversations with a completion service and dispatches the
function calls the model makes to application-registered entry points.
"""

from chatpilot.conversation.errors import (
    Aborted,
    ArgumentParseError,
    ChatError,
    FunctionCallError,
    InvocationError,
    MalformedStreamError,
    TransportError,
)
from chatpilot.conversation.functions import (
    AnnotatedFunction,
    ArgumentAnnotation,
    FunctionSchema,
    compile_function,
    compile_functions,
)
from chatpilot.conversation.messages import FunctionCall, Message
from chatpilot.conversation.registry import EntryPointRegistry
from chatpilot.conversation.session import ChatSession, FunctionCallHandler
from chatpilot.conversation.streaming import (
    CancellationToken,
    ChatApiConfig,
    ChatCompletionClient,
    ChatTransport,
    ContentEvent,
    EndEvent,
    ErrorEvent,
    FunctionCallEvent,
    HttpxChatTransport,
    OpenAIChatTransport,
    StreamEvent,
)

__all__ = [
    "Aborted",
    "AnnotatedFunction",
    "ArgumentAnnotation",
    "ArgumentParseError",
    "CancellationToken",
    "ChatApiConfig",
    "ChatCompletionClient",
    "ChatError",
    "ChatSession",
    "ChatTransport",
    "ContentEvent",
    "EndEvent",
    "EntryPointRegistry",
    "ErrorEvent",
    "FunctionCall",
    "FunctionCallError",
    "FunctionCallEvent",
    "FunctionCallHandler",
    "FunctionSchema",
    "HttpxChatTransport",
    "InvocationError",
    "MalformedStreamError",
    "Message",
    "OpenAIChatTransport",
    "StreamEvent",
    "TransportError",
    "compile_function",
    "compile_functions",
]
