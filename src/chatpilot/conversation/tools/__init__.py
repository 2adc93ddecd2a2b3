"""Built-in entry points."""

from chatpilot.conversation.tools.datetime_tool import DateTimeTool

__all__ = ["DateTimeTool"]
