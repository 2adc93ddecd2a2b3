"""
chatpilot - interactive command-line chat.

Streams replies from the configured completion service to the terminal and
exposes the built-in date/time entry point to the model. When the model calls
it, the result is printed and sent back as a ``function`` message so the model
can answer in text.

Commands:
    /reload   regenerate the last reply
    /reset    clear the conversation
    /quit     exit (Ctrl-D works too)

Ctrl-C while a reply is streaming stops it and keeps the partial text.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from typing import Any, Sequence, TextIO

from chatpilot.config import Settings, build_transport, get_settings
from chatpilot.conversation.errors import Aborted, ChatError
from chatpilot.conversation.messages import FunctionCall, Message
from chatpilot.conversation.registry import EntryPointRegistry
from chatpilot.conversation.session import ChatSession
from chatpilot.conversation.streaming import ChatCompletionClient
from chatpilot.conversation.tools import DateTimeTool

logger = logging.getLogger(__name__)


class ReplyPrinter:
    """Session listener that writes each assistant reply as it grows."""

    def __init__(self, out: TextIO = sys.stdout) -> None:
        self.out = out
        self._message_id: str | None = None
        self._printed = 0

    def __call__(self, messages: list[Message]) -> None:
        if not messages or messages[-1].role != "assistant":
            return
        last = messages[-1]
        if last.id != self._message_id:
            self._message_id = last.id
            self._printed = 0
            self.out.write("assistant> ")
        self.out.write(last.content[self._printed:])
        self.out.flush()
        self._printed = len(last.content)


class ChatCLI:
    """Wires a ``ChatSession`` to the terminal."""

    def __init__(self, settings: Settings, out: TextIO = sys.stdout) -> None:
        self.settings = settings
        self.out = out
        self.registry = EntryPointRegistry()
        self.registry.register("datetime", DateTimeTool().as_annotated_function())

        client = ChatCompletionClient(build_transport(settings), settings.api_config())
        initial = [Message(role="system", content=settings.system_prompt)] if settings.system_prompt else []
        self.session = ChatSession(
            client,
            self.registry,
            initial_messages=initial,
            on_function_call=self.handle_function_call,
        )
        self.session.subscribe(ReplyPrinter(out))

    async def handle_function_call(self, history: Sequence[Message], call: FunctionCall) -> Any:
        """Invoke the entry point and send its result back to the model."""
        result = await self.registry.resolve_and_invoke(history, call)
        if result is None:
            return None
        payload = json.dumps(result, default=str)
        self.out.write(f"\n[{call.name}] {payload}\n")
        await self.session.append(Message(role="function", name=call.name, content=payload))
        return result

    async def send(self, coro: Any) -> None:
        """Await a session operation, making Ctrl-C stop the stream meanwhile."""
        loop = asyncio.get_running_loop()
        loop.add_signal_handler(signal.SIGINT, self.session.stop)
        try:
            await coro
        except Aborted:
            self.out.write(" [stopped]")
        except ChatError as exc:
            logger.debug("Turn failed", exc_info=True)
            print(f"\nerror: {exc}", file=sys.stderr)
        finally:
            loop.remove_signal_handler(signal.SIGINT)
            self.out.write("\n")
            self.out.flush()

    async def run(self) -> None:
        """Read-eval-print loop until ``/quit`` or end of input."""
        while True:
            try:
                line = await asyncio.to_thread(input, "you> ")
            except EOFError:
                break
            text = line.strip()
            if not text:
                continue
            if text == "/quit":
                break
            if text == "/reset":
                self.session.set_messages([])
                continue
            if text == "/reload":
                await self.send(self.session.reload())
                continue
            await self.send(self.session.append(Message(role="user", content=text)))


def cli_main(argv: Sequence[str] | None = None) -> None:
    """Entry point for the chatpilot console script."""
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Streaming chat with function calling")
    parser.add_argument(
        "--transport",
        choices=["http", "openai"],
        default=settings.transport,
        help="Completion transport (default: %(default)s)",
    )
    parser.add_argument(
        "--endpoint",
        default=settings.chat_api_endpoint,
        help="Chat endpoint URL for the http transport (default: %(default)s)",
    )
    parser.add_argument(
        "--model",
        default=settings.model,
        help="Model identifier for the openai transport (default: %(default)s)",
    )
    parser.add_argument(
        "--system-prompt",
        default=settings.system_prompt,
        help="System prompt sent before the conversation",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    args = parser.parse_args(argv)

    settings = settings.model_copy(
        update={
            "transport": args.transport,
            "chat_api_endpoint": args.endpoint,
            "model": args.model,
            "system_prompt": args.system_prompt,
            "log_level": "DEBUG" if args.debug else settings.log_level,
        }
    )

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.info("Using %s transport", settings.transport)

    try:
        asyncio.run(ChatCLI(settings).run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    cli_main()
