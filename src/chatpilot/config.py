"""
Configuration management for chatpilot.

Settings are loaded from environment variables prefixed with ``CHATPILOT_``
(or a ``.env`` file), so the command-line client can be pointed at a different
completion service without code changes.
"""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from chatpilot.conversation.streaming import (
    ChatApiConfig,
    ChatTransport,
    HttpxChatTransport,
    OpenAIChatTransport,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Transport selection: "http" posts to chat_api_endpoint and reads SSE,
    # "openai" streams from an OpenAI-compatible API.
    transport: Literal["http", "openai"] = "http"

    # HTTP chat endpoint
    chat_api_endpoint: str = "http://localhost:3000/api/chat"
    request_timeout: float = 60.0

    # OpenAI-compatible settings
    openai_base_url: str = "https://api.openai.com/v1"
    openai_api_key: str = ""
    model: str = "gpt-4o-mini"
    temperature: float = 0.7

    # Conversation
    system_prompt: str = "You are a helpful assistant."

    # Logging
    log_level: str = "WARNING"

    model_config = SettingsConfigDict(
        env_prefix="CHATPILOT_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    def api_config(self) -> ChatApiConfig:
        """Return the request defaults for ``ChatCompletionClient``."""
        body = {"model": self.model} if self.transport == "openai" else {}
        return ChatApiConfig(endpoint=self.chat_api_endpoint, body=body)


def get_settings() -> Settings:
    """Get the application settings instance."""
    return Settings()


def build_transport(settings: Settings) -> ChatTransport:
    """Create the transport selected by ``settings.transport``.

    The http transport posts to ``settings.api_config().endpoint``.
    """
    if settings.transport == "openai":
        return OpenAIChatTransport(
            base_url=settings.openai_base_url,
            api_key=settings.openai_api_key,
            model=settings.model,
            temperature=settings.temperature,
        )
    return HttpxChatTransport(settings.api_config().endpoint, timeout=settings.request_timeout)
