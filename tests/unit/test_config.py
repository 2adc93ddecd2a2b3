"""Unit tests for chatpilot.config."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from chatpilot.config import Settings, build_transport
from chatpilot.conversation.streaming import ChatApiConfig, HttpxChatTransport, OpenAIChatTransport


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    # Keep a developer's .env or shell environment out of the tests.
    monkeypatch.chdir(tmp_path)
    for name in (
        "CHATPILOT_TRANSPORT",
        "CHATPILOT_CHAT_API_ENDPOINT",
        "CHATPILOT_MODEL",
        "CHATPILOT_LOG_LEVEL",
        "CHATPILOT_OPENAI_API_KEY",
    ):
        monkeypatch.delenv(name, raising=False)


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings()
        assert settings.transport == "http"
        assert settings.chat_api_endpoint == "http://localhost:3000/api/chat"
        assert settings.log_level == "WARNING"

    def test_environment_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHATPILOT_TRANSPORT", "openai")
        monkeypatch.setenv("CHATPILOT_MODEL", "llama3")
        monkeypatch.setenv("CHATPILOT_LOG_LEVEL", "DEBUG")

        settings = Settings()

        assert settings.transport == "openai"
        assert settings.model == "llama3"
        assert settings.log_level == "DEBUG"

    def test_dotenv_file(self, tmp_path) -> None:
        (tmp_path / ".env").write_text("CHATPILOT_CHAT_API_ENDPOINT=http://example.test/chat\n")
        assert Settings().chat_api_endpoint == "http://example.test/chat"

    def test_invalid_transport_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHATPILOT_TRANSPORT", "carrier-pigeon")
        with pytest.raises(ValueError):
            Settings()


class TestApiConfig:
    def test_http_sends_no_model(self) -> None:
        config = Settings(chat_api_endpoint="http://x/chat").api_config()
        assert config.endpoint == "http://x/chat"
        assert config.body == {}

    def test_openai_sends_model(self) -> None:
        config = Settings(transport="openai", model="m").api_config()
        assert config.body == {"model": "m"}


class TestBuildTransport:
    def test_http_transport(self) -> None:
        transport = build_transport(Settings(chat_api_endpoint="http://x/chat", request_timeout=5))
        assert isinstance(transport, HttpxChatTransport)
        assert transport.endpoint == "http://x/chat"
        assert transport.timeout == 5

    def test_http_endpoint_comes_from_api_config(self) -> None:
        class GatewaySettings(Settings):
            def api_config(self) -> ChatApiConfig:
                return ChatApiConfig(endpoint="http://gateway/chat")

        transport = build_transport(GatewaySettings(chat_api_endpoint="http://x/chat"))
        assert transport.endpoint == "http://gateway/chat"

    def test_openai_transport(self) -> None:
        settings = Settings(transport="openai", openai_base_url="http://llm/v1", model="m")
        with patch("chatpilot.conversation.streaming.AsyncOpenAI"):
            transport = build_transport(settings)
        assert isinstance(transport, OpenAIChatTransport)
        assert transport.base_url == "http://llm/v1"
        assert transport.model == "m"
