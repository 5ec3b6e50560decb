"""Tests for model SDK client factory utilities.

Tests client creation and configuration.
"""

from __future__ import annotations

from unittest.mock import Mock, patch

import httpx

from utils.client_factory import (
    create_anthropic_client,
    create_http_client,
    create_openai_client,
)


class TestCreateHttpClient:
    """Tests for create_http_client function."""

    def test_create_http_client_default(self) -> None:
        result = create_http_client()

        assert isinstance(result, httpx.AsyncClient)

    def test_create_http_client_custom_read_timeout(self) -> None:
        result = create_http_client(read_timeout=120.0)

        assert result.timeout.read == 120.0

    def test_create_http_client_default_timeout_values(self) -> None:
        result = create_http_client()

        assert result.timeout.connect == 30.0
        assert result.timeout.read == 600.0
        assert result.timeout.write == 30.0
        assert result.timeout.pool == 30.0


class TestCreateOpenAIClient:
    """Tests for create_openai_client function."""

    def test_create_openai_client_minimal(self) -> None:
        with patch("utils.client_factory.AsyncOpenAI") as mock_async_openai:
            mock_client = Mock()
            mock_async_openai.return_value = mock_client

            result = create_openai_client(api_key="test-key")

            assert result is mock_client
            call_kwargs = mock_async_openai.call_args[1]
            assert call_kwargs["api_key"] == "test-key"
            assert "base_url" not in call_kwargs

    def test_create_openai_client_with_base_url_and_http_client(self) -> None:
        http_client = Mock()
        with patch("utils.client_factory.AsyncOpenAI") as mock_async_openai:
            create_openai_client(api_key="k", base_url="https://example.test/v1/", http_client=http_client)

            call_kwargs = mock_async_openai.call_args[1]
            assert call_kwargs["base_url"] == "https://example.test/v1/"
            assert call_kwargs["http_client"] is http_client


class TestCreateAnthropicClient:
    """Tests for create_anthropic_client function."""

    def test_without_http_client(self) -> None:
        with patch("utils.client_factory.AsyncAnthropic") as mock_anthropic:
            create_anthropic_client(api_key="sk-ant")

            assert mock_anthropic.call_args[1] == {"api_key": "sk-ant"}

    def test_with_http_client(self) -> None:
        http_client = Mock()
        with patch("utils.client_factory.AsyncAnthropic") as mock_anthropic:
            create_anthropic_client(api_key="sk-ant", http_client=http_client)

            assert mock_anthropic.call_args[1]["http_client"] is http_client
