"""
Model SDK client factory utilities.
Centralizes AsyncOpenAI and AsyncAnthropic client creation with consistent configuration.
"""

from __future__ import annotations

from typing import Any

import httpx

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

# A reduce call can stream for minutes, and providers may pause for a long
# time before the first token, so reads get a generous timeout
DEFAULT_CONNECT_TIMEOUT = 30.0  # Time to establish connection
DEFAULT_READ_TIMEOUT = 600.0  # Time between received bytes
DEFAULT_WRITE_TIMEOUT = 30.0  # Time to send request
DEFAULT_POOL_TIMEOUT = 30.0  # Time to acquire connection from pool


def create_http_client(read_timeout: float | None = None) -> httpx.AsyncClient:
    """Create HTTP client with proper timeouts for streaming.

    Args:
        read_timeout: Read timeout in seconds (default: 600s)

    Returns:
        Configured httpx.AsyncClient
    """
    effective_read_timeout = read_timeout if read_timeout is not None else DEFAULT_READ_TIMEOUT
    timeout = httpx.Timeout(
        connect=DEFAULT_CONNECT_TIMEOUT,
        read=effective_read_timeout,
        write=DEFAULT_WRITE_TIMEOUT,
        pool=DEFAULT_POOL_TIMEOUT,
    )
    return httpx.AsyncClient(timeout=timeout)


def create_openai_client(
    api_key: str,
    base_url: str | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> AsyncOpenAI:
    """Create AsyncOpenAI client with consistent configuration.

    Args:
        api_key: OpenAI, Azure OpenAI or Google API key
        base_url: Optional base URL for Azure or OpenAI-compatible endpoints
        http_client: Optional shared httpx client

    Returns:
        Configured AsyncOpenAI client
    """
    kwargs: dict[str, Any] = {"api_key": api_key, "http_client": http_client}
    if base_url:
        kwargs["base_url"] = base_url
    return AsyncOpenAI(**kwargs)


def create_anthropic_client(
    api_key: str,
    http_client: httpx.AsyncClient | None = None,
) -> AsyncAnthropic:
    """Create AsyncAnthropic client with consistent configuration.

    Args:
        api_key: Anthropic API key
        http_client: Optional shared httpx client

    Returns:
        Configured AsyncAnthropic client
    """
    kwargs: dict[str, Any] = {"api_key": api_key}
    if http_client is not None:
        kwargs["http_client"] = http_client
    return AsyncAnthropic(**kwargs)
