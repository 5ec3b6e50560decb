"""
Model provider abstraction used by the audit report pipeline.

Two calls are needed: a non-streaming completion for the map stage and a
streaming completion for the reduce stage. Usage of a streamed call is only
known at the end, so it is handed to an on_finish callback instead of being
returned.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Sequence
from typing import Any, Protocol

import httpx

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from core.constants import GOOGLE_OPENAI_COMPAT_BASE_URL, Settings
from core.model_catalog import ModelCatalog
from models.audit_models import Completion, TokenUsage
from utils.client_factory import create_anthropic_client, create_openai_client

#: Chat message as sent to the provider: {"role": ..., "content": ...}
ChatMessage = dict[str, str]

#: Receives the usage of a finished streaming call.
UsageCallback = Callable[[TokenUsage], None]


class ProviderConfigurationError(ValueError):
    """The selected model cannot be called with this deployment's configuration."""


class ModelProvider(Protocol):
    """What the pipeline needs from a language model."""

    model: str

    async def complete(
        self,
        system_prompt: str,
        messages: Sequence[ChatMessage],
        max_output_tokens: int,
    ) -> Completion: ...

    def stream(
        self,
        system_prompt: str,
        messages: Sequence[ChatMessage],
        max_output_tokens: int,
        on_finish: UsageCallback | None = None,
    ) -> AsyncIterator[str]: ...


class OpenAIModelProvider:
    """Chat Completions provider for OpenAI, Azure OpenAI and OpenAI-compatible endpoints."""

    def __init__(self, client: AsyncOpenAI, model: str, max_tokens_param: str = "max_completion_tokens"):
        self._client = client
        self.model = model
        # Google's compatibility layer only understands max_tokens
        self._max_tokens_param = max_tokens_param

    def _request(self, system_prompt: str, messages: Sequence[ChatMessage], max_output_tokens: int) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": [{"role": "system", "content": system_prompt}, *messages],
            self._max_tokens_param: max_output_tokens,
        }

    async def complete(
        self,
        system_prompt: str,
        messages: Sequence[ChatMessage],
        max_output_tokens: int,
    ) -> Completion:
        response = await self._client.chat.completions.create(
            **self._request(system_prompt, messages, max_output_tokens)
        )
        text = ""
        if response.choices:
            text = response.choices[0].message.content or ""
        usage = response.usage
        return Completion(
            text=text,
            usage=TokenUsage(
                input_tokens=usage.prompt_tokens if usage else 0,
                output_tokens=usage.completion_tokens if usage else 0,
            ),
        )

    async def stream(
        self,
        system_prompt: str,
        messages: Sequence[ChatMessage],
        max_output_tokens: int,
        on_finish: UsageCallback | None = None,
    ) -> AsyncIterator[str]:
        response = await self._client.chat.completions.create(
            **self._request(system_prompt, messages, max_output_tokens),
            stream=True,
            stream_options={"include_usage": True},
        )
        usage = TokenUsage()
        async for chunk in response:
            # The final chunk carries usage and no choices
            if chunk.usage:
                usage = TokenUsage(
                    input_tokens=chunk.usage.prompt_tokens,
                    output_tokens=chunk.usage.completion_tokens,
                )
            if chunk.choices:
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta
        if on_finish is not None:
            on_finish(usage)


class AnthropicModelProvider:
    """Messages API provider for Claude models."""

    def __init__(self, client: AsyncAnthropic, model: str):
        self._client = client
        self.model = model

    async def complete(
        self,
        system_prompt: str,
        messages: Sequence[ChatMessage],
        max_output_tokens: int,
    ) -> Completion:
        response = await self._client.messages.create(
            model=self.model,
            max_tokens=max_output_tokens,
            system=system_prompt,
            messages=list(messages),  # type: ignore[arg-type]
        )
        text = "".join(block.text for block in response.content if block.type == "text")
        return Completion(
            text=text,
            usage=TokenUsage(
                input_tokens=getattr(response.usage, "input_tokens", 0),
                output_tokens=getattr(response.usage, "output_tokens", 0),
            ),
        )

    async def stream(
        self,
        system_prompt: str,
        messages: Sequence[ChatMessage],
        max_output_tokens: int,
        on_finish: UsageCallback | None = None,
    ) -> AsyncIterator[str]:
        async with self._client.messages.stream(
            model=self.model,
            max_tokens=max_output_tokens,
            system=system_prompt,
            messages=list(messages),  # type: ignore[arg-type]
        ) as stream:
            async for text in stream.text_stream:
                if text:
                    yield text
            message = await stream.get_final_message()
        if on_finish is not None:
            on_finish(
                TokenUsage(
                    input_tokens=getattr(message.usage, "input_tokens", 0),
                    output_tokens=getattr(message.usage, "output_tokens", 0),
                )
            )


def create_model_provider(
    model_id: str,
    catalog: ModelCatalog,
    settings: Settings,
    http_client: httpx.AsyncClient | None = None,
) -> ModelProvider:
    """Build the provider for a catalog model.

    Raises:
        ProviderConfigurationError: If the model is unknown or its provider
            has no credentials configured.
    """
    config = catalog.get(model_id)
    if config is None:
        raise ProviderConfigurationError(f"Unsupported model: {model_id}")

    api_model = catalog.api_model_name(model_id)

    if config.provider == "openai":
        if settings.api_provider == "azure":
            if not settings.azure_openai_api_key:
                raise ProviderConfigurationError("Azure OpenAI API key is not configured")
            client = create_openai_client(
                api_key=settings.azure_openai_api_key,
                base_url=settings.azure_endpoint_str,
                http_client=http_client,
            )
        else:
            if not settings.openai_api_key:
                raise ProviderConfigurationError("OpenAI API key is not configured")
            client = create_openai_client(api_key=settings.openai_api_key, http_client=http_client)
        return OpenAIModelProvider(client, api_model)

    if config.provider == "anthropic":
        if not settings.anthropic_api_key:
            raise ProviderConfigurationError("Anthropic API key is not configured")
        return AnthropicModelProvider(
            create_anthropic_client(api_key=settings.anthropic_api_key, http_client=http_client),
            api_model,
        )

    if config.provider == "google":
        if not settings.google_api_key:
            raise ProviderConfigurationError("Google API key is not configured")
        client = create_openai_client(
            api_key=settings.google_api_key,
            base_url=GOOGLE_OPENAI_COMPAT_BASE_URL,
            http_client=http_client,
        )
        return OpenAIModelProvider(client, api_model, max_tokens_param="max_tokens")

    raise ProviderConfigurationError(f"Unsupported provider: {config.provider}")
