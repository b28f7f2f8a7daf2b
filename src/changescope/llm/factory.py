"""Factory for creating reasoning backends from configuration."""

from __future__ import annotations

from changescope.config import DEFAULT_OLLAMA_URL, LLMConfig
from changescope.llm.base import LLMProvider


def create_provider(config: LLMConfig) -> LLMProvider:
    """Create a reasoning backend from configuration.

    When `server_urls` lists more than one server, the result is a
    `BalancedProvider` that round-robins across one provider per URL.

    Raises:
        ValueError: If the provider is unknown.
    """
    urls = [u.strip() for u in config.server_urls if u.strip()]
    if len(urls) > 1:
        from changescope.llm.balanced import BalancedProvider

        return BalancedProvider([_create_single(config, url) for url in urls])
    return _create_single(config, urls[0] if urls else config.base_url)


def _create_single(config: LLMConfig, base_url: str | None) -> LLMProvider:
    provider = config.provider.lower()

    if provider in ("openai", "local", "ollama"):
        from changescope.llm.openai_provider import OpenAIProvider

        if provider == "ollama" and not base_url:
            base_url = DEFAULT_OLLAMA_URL
        return OpenAIProvider(
            model=config.model,
            api_key=config.api_key,
            base_url=base_url,
        )
    elif provider == "anthropic":
        from changescope.llm.anthropic_provider import AnthropicProvider

        return AnthropicProvider(
            model=config.model,
            api_key=config.api_key,
            base_url=base_url,
        )
    else:
        raise ValueError(
            f"Unknown LLM provider: '{provider}'. "
            f"Supported providers: ollama, openai, anthropic, local"
        )
