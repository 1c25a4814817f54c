from typing import Optional

from pydantic import BaseModel

from gateway.providers.anthropic import AnthropicProvider
from gateway.providers.base import ConfigError, LLMProvider
from gateway.providers.ollama import OllamaProvider
from gateway.providers.openai import OpenAIProvider
from gateway.providers.types import ProviderKind


class ProviderConfig(BaseModel):
    kind: str
    api_key: Optional[str] = None
    # Anthropic only: OpenAI credential used for embeddings
    embedding_api_key: Optional[str] = None
    base_url: Optional[str] = None


class AISettings(BaseModel):
    provider: str = ""
    model: Optional[str] = None
    base_url: Optional[str] = None


class ApiKeys(BaseModel):
    openai: Optional[str] = None
    anthropic: Optional[str] = None


def parse_kind(kind) -> Optional[ProviderKind]:
    try:
        return ProviderKind(kind)
    except ValueError:
        return None


def create_provider(cfg: ProviderConfig) -> LLMProvider:
    """Build the adapter for ``cfg.kind``; credentials are checked here, not at first use."""
    kind = parse_kind(cfg.kind)
    if kind is ProviderKind.OPENAI:
        if not cfg.api_key:
            raise ConfigError("OpenAI API key is required")
        return OpenAIProvider(cfg.api_key, cfg.base_url)
    if kind is ProviderKind.ANTHROPIC:
        if not cfg.api_key:
            raise ConfigError("Anthropic API key is required")
        return AnthropicProvider(cfg.api_key, cfg.embedding_api_key, cfg.base_url)
    if kind is ProviderKind.OLLAMA:
        return OllamaProvider(cfg.base_url)
    raise ConfigError(f"Unknown provider: {cfg.kind}")


def create_provider_from_settings(settings: AISettings, keys: ApiKeys) -> LLMProvider:
    kind = parse_kind(settings.provider)
    if kind is ProviderKind.OPENAI:
        if not keys.openai:
            raise ConfigError("No API key configured for openai. Please add your API key in Settings.")
        return OpenAIProvider(keys.openai, settings.base_url)
    if kind is ProviderKind.ANTHROPIC:
        if not keys.anthropic:
            raise ConfigError("No API key configured for anthropic. Please add your API key in Settings.")
        return AnthropicProvider(keys.anthropic, keys.openai, settings.base_url)
    if kind is ProviderKind.OLLAMA:
        return OllamaProvider(settings.base_url)
    # nothing (or something unknown) selected: OpenAI if a key is stored
    if keys.openai:
        return OpenAIProvider(keys.openai)
    raise ConfigError("No LLM provider configured")


def create_embedding_provider(settings: AISettings, keys: ApiKeys) -> Optional[LLMProvider]:
    """Provider used for retrieval embeddings, or None when embeddings are unavailable.

    A local backend embeds with its own model; cloud setups embed through OpenAI.
    """
    if parse_kind(settings.provider) is ProviderKind.OLLAMA:
        return OllamaProvider(settings.base_url)
    if keys.openai:
        return OpenAIProvider(keys.openai)
    return None
