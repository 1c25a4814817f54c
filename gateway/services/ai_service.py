import json
import logging
import re
from typing import AsyncIterator, List, Optional, Tuple

from gateway.core import config
from gateway.providers.base import ConfigError, LLMProvider
from gateway.providers.factory import (
    AISettings,
    ProviderConfig,
    create_embedding_provider,
    create_provider,
    create_provider_from_settings,
)
from gateway.providers.openai import OpenAIProvider
from gateway.providers.types import GenerationOptions, GenerationResult, ImageResult, Message
from gateway.services import prompts
from gateway.services.embeddings import ChunkEmbedding, generate_embeddings
from gateway.services.retrieval import ContextRetriever, RetrievedPage
from gateway.services.settings import SettingsStore
from gateway.streaming.sse import SourceRef, prime_stream

logger = logging.getLogger(__name__)

MAX_TAGS = 5
_TAG_ARRAY = re.compile(r"\[[\s\S]*\]")


async def resolve_provider(store: SettingsStore) -> Tuple[LLMProvider, AISettings]:
    settings = await store.get_settings()
    keys = await store.get_api_keys()
    provider = create_provider_from_settings(settings, keys)
    logger.debug("resolved provider %s (model=%s)", provider.name, settings.model)
    return provider, settings


async def _retrieve(
    store: SettingsStore,
    retriever: ContextRetriever,
    settings: AISettings,
    message: str,
    current_page_id: Optional[str],
) -> List[RetrievedPage]:
    keys = await store.get_api_keys()
    embedder = create_embedding_provider(settings, keys)
    try:
        return await retriever.retrieve(message, embedder=embedder, current_page_id=current_page_id)
    except Exception as e:
        # chat still works without notes context
        logger.warning("context retrieval failed, continuing without context: %s", e)
        return []


async def prepare_chat_stream(
    *,
    message: str,
    current_page_id: Optional[str],
    store: SettingsStore,
    retriever: ContextRetriever,
    deadline: Optional[float] = None,
) -> Tuple[AsyncIterator[str], List[SourceRef]]:
    provider, settings = await resolve_provider(store)
    pages = await _retrieve(store, retriever, settings, message, current_page_id)
    sources = [SourceRef(id=p.id, title=p.title) for p in pages]

    messages = prompts.build_chat_messages(message, pages)
    options = GenerationOptions(model=settings.model, max_tokens=config.MAX_TOKENS)
    stream = await prime_stream(provider.chat_stream(messages, options), deadline=deadline)
    return stream, sources


async def prepare_continue_stream(
    *,
    context: str,
    page_title: Optional[str],
    store: SettingsStore,
    deadline: Optional[float] = None,
) -> AsyncIterator[str]:
    provider, settings = await resolve_provider(store)
    messages = prompts.build_continue_messages(context, page_title)
    options = GenerationOptions(model=settings.model, max_tokens=1024, temperature=0.7)
    return await prime_stream(provider.chat_stream(messages, options), deadline=deadline)


async def _complete(
    store: SettingsStore, messages: List[Message], *, temperature: float, max_tokens: int = 2048
) -> GenerationResult:
    provider, settings = await resolve_provider(store)
    options = GenerationOptions(model=settings.model, max_tokens=max_tokens, temperature=temperature)
    return await provider.chat(messages, options)


async def run_inline(*, action: str, text: str, store: SettingsStore) -> GenerationResult:
    messages = [
        Message(role="system", content=prompts.INLINE[action]),
        Message(role="user", content=text),
    ]
    return await _complete(store, messages, temperature=0.7)


async def run_translate(*, text: str, language: str, store: SettingsStore) -> GenerationResult:
    messages = [
        Message(role="system", content=prompts.TRANSLATE.format(language=language)),
        Message(role="user", content=text),
    ]
    return await _complete(store, messages, temperature=0.3)


async def run_brainstorm(
    *, topic: Optional[str], context: Optional[str], page_title: Optional[str], store: SettingsStore
) -> GenerationResult:
    messages = prompts.build_brainstorm_messages(topic, context, page_title)
    return await _complete(store, messages, temperature=0.8, max_tokens=1024)


async def check_connection(
    *, provider: str, model: Optional[str], base_url: Optional[str], store: SettingsStore
) -> GenerationResult:
    keys = await store.get_api_keys()
    llm = create_provider(
        ProviderConfig(
            kind=provider,
            api_key=keys.model_dump().get(provider),
            embedding_api_key=keys.openai,
            base_url=base_url,
        )
    )
    return await llm.chat(
        [Message(role="user", content=prompts.CONNECTION_TEST)],
        GenerationOptions(model=model, max_tokens=50),
    )


async def embed_text(*, text: str, max_tokens: int, store: SettingsStore) -> List[ChunkEmbedding]:
    provider, _settings = await resolve_provider(store)
    return await generate_embeddings(provider, text, max_tokens=max_tokens)


def parse_tag_suggestions(reply: str, limit: int = MAX_TAGS) -> List[str]:
    """Tags from a model reply.

    A JSON array anywhere in the reply wins; otherwise the reply is read as
    comma or newline separated text. Tags are lowercased, deduplicated and
    kept only when 2-49 characters long.
    """
    parsed = None
    match = _TAG_ARRAY.search(reply)
    if match:
        try:
            parsed = json.loads(match.group(0))
        except ValueError:
            parsed = None
    if isinstance(parsed, list):
        raw = [t for t in parsed if isinstance(t, str)]
    else:
        raw = re.split(r"[,\n]", re.sub(r"[\[\]\"']", "", reply))

    tags: List[str] = []
    for t in raw:
        tag = t.strip().lower()
        if 2 <= len(tag) < 50 and tag not in tags:
            tags.append(tag)
    return tags[:limit]


async def suggest_tags(*, content: str, existing_tags: List[str], store: SettingsStore) -> List[str]:
    messages = prompts.build_tag_messages(content, existing_tags)
    result = await _complete(store, messages, temperature=0.5, max_tokens=256)
    return parse_tag_suggestions(result.content)


async def generate_image(*, prompt: str, size: str, store: SettingsStore) -> ImageResult:
    # image generation always goes through OpenAI, whatever chat provider is selected
    keys = await store.get_api_keys()
    if not keys.openai:
        raise ConfigError("OpenAI API key required for image generation. Please add your API key in Settings.")
    return await OpenAIProvider(keys.openai).generate_image(prompt, size=size)
