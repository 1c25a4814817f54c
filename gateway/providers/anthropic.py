import json
import logging
from typing import Any, AsyncIterator, Dict, List, Literal, Optional, Sequence

import httpx
from pydantic import BaseModel

from gateway.core import config
from gateway.providers.base import (
    ConfigError,
    LLMProvider,
    UpstreamError,
    parse_json_body,
    raise_for_upstream,
    request_timeout,
    stream_timeout,
)
from gateway.providers.openai import OpenAIProvider
from gateway.providers.types import (
    DEFAULT_EMBEDDING_MODELS,
    DEFAULT_MODELS,
    EmbeddingOptions,
    GenerationOptions,
    GenerationResult,
    Message,
    ProviderKind,
    Usage,
)
from gateway.streaming.sse import data_payload

logger = logging.getLogger(__name__)


# --- wire schemas ---

class AnthropicMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class MessagesRequest(BaseModel):
    model: str
    max_tokens: int
    messages: List[AnthropicMessage]
    system: Optional[str] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    stop_sequences: Optional[List[str]] = None
    stream: Optional[bool] = None


class _ContentBlock(BaseModel):
    type: str
    text: Optional[str] = None


class _Usage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0


class MessagesResponse(BaseModel):
    model: Optional[str] = None
    content: List[_ContentBlock]
    usage: Optional[_Usage] = None
    stop_reason: Optional[str] = None


class _EventDelta(BaseModel):
    type: Optional[str] = None
    text: Optional[str] = None


class StreamEvent(BaseModel):
    type: str
    delta: Optional[_EventDelta] = None
    error: Optional[Dict[str, Any]] = None


def split_system(messages: Sequence[Message]):
    """Pull system messages out into the top-level ``system`` field, keeping the turn order."""
    system = [m.content for m in messages if m.role == "system"]
    turns = [AnthropicMessage(role=m.role, content=m.content) for m in messages if m.role != "system"]
    return ("\n\n".join(system) if system else None), turns


class AnthropicProvider(LLMProvider):
    name = ProviderKind.ANTHROPIC.value

    def __init__(
        self,
        api_key: str,
        embedding_api_key: Optional[str] = None,
        base_url: Optional[str] = None,
    ) -> None:
        if not api_key:
            raise ConfigError("Anthropic API key is required")
        self._api_key = api_key
        # Anthropic has no embedding endpoint; embed() goes through an OpenAI credential instead
        self._embedding_api_key = embedding_api_key
        self.base_url = (base_url or config.ANTHROPIC_BASE_URL).rstrip("/")

    @property
    def _headers(self) -> Dict[str, str]:
        return {"x-api-key": self._api_key, "anthropic-version": config.ANTHROPIC_VERSION}

    def _payload(self, messages: Sequence[Message], options: Optional[GenerationOptions], stream: bool) -> Dict[str, Any]:
        opts = options or GenerationOptions()
        system, turns = split_system(messages)
        req = MessagesRequest(
            model=opts.model or DEFAULT_MODELS[ProviderKind.ANTHROPIC],
            max_tokens=opts.max_tokens or config.MAX_TOKENS,
            messages=turns,
            system=system,
            temperature=opts.temperature if opts.temperature is not None else config.TEMPERATURE,
            top_p=opts.top_p,
            stop_sequences=opts.stop,
            stream=True if stream else None,
        )
        return req.model_dump(exclude_none=True)

    async def chat(self, messages: Sequence[Message], options: Optional[GenerationOptions] = None) -> GenerationResult:
        payload = self._payload(messages, options, stream=False)
        try:
            async with httpx.AsyncClient(timeout=request_timeout()) as client:
                r = await client.post(f"{self.base_url}/v1/messages", json=payload, headers=self._headers)
        except httpx.HTTPError as e:
            raise UpstreamError(f"Anthropic HTTP error: {e}") from e
        raise_for_upstream(r, "Anthropic")
        data = parse_json_body(r, MessagesResponse, "Anthropic")

        text = next((b.text or "" for b in data.content if b.type == "text"), "")
        usage = None
        if data.usage is not None:
            usage = Usage(
                prompt_tokens=data.usage.input_tokens,
                completion_tokens=data.usage.output_tokens,
                total_tokens=data.usage.input_tokens + data.usage.output_tokens,
            )
        return GenerationResult(content=text, usage=usage, model=data.model, finish_reason=data.stop_reason)

    async def chat_stream(
        self, messages: Sequence[Message], options: Optional[GenerationOptions] = None
    ) -> AsyncIterator[str]:
        payload = self._payload(messages, options, stream=True)
        try:
            async with httpx.AsyncClient(timeout=stream_timeout()) as client:
                async with client.stream("POST", f"{self.base_url}/v1/messages", json=payload, headers=self._headers) as r:
                    if not r.is_success:
                        await r.aread()
                        raise_for_upstream(r, "Anthropic")
                    async for line in r.aiter_lines():
                        data = data_payload(line)
                        if data is None:
                            continue
                        event = _parse_event(data)
                        if event is None:
                            continue
                        if event.type == "error":
                            detail = (event.error or {}).get("message") or event.error
                            raise UpstreamError(f"Anthropic stream error: {detail}")
                        if event.type == "message_stop":
                            break
                        if (
                            event.type == "content_block_delta"
                            and event.delta is not None
                            and event.delta.type == "text_delta"
                            and event.delta.text
                        ):
                            yield event.delta.text
        except httpx.HTTPError as e:
            raise UpstreamError(f"Anthropic HTTP error: {e}") from e

    async def embed(self, text: str, options: Optional[EmbeddingOptions] = None) -> List[float]:
        if not self._embedding_api_key:
            raise ConfigError("embeddings require an OpenAI-compatible credential")
        model = (options.model if options else None) or DEFAULT_EMBEDDING_MODELS[ProviderKind.ANTHROPIC]
        delegate = OpenAIProvider(self._embedding_api_key)
        return await delegate.embed(text, EmbeddingOptions(model=model))


def _parse_event(data: str) -> Optional[StreamEvent]:
    try:
        return StreamEvent.model_validate(json.loads(data))
    except ValueError:
        logger.debug("skipping unparsable Anthropic stream event: %r", data[:200])
        return None
