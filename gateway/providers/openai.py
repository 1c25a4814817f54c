import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

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
from gateway.providers.types import (
    DEFAULT_EMBEDDING_MODELS,
    DEFAULT_IMAGE_MODEL,
    DEFAULT_MODELS,
    EmbeddingOptions,
    GenerationOptions,
    GenerationResult,
    ImageResult,
    Message,
    ProviderKind,
    Usage,
)
from gateway.streaming.sse import DONE_SENTINEL, data_payload

logger = logging.getLogger(__name__)


# --- wire schemas ---

class ChatCompletionRequest(BaseModel):
    model: str
    messages: List[Dict[str, str]]
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    top_p: Optional[float] = None
    frequency_penalty: Optional[float] = None
    presence_penalty: Optional[float] = None
    stop: Optional[List[str]] = None
    stream: Optional[bool] = None


class _ResponseMessage(BaseModel):
    content: Optional[str] = None


class _Choice(BaseModel):
    message: _ResponseMessage
    finish_reason: Optional[str] = None


class _Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatCompletionResponse(BaseModel):
    model: Optional[str] = None
    choices: List[_Choice]
    usage: Optional[_Usage] = None


class _Delta(BaseModel):
    content: Optional[str] = None


class _ChunkChoice(BaseModel):
    delta: Optional[_Delta] = None


class ChatCompletionChunk(BaseModel):
    choices: List[_ChunkChoice] = []
    error: Optional[Dict[str, Any]] = None


class _EmbeddingItem(BaseModel):
    embedding: List[float]


class EmbeddingResponse(BaseModel):
    data: List[_EmbeddingItem]


class _ImageItem(BaseModel):
    url: Optional[str] = None
    revised_prompt: Optional[str] = None


class ImageGenerationResponse(BaseModel):
    data: List[_ImageItem]


class OpenAIProvider(LLMProvider):
    name = ProviderKind.OPENAI.value

    def __init__(self, api_key: str, base_url: Optional[str] = None) -> None:
        if not api_key:
            raise ConfigError("OpenAI API key is required")
        self._api_key = api_key
        self.base_url = (base_url or config.OPENAI_BASE_URL).rstrip("/")

    @property
    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._api_key}"}

    def _payload(self, messages: Sequence[Message], options: Optional[GenerationOptions], stream: bool) -> Dict[str, Any]:
        opts = options or GenerationOptions()
        req = ChatCompletionRequest(
            model=opts.model or DEFAULT_MODELS[ProviderKind.OPENAI],
            messages=[{"role": m.role, "content": m.content} for m in messages],
            temperature=opts.temperature if opts.temperature is not None else config.TEMPERATURE,
            max_tokens=opts.max_tokens or config.MAX_TOKENS,
            top_p=opts.top_p,
            frequency_penalty=opts.frequency_penalty,
            presence_penalty=opts.presence_penalty,
            stop=opts.stop,
            stream=True if stream else None,
        )
        return req.model_dump(exclude_none=True)

    async def chat(self, messages: Sequence[Message], options: Optional[GenerationOptions] = None) -> GenerationResult:
        payload = self._payload(messages, options, stream=False)
        try:
            async with httpx.AsyncClient(timeout=request_timeout()) as client:
                r = await client.post(f"{self.base_url}/chat/completions", json=payload, headers=self._headers)
        except httpx.HTTPError as e:
            raise UpstreamError(f"OpenAI HTTP error: {e}") from e
        raise_for_upstream(r, "OpenAI")
        data = parse_json_body(r, ChatCompletionResponse, "OpenAI")
        if not data.choices:
            raise UpstreamError("Malformed OpenAI response: no choices")

        choice = data.choices[0]
        usage = None
        if data.usage is not None:
            usage = Usage(
                prompt_tokens=data.usage.prompt_tokens,
                completion_tokens=data.usage.completion_tokens,
                total_tokens=data.usage.total_tokens,
            )
        return GenerationResult(
            content=choice.message.content or "",
            usage=usage,
            model=data.model,
            finish_reason=choice.finish_reason,
        )

    async def chat_stream(
        self, messages: Sequence[Message], options: Optional[GenerationOptions] = None
    ) -> AsyncIterator[str]:
        payload = self._payload(messages, options, stream=True)
        try:
            async with httpx.AsyncClient(timeout=stream_timeout()) as client:
                async with client.stream(
                    "POST", f"{self.base_url}/chat/completions", json=payload, headers=self._headers
                ) as r:
                    if not r.is_success:
                        await r.aread()
                        raise_for_upstream(r, "OpenAI")
                    async for line in r.aiter_lines():
                        data = data_payload(line)
                        if data is None:
                            continue
                        if data.strip() == DONE_SENTINEL:
                            break
                        delta = _delta_from_event(data)
                        if delta:
                            yield delta
        except httpx.HTTPError as e:
            raise UpstreamError(f"OpenAI HTTP error: {e}") from e

    async def embed(self, text: str, options: Optional[EmbeddingOptions] = None) -> List[float]:
        model = (options.model if options else None) or DEFAULT_EMBEDDING_MODELS[ProviderKind.OPENAI]
        try:
            async with httpx.AsyncClient(timeout=request_timeout()) as client:
                r = await client.post(
                    f"{self.base_url}/embeddings", json={"model": model, "input": text}, headers=self._headers
                )
        except httpx.HTTPError as e:
            raise UpstreamError(f"OpenAI HTTP error: {e}") from e
        raise_for_upstream(r, "OpenAI embedding")
        data = parse_json_body(r, EmbeddingResponse, "OpenAI embedding")
        if not data.data:
            raise UpstreamError("Malformed OpenAI embedding response: no data")
        return data.data[0].embedding

    async def generate_image(self, prompt: str, *, size: str = "1024x1024", model: Optional[str] = None) -> ImageResult:
        """One image from the images endpoint. The returned URL is temporary and expires upstream."""
        payload = {
            "model": model or DEFAULT_IMAGE_MODEL,
            "prompt": prompt,
            "n": 1,
            "size": size,
            "quality": "standard",
            "response_format": "url",
        }
        try:
            async with httpx.AsyncClient(timeout=request_timeout()) as client:
                r = await client.post(f"{self.base_url}/images/generations", json=payload, headers=self._headers)
        except httpx.HTTPError as e:
            raise UpstreamError(f"OpenAI HTTP error: {e}") from e
        raise_for_upstream(r, "OpenAI image")
        data = parse_json_body(r, ImageGenerationResponse, "OpenAI image")
        if not data.data or not data.data[0].url:
            raise UpstreamError("Malformed OpenAI image response: no image URL")
        return ImageResult(url=data.data[0].url, revised_prompt=data.data[0].revised_prompt)


def _delta_from_event(data: str) -> Optional[str]:
    # role-only, keep-alive and usage-only frames carry no content and yield nothing
    try:
        chunk = ChatCompletionChunk.model_validate(json.loads(data))
    except ValueError:
        logger.debug("skipping unparsable OpenAI stream frame: %r", data[:200])
        return None
    if chunk.error:
        raise UpstreamError(f"OpenAI stream error: {chunk.error.get('message') or chunk.error}")
    if not chunk.choices or chunk.choices[0].delta is None:
        return None
    return chunk.choices[0].delta.content or None
