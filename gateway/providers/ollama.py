import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import httpx
from pydantic import BaseModel

from gateway.core import config
from gateway.providers.base import (
    LLMProvider,
    UpstreamError,
    parse_json_body,
    raise_for_upstream,
    request_timeout,
    stream_timeout,
)
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
from gateway.streaming.lines import LineBuffer

logger = logging.getLogger(__name__)


# --- wire schemas ---

class OllamaMessage(BaseModel):
    role: str = "assistant"
    content: str = ""


class OllamaChatResponse(BaseModel):
    model: Optional[str] = None
    message: OllamaMessage
    done: bool = False
    prompt_eval_count: Optional[int] = None
    eval_count: Optional[int] = None


class OllamaStreamChunk(BaseModel):
    message: Optional[OllamaMessage] = None
    done: bool = False
    error: Optional[str] = None


class OllamaEmbeddingResponse(BaseModel):
    embedding: List[float]


def _map_options(opts: GenerationOptions) -> Dict[str, Any]:
    mapped: Dict[str, Any] = {
        "temperature": opts.temperature if opts.temperature is not None else config.TEMPERATURE,
        "num_predict": opts.max_tokens or config.MAX_TOKENS,
        "top_p": opts.top_p,
        "stop": opts.stop,
        "frequency_penalty": opts.frequency_penalty,
        "presence_penalty": opts.presence_penalty,
    }
    return {k: v for k, v in mapped.items() if v is not None}


class OllamaProvider(LLMProvider):
    name = ProviderKind.OLLAMA.value

    def __init__(self, base_url: Optional[str] = None) -> None:
        self.base_url = (base_url or config.OLLAMA_HOST).rstrip("/")

    def _payload(self, messages: Sequence[Message], options: Optional[GenerationOptions], stream: bool) -> Dict[str, Any]:
        opts = options or GenerationOptions()
        return {
            "model": opts.model or DEFAULT_MODELS[ProviderKind.OLLAMA],
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "stream": stream,
            "options": _map_options(opts),
        }

    async def chat(self, messages: Sequence[Message], options: Optional[GenerationOptions] = None) -> GenerationResult:
        payload = self._payload(messages, options, stream=False)
        try:
            async with httpx.AsyncClient(timeout=request_timeout()) as client:
                r = await client.post(f"{self.base_url}/api/chat", json=payload)
        except httpx.HTTPError as e:
            raise UpstreamError(f"Ollama HTTP error: {e}") from e
        raise_for_upstream(r, "Ollama")
        data = parse_json_body(r, OllamaChatResponse, "Ollama")

        usage = None
        if data.prompt_eval_count:
            completion = data.eval_count or 0
            usage = Usage(
                prompt_tokens=data.prompt_eval_count,
                completion_tokens=completion,
                total_tokens=data.prompt_eval_count + completion,
            )
        return GenerationResult(
            content=data.message.content,
            usage=usage,
            model=data.model,
            finish_reason="stop" if data.done else None,
        )

    async def chat_stream(
        self, messages: Sequence[Message], options: Optional[GenerationOptions] = None
    ) -> AsyncIterator[str]:
        payload = self._payload(messages, options, stream=True)
        try:
            async with httpx.AsyncClient(timeout=stream_timeout()) as client:
                async with client.stream("POST", f"{self.base_url}/api/chat", json=payload) as r:
                    if not r.is_success:
                        await r.aread()
                        raise_for_upstream(r, "Ollama")
                    buffer = LineBuffer()
                    async for raw in r.aiter_bytes():
                        for line in buffer.feed(raw):
                            delta = _delta_from_line(line)
                            if delta:
                                yield delta
                    for line in buffer.flush():
                        delta = _delta_from_line(line)
                        if delta:
                            yield delta
        except httpx.HTTPError as e:
            raise UpstreamError(f"Ollama HTTP error: {e}") from e

    async def embed(self, text: str, options: Optional[EmbeddingOptions] = None) -> List[float]:
        model = (options.model if options else None) or DEFAULT_EMBEDDING_MODELS[ProviderKind.OLLAMA]
        try:
            async with httpx.AsyncClient(timeout=request_timeout()) as client:
                r = await client.post(f"{self.base_url}/api/embeddings", json={"model": model, "prompt": text})
        except httpx.HTTPError as e:
            raise UpstreamError(f"Ollama HTTP error: {e}") from e
        raise_for_upstream(r, "Ollama embedding")
        return parse_json_body(r, OllamaEmbeddingResponse, "Ollama embedding").embedding


def _delta_from_line(line: str) -> Optional[str]:
    """Text delta carried by one NDJSON line; None for blank, malformed or empty lines."""
    if not line.strip():
        return None
    try:
        chunk = OllamaStreamChunk.model_validate(json.loads(line))
    except ValueError:
        # json.JSONDecodeError and pydantic.ValidationError are both ValueErrors
        logger.debug("skipping malformed NDJSON line: %r", line[:200])
        return None
    if chunk.error:
        raise UpstreamError(f"Ollama error: {chunk.error}")
    if chunk.message and chunk.message.content:
        return chunk.message.content
    return None
