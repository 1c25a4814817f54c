# lets us swap/add providers without touching endpoint logic (openai/anthropic/ollama)
# declares the abstract provider contract (chat / chat_stream / embed) and the error taxonomy

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, List, Optional, Sequence, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from gateway.core import config
from gateway.providers.types import EmbeddingOptions, GenerationOptions, GenerationResult, Message


class ProviderError(Exception):
    pass


class ConfigError(ProviderError):
    """Missing or invalid credential / provider selection. Raised before any network call."""


class UpstreamError(ProviderError):
    """Non-2xx or malformed response from a backend."""

    def __init__(self, message: str, *, status: Optional[int] = None, body: Optional[str] = None) -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class StreamError(ProviderError):
    """Failure while draining an already-open stream."""


M = TypeVar("M", bound=BaseModel)


class LLMProvider(ABC):
    name: str = ""

    @abstractmethod
    async def chat(
        self, messages: Sequence[Message], options: Optional[GenerationOptions] = None
    ) -> GenerationResult:
        raise NotImplementedError

    @abstractmethod
    def chat_stream(
        self, messages: Sequence[Message], options: Optional[GenerationOptions] = None
    ) -> AsyncIterator[str]:
        """Async generator of text deltas. Not restartable; the caller drains or closes it."""
        raise NotImplementedError

    @abstractmethod
    async def embed(self, text: str, options: Optional[EmbeddingOptions] = None) -> List[float]:
        raise NotImplementedError


def request_timeout() -> httpx.Timeout:
    return httpx.Timeout(config.REQUEST_TIMEOUT, connect=config.CONNECT_TIMEOUT)


def stream_timeout() -> httpx.Timeout:
    # read budget applies per chunk, so a long generation survives as long as tokens keep arriving
    return httpx.Timeout(config.STREAM_TIMEOUT, connect=config.CONNECT_TIMEOUT)


def raise_for_upstream(r: httpx.Response, label: str) -> None:
    """Turn a non-2xx response into UpstreamError carrying status and raw body text.

    The body must already be read (call ``await r.aread()`` first on streamed responses).
    """
    if r.is_success:
        return
    body = r.text
    raise UpstreamError(f"{label} API error: {r.status_code} - {body}", status=r.status_code, body=body)


def parse_payload(schema: Type[M], data: Any, label: str) -> M:
    try:
        return schema.model_validate(data)
    except ValidationError as e:
        raise UpstreamError(f"Malformed {label} response: {e.error_count()} validation error(s)") from e


def parse_json_body(r: httpx.Response, schema: Type[M], label: str) -> M:
    try:
        data = r.json()
    except ValueError as e:
        raise UpstreamError(f"Malformed {label} response: body is not JSON", status=r.status_code, body=r.text) from e
    return parse_payload(schema, data, label)
