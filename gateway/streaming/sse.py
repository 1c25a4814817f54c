"""Server-Sent Events framing: this service's own stream envelope plus helpers for reading upstream SSE.

Wire format, one event per frame::

    data: {"type":"sources","pages":[{"id":"p1","title":"Intro"}]}\\n\\n
    data: {"type":"content","text":"Hel"}\\n\\n
    data: {"type":"error","error":"upstream went away"}\\n\\n
    data: [DONE]\\n\\n

A stream ends with exactly one of ``error`` or ``[DONE]``.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Annotated, AsyncIterator, List, Literal, Optional, Sequence, Union

from fastapi import Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from gateway.providers.base import StreamError, UpstreamError

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


class SourceRef(BaseModel):
    id: str
    title: str


class SourcesFrame(BaseModel):
    type: Literal["sources"] = "sources"
    pages: List[SourceRef]


class ContentFrame(BaseModel):
    type: Literal["content"] = "content"
    text: str


class ErrorFrame(BaseModel):
    type: Literal["error"] = "error"
    error: str


StreamFrame = Annotated[Union[SourcesFrame, ContentFrame, ErrorFrame], Field(discriminator="type")]


def encode_frame(frame: Union[SourcesFrame, ContentFrame, ErrorFrame]) -> str:
    return f"data: {frame.model_dump_json()}\n\n"


def encode_done() -> str:
    return f"data: {DONE_SENTINEL}\n\n"


def data_payload(line: str) -> Optional[str]:
    """Payload of an SSE ``data:`` line, or None for comments, other fields and blank lines."""
    if not line.startswith(DATA_PREFIX):
        return None
    payload = line[len(DATA_PREFIX):]
    # a single leading space after the colon is part of the framing, not the payload
    return payload[1:] if payload.startswith(" ") else payload


class StreamState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    DONE = "done"
    ERRORED = "errored"


def stream_deadline(max_duration: Optional[float]) -> Optional[float]:
    """Monotonic deadline ``max_duration`` seconds from now; None when the budget is disabled."""
    if not max_duration or max_duration <= 0:
        return None
    return time.monotonic() + max_duration


async def _next_before(stream: AsyncIterator[str], deadline: Optional[float]) -> str:
    if deadline is None:
        return await stream.__anext__()
    remaining = deadline - time.monotonic()
    if remaining <= 0:
        raise asyncio.TimeoutError
    return await asyncio.wait_for(stream.__anext__(), timeout=remaining)


class StreamMultiplexer:
    """Re-frames a provider's delta stream as this service's SSE events.

    ``IDLE -> SENDING (optional sources) -> STREAMING -> DONE | ERRORED``.
    Every failure while draining the provider stream, including the overall
    duration budget running out, becomes a single in-band ``error`` frame;
    the sentinel is only sent after a clean exhaustion.

    The budget is either ``max_duration`` seconds from the first read or an
    absolute ``deadline`` shared with an earlier ``prime_stream`` call.
    """

    def __init__(
        self,
        stream: AsyncIterator[str],
        *,
        sources: Optional[Sequence[SourceRef]] = None,
        max_duration: Optional[float] = None,
        deadline: Optional[float] = None,
    ) -> None:
        self._stream = stream
        self._sources = list(sources or [])
        self._max_duration = max_duration if max_duration and max_duration > 0 else None
        self._deadline = deadline
        self.state = StreamState.IDLE

    async def frames(self) -> AsyncIterator[str]:
        if self.state is not StreamState.IDLE:
            raise RuntimeError("stream already consumed")
        self.state = StreamState.SENDING
        if self._sources:
            yield encode_frame(SourcesFrame(pages=self._sources))

        self.state = StreamState.STREAMING
        deadline = self._deadline if self._deadline is not None else stream_deadline(self._max_duration)
        try:
            while True:
                try:
                    delta = await _next_before(self._stream, deadline)
                except StopAsyncIteration:
                    break
                except asyncio.TimeoutError:
                    raise StreamError("stream exceeded its time budget") from None
                yield encode_frame(ContentFrame(text=delta))
        except Exception as e:
            self.state = StreamState.ERRORED
            logger.exception("streaming error occurred: %s", e)
            yield encode_frame(ErrorFrame(error=str(e) or type(e).__name__))
            return
        finally:
            await _aclose(self._stream)

        self.state = StreamState.DONE
        yield encode_done()


async def _aclose(stream: AsyncIterator[str]) -> None:
    aclose = getattr(stream, "aclose", None)
    if aclose is not None:
        await aclose()


async def prime_stream(stream: AsyncIterator[str], *, deadline: Optional[float] = None) -> AsyncIterator[str]:
    """Pull the first delta before any response is committed.

    Connection and status failures then surface to the caller as exceptions
    (and an HTTP error status) instead of as in-band error frames. A backend
    that produces no text before ``deadline`` raises ``UpstreamError``.
    """
    try:
        first = await _next_before(stream, deadline)
    except StopAsyncIteration:
        first = None
    except asyncio.TimeoutError:
        await _aclose(stream)
        raise UpstreamError("no output from the model before the stream time budget ran out") from None

    async def _chained() -> AsyncIterator[str]:
        try:
            if first is None:
                return
            yield first
            async for delta in stream:
                yield delta
        finally:
            await _aclose(stream)

    return _chained()


async def _until_disconnect(frames: AsyncIterator[str], request: Request) -> AsyncIterator[str]:
    try:
        async for frame in frames:
            if await request.is_disconnected():
                logger.info("client disconnected, stopping stream")
                break
            yield frame
    finally:
        await _aclose(frames)


def event_stream_response(
    stream: AsyncIterator[str],
    *,
    sources: Optional[Sequence[SourceRef]] = None,
    max_duration: Optional[float] = None,
    deadline: Optional[float] = None,
    request: Optional[Request] = None,
) -> StreamingResponse:
    frames = StreamMultiplexer(stream, sources=sources, max_duration=max_duration, deadline=deadline).frames()
    if request is not None:
        frames = _until_disconnect(frames, request)
    return StreamingResponse(frames, media_type="text/event-stream", headers=SSE_HEADERS)
