"""Client-side reader for the gateway's SSE stream.

Reads arrive as arbitrary byte slices; ``SSEDecoder`` reassembles them into
complete ``data:`` payloads and ``consume_event_stream`` dispatches each one
into a ``StreamAccumulator``. Both keep their partial state in explicit
objects, so an accumulator belongs to exactly one request.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import AsyncIterable, Awaitable, Callable, List, Optional, Union

from pydantic import TypeAdapter, ValidationError

from gateway.streaming.lines import LineBuffer
from gateway.streaming.sse import (
    DONE_SENTINEL,
    ContentFrame,
    ErrorFrame,
    SourceRef,
    SourcesFrame,
    StreamFrame,
    data_payload,
)

logger = logging.getLogger(__name__)

_frame_adapter: TypeAdapter = TypeAdapter(StreamFrame)

TRUNCATED_STREAM = "stream ended before [DONE]"

Frame = Union[SourcesFrame, ContentFrame, ErrorFrame]
FrameCallback = Callable[[Frame], None]


@dataclass
class StreamAccumulator:
    sources: List[SourceRef] = field(default_factory=list)
    parts: List[str] = field(default_factory=list)
    # sources/error frames in arrival order
    events: List[Frame] = field(default_factory=list)
    error: Optional[str] = None
    done: bool = False
    aborted: bool = False

    @property
    def text(self) -> str:
        return "".join(self.parts)

    @property
    def finished(self) -> bool:
        return self.done or self.error is not None


class SSEDecoder:
    def __init__(self) -> None:
        self._lines = LineBuffer()

    def feed(self, chunk: bytes) -> List[str]:
        return self._payloads(self._lines.feed(chunk))

    def flush(self) -> List[str]:
        return self._payloads(self._lines.flush())

    @staticmethod
    def _payloads(lines: List[str]) -> List[str]:
        out = []
        for line in lines:
            payload = data_payload(line)
            if payload is not None:
                out.append(payload)
        return out


def apply_payload(payload: str, acc: StreamAccumulator, on_frame: Optional[FrameCallback] = None) -> bool:
    """Fold one ``data:`` payload into ``acc``. Returns False once the stream is finished."""
    if payload.strip() == DONE_SENTINEL:
        acc.done = True
        return False
    try:
        frame = _frame_adapter.validate_json(payload)
    except ValidationError:
        # one bad line never aborts the stream
        logger.debug("ignoring malformed stream frame: %r", payload[:200])
        return True

    if isinstance(frame, SourcesFrame):
        acc.sources = list(frame.pages)
        acc.events.append(frame)
    elif isinstance(frame, ContentFrame):
        acc.parts.append(frame.text)
    elif isinstance(frame, ErrorFrame):
        acc.error = frame.error
        acc.events.append(frame)

    if on_frame is not None:
        on_frame(frame)
    return not isinstance(frame, ErrorFrame)


async def consume_event_stream(
    chunks: AsyncIterable[bytes],
    acc: StreamAccumulator,
    on_frame: Optional[FrameCallback] = None,
) -> StreamAccumulator:
    """Read ``chunks`` to the first terminal frame.

    A body that ends with neither ``[DONE]`` nor an ``error`` frame is a
    truncated stream and is recorded on ``acc`` as an error.
    """
    decoder = SSEDecoder()
    async for chunk in chunks:
        for payload in decoder.feed(chunk):
            if not apply_payload(payload, acc, on_frame):
                return acc
    for payload in decoder.flush():
        if not apply_payload(payload, acc, on_frame):
            return acc
    if not acc.finished:
        logger.warning("event stream ended without a terminal frame")
        frame = ErrorFrame(error=TRUNCATED_STREAM)
        acc.error = frame.error
        acc.events.append(frame)
        if on_frame is not None:
            on_frame(frame)
    return acc


class StreamSurface:
    """One logical UI surface (a chat sidebar, an editor command...).

    Starting a request on a surface aborts the surface's previous in-flight
    request and nothing else. An aborted request resolves to its partial
    accumulator with ``aborted`` set instead of raising.
    """

    def __init__(self) -> None:
        self._task: Optional[asyncio.Task] = None

    @property
    def busy(self) -> bool:
        return self._task is not None and not self._task.done()

    def abort(self) -> None:
        if self.busy:
            self._task.cancel()

    async def run(self, reader: Callable[[StreamAccumulator], Awaitable[StreamAccumulator]]) -> StreamAccumulator:
        self.abort()
        acc = StreamAccumulator()
        task = asyncio.ensure_future(reader(acc))
        self._task = task
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            # the caller itself was cancelled: take the read loop down too
            task.cancel()
            raise
        finally:
            if self._task is task:
                self._task = None

        if task.cancelled():
            acc.aborted = True
            return acc
        return task.result()
