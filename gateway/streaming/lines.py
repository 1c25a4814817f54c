"""Newline reassembly for byte streams whose reads may split a line anywhere.

Both the local backend's NDJSON stream and this service's own SSE stream are
line oriented, but a network read can end in the middle of a line, or even in
the middle of a multi-byte UTF-8 sequence. ``LineBuffer`` owns that partial
state explicitly so the parsing loops stay stateless.
"""

import codecs
from typing import List, Union


class LineBuffer:
    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._pending = ""

    @property
    def pending(self) -> str:
        return self._pending

    def feed(self, chunk: Union[bytes, str]) -> List[str]:
        """Add one read's worth of data; return every line it completed.

        The trailing fragment (anything after the last ``\\n``) is held back for
        the next call instead of being returned.
        """
        text = chunk if isinstance(chunk, str) else self._decoder.decode(chunk)
        if not text:
            return []
        self._pending += text
        *lines, self._pending = self._pending.split("\n")
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> List[str]:
        """End of stream: return the unterminated tail, if any."""
        tail = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        tail = tail.rstrip("\r")
        return [tail] if tail.strip() else []
