"""Text chunking and embedding helpers used by the embed endpoint and retrieval collaborators."""

import math
from typing import List, Optional, Sequence

from pydantic import BaseModel

from gateway.providers.base import LLMProvider
from gateway.providers.types import EmbeddingOptions

CHARS_PER_TOKEN = 4
SENTENCE_ENDS = (". ", "! ", "? ", ".\n", "!\n", "?\n")


class ChunkEmbedding(BaseModel):
    chunk_index: int
    content: str
    embedding: List[float]


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def chunk_text(text: str, max_tokens: int = 1000, overlap: int = 100) -> List[str]:
    """Split ``text`` into chunks of roughly ``max_tokens``, preferring sentence then paragraph breaks.

    Consecutive chunks share ``overlap`` tokens of context.
    """
    max_chars = max_tokens * CHARS_PER_TOKEN
    overlap_chars = overlap * CHARS_PER_TOKEN
    if len(text) <= max_chars:
        return [text]

    chunks: List[str] = []
    start = 0
    while start < len(text):
        end = start + max_chars
        if end >= len(text):
            chunks.append(text[start:].strip())
            break

        # look for a break in the last 200 chars of the window
        search_start = max(start + max_chars - 200, start)
        segment = text[search_start:end]

        best = -1
        for ending in SENTENCE_ENDS:
            idx = segment.rfind(ending)
            if idx != -1:
                best = max(best, search_start + idx + len(ending))
        if best == -1:
            para = segment.rfind("\n\n")
            if para != -1:
                best = search_start + para + 2
        if best == -1 or best <= start:
            best = end

        chunks.append(text[start:best].strip())
        next_start = best - overlap_chars
        start = next_start if next_start > start else best
    return [c for c in chunks if c]


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    if len(a) != len(b):
        raise ValueError("Embeddings must have same dimensions")
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


async def generate_embeddings(
    provider: LLMProvider,
    text: str,
    *,
    max_tokens: int = 1000,
    options: Optional[EmbeddingOptions] = None,
) -> List[ChunkEmbedding]:
    # one embed request in flight at a time
    results: List[ChunkEmbedding] = []
    for i, chunk in enumerate(chunk_text(text, max_tokens)):
        embedding = await provider.embed(chunk, options)
        results.append(ChunkEmbedding(chunk_index=i, content=chunk, embedding=embedding))
    return results
