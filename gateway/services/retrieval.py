# context-retrieval collaborator
# ranking/search belongs to the storage layer; this service only consumes ranked pages

from typing import List, Optional, Protocol

from pydantic import BaseModel

from gateway.providers.base import LLMProvider


class RetrievedPage(BaseModel):
    id: str
    title: str
    content: str = ""
    similarity: Optional[float] = None


class ContextRetriever(Protocol):
    async def retrieve(
        self,
        query: str,
        *,
        embedder: Optional[LLMProvider],
        current_page_id: Optional[str] = None,
    ) -> List[RetrievedPage]: ...


class NullRetriever:
    """No knowledge base attached: chats run without context or sources."""

    async def retrieve(
        self,
        query: str,
        *,
        embedder: Optional[LLMProvider],
        current_page_id: Optional[str] = None,
    ) -> List[RetrievedPage]:
        return []
