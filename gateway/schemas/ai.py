from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from gateway.services.embeddings import ChunkEmbedding


class ChatRequest(BaseModel):
    message: str = Field(min_length=1, max_length=8000)
    current_page_id: Optional[str] = None


class ContinueRequest(BaseModel):
    context: str = Field(max_length=100_000)
    page_title: Optional[str] = None


class InlineRequest(BaseModel):
    action: Literal["expand", "summarize", "rewrite"]
    text: str = Field(min_length=1)


class InlineResponse(BaseModel):
    result: str
    action: str
    original_length: int
    result_length: int


class TranslateRequest(BaseModel):
    text: str = Field(min_length=1)
    target_language: str = Field(min_length=1)


class TranslateResponse(BaseModel):
    translation: str
    target_language: str
    original_length: int
    translated_length: int


class BrainstormRequest(BaseModel):
    topic: Optional[str] = None
    context: Optional[str] = None
    page_title: Optional[str] = None


class BrainstormResponse(BaseModel):
    ideas: str
    topic: Optional[str] = None


class ConnectionTestRequest(BaseModel):
    provider: str
    model: Optional[str] = None
    base_url: Optional[str] = None


class ConnectionTestResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None


class EmbedRequest(BaseModel):
    text: str = Field(min_length=1)
    max_tokens: int = Field(default=1000, gt=0, le=8000)


class EmbedResponse(BaseModel):
    chunks: List[ChunkEmbedding]


class SuggestTagsRequest(BaseModel):
    content: str = Field(min_length=1)
    page_id: Optional[str] = None
    # the caller's tag vocabulary; suggestions that match it are flagged
    existing_tags: List[str] = Field(default_factory=list)


class TagSuggestion(BaseModel):
    name: str
    is_existing: bool


class SuggestTagsResponse(BaseModel):
    suggestions: List[TagSuggestion]
    message: Optional[str] = None


class ImageRequest(BaseModel):
    prompt: str
    size: Literal["1024x1024", "1792x1024", "1024x1792"] = "1024x1024"


class ImageResponse(BaseModel):
    url: str
    prompt: str
    revised_prompt: Optional[str] = None
    # upstream URLs expire; nothing here persists the image
    temporary: bool = True
