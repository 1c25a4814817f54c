# shared vocabulary every provider speaks: role-tagged messages, generation options,
# and the normalized result shape returned by chat()

from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

Role = Literal["system", "user", "assistant"]


class ProviderKind(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    OLLAMA = "ollama"


class Message(BaseModel):
    role: Role
    content: str


class GenerationOptions(BaseModel):
    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = Field(default=None, gt=0)
    top_p: Optional[float] = None
    frequency_penalty: Optional[float] = None
    presence_penalty: Optional[float] = None
    stop: Optional[List[str]] = None


class EmbeddingOptions(BaseModel):
    model: Optional[str] = None


class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class GenerationResult(BaseModel):
    content: str
    usage: Optional[Usage] = None
    model: Optional[str] = None
    finish_reason: Optional[str] = None


class ImageResult(BaseModel):
    url: str
    revised_prompt: Optional[str] = None


DEFAULT_MODELS = {
    ProviderKind.OPENAI: "gpt-4",
    ProviderKind.ANTHROPIC: "claude-3-sonnet-20240229",
    ProviderKind.OLLAMA: "llama3",
}

DEFAULT_IMAGE_MODEL = "dall-e-3"

# Anthropic has no embedding endpoint; it borrows OpenAI's model through delegation
DEFAULT_EMBEDDING_MODELS = {
    ProviderKind.OPENAI: "text-embedding-ada-002",
    ProviderKind.ANTHROPIC: "text-embedding-ada-002",
    ProviderKind.OLLAMA: "nomic-embed-text",
}

MODEL_OPTIONS = {
    ProviderKind.OPENAI: ["gpt-4", "gpt-4-turbo", "gpt-4o", "gpt-4o-mini", "gpt-3.5-turbo"],
    ProviderKind.ANTHROPIC: [
        "claude-3-opus-20240229",
        "claude-3-sonnet-20240229",
        "claude-3-haiku-20240307",
        "claude-3-5-sonnet-20241022",
    ],
    ProviderKind.OLLAMA: ["llama3", "llama3.1", "mistral", "mixtral", "codellama", "gemma"],
}
