from fastapi import APIRouter

from gateway.providers.types import DEFAULT_EMBEDDING_MODELS, DEFAULT_MODELS, MODEL_OPTIONS, ProviderKind

router = APIRouter(prefix="/ai", tags=["providers"])


@router.get("/providers")
def list_providers() -> dict:
    return {
        "providers": [
            {
                "name": kind.value,
                "requires_api_key": kind is not ProviderKind.OLLAMA,
                "default_model": DEFAULT_MODELS[kind],
                "default_embedding_model": DEFAULT_EMBEDDING_MODELS[kind],
                "models": MODEL_OPTIONS[kind],
            }
            for kind in ProviderKind
        ]
    }
