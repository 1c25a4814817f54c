import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from gateway.api.deps import get_retriever, get_settings_store
from gateway.core import config
from gateway.providers.base import ProviderError
from gateway.schemas.ai import (
    BrainstormRequest,
    BrainstormResponse,
    ChatRequest,
    ConnectionTestRequest,
    ConnectionTestResponse,
    ContinueRequest,
    EmbedRequest,
    EmbedResponse,
    ImageRequest,
    ImageResponse,
    InlineRequest,
    InlineResponse,
    SuggestTagsRequest,
    SuggestTagsResponse,
    TagSuggestion,
    TranslateRequest,
    TranslateResponse,
)
from gateway.services import ai_service, prompts
from gateway.services.retrieval import ContextRetriever
from gateway.services.settings import SettingsStore
from gateway.streaming.sse import event_stream_response, stream_deadline

router = APIRouter(prefix="/ai", tags=["ai"])
logger = logging.getLogger(__name__)

MIN_CONTINUE_CONTEXT = 10
MIN_TAG_CONTENT = 50
MIN_IMAGE_PROMPT = 3


def _bad_request(message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": message, **extra})


# --- streaming endpoints: errors after the first byte travel as in-band error frames ---

@router.post("/chat")
async def chat(
    req: ChatRequest,
    request: Request,
    store: SettingsStore = Depends(get_settings_store),
    retriever: ContextRetriever = Depends(get_retriever),
):
    # one budget covers the first read and the rest of the stream
    deadline = stream_deadline(config.STREAM_MAX_DURATION)
    stream, sources = await ai_service.prepare_chat_stream(
        message=req.message,
        current_page_id=req.current_page_id,
        store=store,
        retriever=retriever,
        deadline=deadline,
    )
    return event_stream_response(stream, sources=sources, deadline=deadline, request=request)


@router.post("/continue")
async def continue_writing(
    req: ContinueRequest,
    request: Request,
    store: SettingsStore = Depends(get_settings_store),
):
    if len(req.context.strip()) < MIN_CONTINUE_CONTEXT:
        return _bad_request("Need more context to continue writing (at least 10 characters)")
    deadline = stream_deadline(config.STREAM_MAX_DURATION)
    stream = await ai_service.prepare_continue_stream(
        context=req.context, page_title=req.page_title, store=store, deadline=deadline
    )
    return event_stream_response(stream, deadline=deadline, request=request)


# --- single round-trip endpoints ---

@router.post("/inline", response_model=InlineResponse)
async def inline(req: InlineRequest, store: SettingsStore = Depends(get_settings_store)):
    result = await ai_service.run_inline(action=req.action, text=req.text, store=store)
    return InlineResponse(
        result=result.content,
        action=req.action,
        original_length=len(req.text),
        result_length=len(result.content),
    )


@router.get("/translate")
def supported_languages() -> dict:
    return {"languages": prompts.SUPPORTED_LANGUAGES}


@router.post("/translate", response_model=TranslateResponse)
async def translate(req: TranslateRequest, store: SettingsStore = Depends(get_settings_store)):
    language = prompts.normalize_language(req.target_language)
    if language is None:
        return _bad_request(
            f"Unsupported language: {req.target_language}",
            supported_languages=prompts.SUPPORTED_LANGUAGES,
        )
    result = await ai_service.run_translate(text=req.text, language=language, store=store)
    return TranslateResponse(
        translation=result.content,
        target_language=language,
        original_length=len(req.text),
        translated_length=len(result.content),
    )


@router.post("/brainstorm", response_model=BrainstormResponse)
async def brainstorm(req: BrainstormRequest, store: SettingsStore = Depends(get_settings_store)):
    if not req.topic and not req.context:
        return _bad_request("Please provide a topic or some context to brainstorm about")
    result = await ai_service.run_brainstorm(
        topic=req.topic, context=req.context, page_title=req.page_title, store=store
    )
    return BrainstormResponse(ideas=result.content, topic=req.topic)


@router.post("/test", response_model=ConnectionTestResponse)
async def check_provider(req: ConnectionTestRequest, store: SettingsStore = Depends(get_settings_store)):
    # reports failures in the body so the settings form can show them inline
    try:
        result = await ai_service.check_connection(
            provider=req.provider, model=req.model, base_url=req.base_url, store=store
        )
    except ProviderError as e:
        logger.info("connection test for %s failed: %s", req.provider, e)
        return ConnectionTestResponse(success=False, error=f"Provider test failed: {e}")
    return ConnectionTestResponse(success=True, message=result.content)


@router.post("/embed", response_model=EmbedResponse)
async def embed(req: EmbedRequest, store: SettingsStore = Depends(get_settings_store)):
    chunks = await ai_service.embed_text(text=req.text, max_tokens=req.max_tokens, store=store)
    return EmbedResponse(chunks=chunks)


@router.post("/suggest-tags", response_model=SuggestTagsResponse)
async def suggest_tags(req: SuggestTagsRequest, store: SettingsStore = Depends(get_settings_store)):
    if len(req.content.strip()) < MIN_TAG_CONTENT:
        return SuggestTagsResponse(suggestions=[], message="Content too short for tag suggestions")
    names = await ai_service.suggest_tags(content=req.content, existing_tags=req.existing_tags, store=store)
    existing = {t.strip().lower() for t in req.existing_tags}
    return SuggestTagsResponse(suggestions=[TagSuggestion(name=n, is_existing=n in existing) for n in names])


@router.post("/image", response_model=ImageResponse)
async def generate_image(req: ImageRequest, store: SettingsStore = Depends(get_settings_store)):
    if len(req.prompt.strip()) < MIN_IMAGE_PROMPT:
        return _bad_request("Prompt is required (min 3 characters)")
    image = await ai_service.generate_image(prompt=req.prompt, size=req.size, store=store)
    return ImageResponse(url=image.url, prompt=req.prompt, revised_prompt=image.revised_prompt)
