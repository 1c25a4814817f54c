# tests/test_api.py
import asyncio
import json
import pytest
from httpx import ASGITransport, AsyncClient
from typing import AsyncIterator, List, Optional

from gateway.client.http import GatewayClient, GatewayClientError
from gateway.core import config
from gateway.main import create_app
from gateway.providers.base import ConfigError, LLMProvider, UpstreamError
from gateway.providers.factory import AISettings, ApiKeys
from gateway.providers.types import GenerationResult, ImageResult
from gateway.services import ai_service
from gateway.services.retrieval import RetrievedPage
from gateway.services.settings import StaticSettingsStore


class FakeProvider(LLMProvider):
    name = "fake"

    def __init__(self, deltas=("Hel", "lo, ", "world"), fail_after: Optional[Exception] = None, fail_first=None):
        self.deltas = list(deltas)
        self.fail_after = fail_after
        self.fail_first = fail_first
        self.calls: List = []

    async def chat(self, messages, options=None):
        self.calls.append((list(messages), options))
        return GenerationResult(content="".join(self.deltas), model="fake-1")

    async def chat_stream(self, messages, options=None) -> AsyncIterator[str]:
        self.calls.append((list(messages), options))
        if self.fail_first is not None:
            raise self.fail_first
        for d in self.deltas:
            yield d
            await asyncio.sleep(0)
        if self.fail_after is not None:
            raise self.fail_after

    async def embed(self, text, options=None):
        return [float(len(text)), 1.0]


class FakeRetriever:
    def __init__(self, pages=None, fail=False):
        self.pages = pages or []
        self.fail = fail

    async def retrieve(self, query, *, embedder, current_page_id=None):
        if self.fail:
            raise RuntimeError("vector index offline")
        return self.pages


@pytest.fixture
def fake(monkeypatch):
    provider = FakeProvider()
    monkeypatch.setattr(ai_service, "create_provider_from_settings", lambda settings, keys: provider)
    return provider


def sse_events(body: str):
    out = []
    for block in body.split("\n\n"):
        if not block:
            continue
        assert block.startswith("data: ")
        payload = block[len("data: "):]
        out.append(payload if payload == "[DONE]" else json.loads(payload))
    return out


@pytest.mark.asyncio
async def test_health(client):
    r = await client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_providers_listing(client):
    r = await client.get("/ai/providers")
    assert r.status_code == 200
    names = {p["name"]: p for p in r.json()["providers"]}
    assert set(names) == {"openai", "anthropic", "ollama"}
    assert names["ollama"]["requires_api_key"] is False
    assert names["anthropic"]["default_embedding_model"] == "text-embedding-ada-002"


@pytest.mark.asyncio
async def test_chat_stream_wire_format(fake, settings_store):
    app = create_app(
        settings_store=settings_store,
        retriever=FakeRetriever([RetrievedPage(id="p1", title="Intro", content="Lore is a notes app.")]),
    )
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        r = await ac.post("/ai/chat", json={"message": "what is lore?"})

    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/event-stream")
    assert r.headers["cache-control"] == "no-cache"
    assert sse_events(r.text) == [
        {"type": "sources", "pages": [{"id": "p1", "title": "Intro"}]},
        {"type": "content", "text": "Hel"},
        {"type": "content", "text": "lo, "},
        {"type": "content", "text": "world"},
        "[DONE]",
    ]
    messages, options = fake.calls[-1]
    assert [m.role for m in messages] == ["system", "user"]
    assert "[Intro]" in messages[0].content
    assert options.model == "gpt-4o-mini"


@pytest.mark.asyncio
async def test_chat_stream_through_client(fake, settings_store):
    app = create_app(settings_store=settings_store, retriever=FakeRetriever([RetrievedPage(id="p1", title="Intro")]))
    seen = []
    async with GatewayClient("http://test", transport=ASGITransport(app=app)) as gc:
        acc = await gc.stream_chat("hi", on_frame=lambda f: seen.append(f.type))
    assert acc.text == "Hello, world"
    assert [s.id for s in acc.sources] == ["p1"]
    assert acc.done and acc.error is None
    assert seen == ["sources", "content", "content", "content"]


@pytest.mark.asyncio
async def test_chat_without_context_sends_no_sources(client, fake):
    r = await client.post("/ai/chat", json={"message": "hi"})
    events = sse_events(r.text)
    assert events[0]["type"] == "content"
    assert events[-1] == "[DONE]"


@pytest.mark.asyncio
async def test_retrieval_failure_does_not_break_chat(fake, settings_store, caplog_info):
    app = create_app(settings_store=settings_store, retriever=FakeRetriever(fail=True))
    async with GatewayClient("http://test", transport=ASGITransport(app=app)) as gc:
        acc = await gc.stream_chat("hi")
    assert acc.text == "Hello, world"
    assert "vector index offline" in caplog_info.text


@pytest.mark.asyncio
async def test_stream_mid_exception_becomes_error_frame(client, fake, caplog_info):
    # The provider yields, then fails: the client already has a 200, so the failure
    # arrives as one in-band error frame after the partial output and no [DONE].
    fake.deltas = ["partial "]
    fake.fail_after = UpstreamError("network dropped")

    r = await client.post("/ai/chat", json={"message": "stream please"})
    assert r.status_code == 200
    events = sse_events(r.text)
    assert events == [{"type": "content", "text": "partial "}, {"type": "error", "error": "network dropped"}]
    assert "streaming error occurred" in caplog_info.text


@pytest.mark.asyncio
async def test_client_keeps_partial_text_on_error_frame(fake, settings_store):
    fake.deltas = ["partial "]
    fake.fail_after = RuntimeError("network dropped")
    app = create_app(settings_store=settings_store)
    async with GatewayClient("http://test", transport=ASGITransport(app=app)) as gc:
        acc = await gc.stream_chat("hi")
    assert acc.text == "partial "
    assert acc.error == "network dropped"
    assert not acc.done


@pytest.mark.asyncio
async def test_upstream_failure_before_first_delta_is_502(client, fake):
    fake.fail_first = UpstreamError("OpenAI API error: 401 - bad key", status=401, body="bad key")
    r = await client.post("/ai/chat", json={"message": "hi"})
    assert r.status_code == 502
    assert r.json()["error"].startswith("OpenAI API error")
    assert r.json()["upstream_status"] == 401


@pytest.mark.asyncio
async def test_missing_credential_is_400_json():
    store = StaticSettingsStore(AISettings(provider="anthropic"), ApiKeys())
    app = create_app(settings_store=store)
    async with GatewayClient("http://test", transport=ASGITransport(app=app)) as gc:
        with pytest.raises(GatewayClientError) as exc:
            await gc.stream_chat("hi")
    assert exc.value.status_code == 400
    assert exc.value.message == "No API key configured for anthropic. Please add your API key in Settings."


@pytest.mark.asyncio
async def test_chat_validation_422(client):
    r = await client.post("/ai/chat", json={"message": ""})
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_continue_needs_context(client, fake):
    r = await client.post("/ai/continue", json={"context": "short"})
    assert r.status_code == 400
    assert "at least 10 characters" in r.json()["error"]


@pytest.mark.asyncio
async def test_continue_streams_with_tail_of_context(client, fake):
    context = "x" * 3000 + "THE END"
    r = await client.post("/ai/continue", json={"context": context, "page_title": "Draft"})
    assert sse_events(r.text)[-1] == "[DONE]"
    messages, options = fake.calls[-1]
    assert messages[1].content.startswith('Page: "Draft"')
    assert messages[1].content.endswith("THE END")
    assert len(messages[1].content) < 1600
    assert options.max_tokens == 1024


@pytest.mark.asyncio
async def test_inline(client, fake):
    r = await client.post("/ai/inline", json={"action": "summarize", "text": "long text"})
    assert r.status_code == 200
    assert r.json() == {"result": "Hello, world", "action": "summarize", "original_length": 9, "result_length": 12}


@pytest.mark.asyncio
async def test_inline_unknown_action_422(client, fake):
    r = await client.post("/ai/inline", json={"action": "shout", "text": "x"})
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_translate(client, fake):
    r = await client.post("/ai/translate", json={"text": "hello", "target_language": "french"})
    assert r.status_code == 200
    assert r.json()["target_language"] == "French"
    messages, options = fake.calls[-1]
    assert "French" in messages[0].content
    assert options.temperature == 0.3


@pytest.mark.asyncio
async def test_translate_unsupported_language(client, fake):
    r = await client.post("/ai/translate", json={"text": "hello", "target_language": "Klingon"})
    assert r.status_code == 400
    assert "English" in r.json()["supported_languages"]


@pytest.mark.asyncio
async def test_translate_languages(client):
    r = await client.get("/ai/translate")
    assert "Japanese" in r.json()["languages"]


@pytest.mark.asyncio
async def test_brainstorm(client, fake):
    r = await client.post("/ai/brainstorm", json={"topic": "garden ideas"})
    assert r.status_code == 200
    assert r.json() == {"ideas": "Hello, world", "topic": "garden ideas"}
    assert (await client.post("/ai/brainstorm", json={})).status_code == 400


@pytest.mark.asyncio
async def test_provider_connection_test_reports_inline(client, monkeypatch):
    async def broken(**kwargs):
        raise ConfigError("No API key configured for openai")

    monkeypatch.setattr(ai_service, "check_connection", broken)
    r = await client.post("/ai/test", json={"provider": "openai"})
    assert r.status_code == 200
    assert r.json()["success"] is False
    assert "No API key configured" in r.json()["error"]


@pytest.mark.asyncio
async def test_provider_connection_test_ok(client, monkeypatch):
    async def ok(**kwargs):
        return GenerationResult(content="Connection test successful")

    monkeypatch.setattr(ai_service, "check_connection", ok)
    r = await client.post("/ai/test", json={"provider": "ollama", "model": "llama3"})
    assert r.json() == {"success": True, "message": "Connection test successful", "error": None}


@pytest.mark.asyncio
async def test_embed_endpoint_chunks(client, fake):
    r = await client.post("/ai/embed", json={"text": "a short note"})
    assert r.status_code == 200
    chunks = r.json()["chunks"]
    assert len(chunks) == 1
    assert chunks[0]["embedding"] == [12.0, 1.0]


@pytest.mark.asyncio
async def test_embed_with_anthropic_and_no_openai_key_is_400():
    store = StaticSettingsStore(AISettings(provider="anthropic"), ApiKeys(anthropic="ak"))
    app = create_app(settings_store=store)
    async with GatewayClient("http://test", transport=ASGITransport(app=app)) as gc:
        with pytest.raises(GatewayClientError) as exc:
            await gc.embed("some text")
    assert exc.value.status_code == 400
    assert "OpenAI-compatible credential" in exc.value.message


NOTE = "React hooks let function components hold state and run effects without classes."


@pytest.mark.asyncio
async def test_suggest_tags(client, fake):
    fake.deltas = ['Tags: ["React", "frontend", "hooks", "x"]']
    r = await client.post("/ai/suggest-tags", json={"content": NOTE, "existing_tags": ["react", "Hooks"]})
    assert r.status_code == 200
    assert r.json() == {
        "suggestions": [
            {"name": "react", "is_existing": True},
            {"name": "frontend", "is_existing": False},
            {"name": "hooks", "is_existing": True},
        ],
        "message": None,
    }
    messages, options = fake.calls[-1]
    assert "react, Hooks" in messages[0].content
    assert messages[1].content == NOTE
    assert options.max_tokens == 256
    assert options.temperature == 0.5


@pytest.mark.asyncio
async def test_suggest_tags_short_content_skips_model(client, fake):
    r = await client.post("/ai/suggest-tags", json={"content": "too short"})
    assert r.status_code == 200
    assert r.json()["suggestions"] == []
    assert r.json()["message"] == "Content too short for tag suggestions"
    assert fake.calls == []


@pytest.mark.asyncio
async def test_suggest_tags_through_client(fake, settings_store):
    fake.deltas = ["notes, productivity"]
    app = create_app(settings_store=settings_store)
    async with GatewayClient("http://test", transport=ASGITransport(app=app)) as gc:
        out = await gc.suggest_tags(NOTE)
    assert [s["name"] for s in out["suggestions"]] == ["notes", "productivity"]


@pytest.mark.asyncio
async def test_image(client, monkeypatch):
    seen = {}

    async def fake_generate(self, prompt, *, size="1024x1024", model=None):
        seen.update(key=self._api_key, prompt=prompt, size=size)
        return ImageResult(url="https://img.example.test/a.png", revised_prompt="a red fox")

    monkeypatch.setattr(ai_service.OpenAIProvider, "generate_image", fake_generate)
    r = await client.post("/ai/image", json={"prompt": "a fox", "size": "1024x1792"})
    assert r.status_code == 200
    assert r.json() == {
        "url": "https://img.example.test/a.png",
        "prompt": "a fox",
        "revised_prompt": "a red fox",
        "temporary": True,
    }
    assert seen == {"key": "sk-test", "prompt": "a fox", "size": "1024x1792"}


@pytest.mark.asyncio
async def test_image_prompt_too_short(client):
    r = await client.post("/ai/image", json={"prompt": " a "})
    assert r.status_code == 400
    assert r.json()["error"] == "Prompt is required (min 3 characters)"


@pytest.mark.asyncio
async def test_image_bad_size_422(client):
    r = await client.post("/ai/image", json={"prompt": "a fox", "size": "10x10"})
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_image_requires_openai_key():
    store = StaticSettingsStore(AISettings(provider="anthropic"), ApiKeys(anthropic="ak"))
    app = create_app(settings_store=store)
    async with GatewayClient("http://test", transport=ASGITransport(app=app)) as gc:
        with pytest.raises(GatewayClientError) as exc:
            await gc.generate_image("a fox")
    assert exc.value.status_code == 400
    assert exc.value.message.startswith("OpenAI API key required for image generation")


class SilentProvider(FakeProvider):
    """Keeps the connection open without ever producing text."""

    async def chat_stream(self, messages, options=None):
        await asyncio.Event().wait()
        yield "never"


@pytest.mark.asyncio
async def test_first_read_counts_against_stream_budget(client, monkeypatch):
    monkeypatch.setattr(ai_service, "create_provider_from_settings", lambda settings, keys: SilentProvider())
    monkeypatch.setattr(config, "STREAM_MAX_DURATION", 0.05)
    r = await client.post("/ai/chat", json={"message": "hi"})
    assert r.status_code == 502
    assert "time budget" in r.json()["error"]
