# tests/conftest.py
import os
import logging
import pytest
import pytest_asyncio
import httpx
from httpx import AsyncClient, ASGITransport

# Ensure test-friendly env before gateway.core.config is imported
os.environ.setdefault("LLM_PROVIDER", "ollama")
os.environ.setdefault("OLLAMA_HOST", "http://127.0.0.1:11434")
os.environ.setdefault("STREAM_MAX_DURATION", "30")
os.environ["OPENAI_API_KEY"] = ""
os.environ["ANTHROPIC_API_KEY"] = ""

# IMPORTANT: import the app after envs are set
from gateway.main import create_app
from gateway.providers.factory import AISettings, ApiKeys
from gateway.services.settings import StaticSettingsStore


class ChunkedStream(httpx.AsyncByteStream):
    """Response body delivered in exactly the given byte slices."""

    def __init__(self, chunks):
        self._chunks = list(chunks)

    async def __aiter__(self):
        for chunk in self._chunks:
            yield chunk


@pytest.fixture
def chunked():
    return ChunkedStream


@pytest.fixture
def settings_store():
    return StaticSettingsStore(
        AISettings(provider="openai", model="gpt-4o-mini"),
        ApiKeys(openai="sk-test", anthropic="ak-test"),
    )


@pytest_asyncio.fixture
async def app(settings_store):
    return create_app(settings_store=settings_store)


@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def caplog_info(caplog):
    caplog.set_level(logging.INFO)
    return caplog
