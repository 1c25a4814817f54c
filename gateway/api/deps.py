from fastapi import Request

from gateway.services.retrieval import ContextRetriever
from gateway.services.settings import SettingsStore


def get_settings_store(request: Request) -> SettingsStore:
    return request.app.state.settings_store


def get_retriever(request: Request) -> ContextRetriever:
    return request.app.state.retriever
