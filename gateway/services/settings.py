# credential/settings lookup collaborator
# persistence of per-user settings lives outside this service; the shipped store is env-backed

from typing import Protocol

from gateway.core import config
from gateway.providers.factory import AISettings, ApiKeys


class SettingsStore(Protocol):
    async def get_settings(self) -> AISettings: ...

    async def get_api_keys(self) -> ApiKeys: ...


class StaticSettingsStore:
    def __init__(self, settings: AISettings, keys: ApiKeys) -> None:
        self._settings = settings
        self._keys = keys

    async def get_settings(self) -> AISettings:
        return self._settings

    async def get_api_keys(self) -> ApiKeys:
        return self._keys


def settings_from_env() -> StaticSettingsStore:
    return StaticSettingsStore(
        AISettings(provider=config.LLM_PROVIDER, model=config.LLM_MODEL, base_url=config.LLM_BASE_URL),
        ApiKeys(openai=config.OPENAI_API_KEY, anthropic=config.ANTHROPIC_API_KEY),
    )
