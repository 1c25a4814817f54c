# tests/test_config.py
from importlib import reload

import pytest

import gateway.core.config as cfg_mod


@pytest.fixture
def fresh_config(monkeypatch):
    yield monkeypatch
    # leave the module as the rest of the suite expects it
    monkeypatch.undo()
    reload(cfg_mod)


def test_defaults_present():
    reload(cfg_mod)
    assert cfg_mod.TEMPERATURE is not None
    assert cfg_mod.MAX_TOKENS > 0
    assert cfg_mod.STREAM_TIMEOUT > 0
    assert cfg_mod.ANTHROPIC_VERSION == "2023-06-01"


def test_numeric_parsing(fresh_config):
    fresh_config.setenv("TEMPERATURE", "0.2")
    fresh_config.setenv("MAX_TOKENS", "512")
    fresh_config.setenv("STREAM_MAX_DURATION", "0")
    reload(cfg_mod)
    assert cfg_mod.TEMPERATURE == 0.2
    assert cfg_mod.MAX_TOKENS == 512
    assert cfg_mod.STREAM_MAX_DURATION == 0


def test_empty_keys_read_as_missing(fresh_config):
    fresh_config.setenv("OPENAI_API_KEY", "")
    fresh_config.setenv("LLM_MODEL", "")
    reload(cfg_mod)
    assert cfg_mod.OPENAI_API_KEY is None
    assert cfg_mod.LLM_MODEL is None


def test_cors_origins_list(fresh_config):
    fresh_config.setenv("CORS_ORIGINS", "http://localhost:3000, https://notes.example.com,")
    fresh_config.setenv("LOG_LEVEL", "debug")
    reload(cfg_mod)
    assert cfg_mod.CORS_ORIGINS == ["http://localhost:3000", "https://notes.example.com"]
    assert cfg_mod.LOG_LEVEL == "DEBUG"
