# centralized configuration loader
# runs load_dotenv() to read .env
# decouples code from environment so providers/hosts/limits change without code change

import os
from dotenv import load_dotenv

load_dotenv()


def _float(name: str, default: str) -> float:
    return float(os.getenv(name, default))


# Provider selection (the persisted "user settings" of a single-tenant deployment)
LLM_PROVIDER = os.getenv("LLM_PROVIDER", "ollama")
LLM_MODEL = os.getenv("LLM_MODEL") or None
LLM_BASE_URL = os.getenv("LLM_BASE_URL") or None

# Stored credentials
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY") or None
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY") or None

# Backend endpoints
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
ANTHROPIC_BASE_URL = os.getenv("ANTHROPIC_BASE_URL", "https://api.anthropic.com")
ANTHROPIC_VERSION = os.getenv("ANTHROPIC_VERSION", "2023-06-01")
OLLAMA_HOST = os.getenv("OLLAMA_HOST", "http://localhost:11434")

# Generation defaults
TEMPERATURE = _float("TEMPERATURE", "0.7")
MAX_TOKENS = int(os.getenv("MAX_TOKENS", "2048"))

# Timeouts (seconds); STREAM_MAX_DURATION=0 disables the overall stream budget
CONNECT_TIMEOUT = _float("CONNECT_TIMEOUT", "10")
REQUEST_TIMEOUT = _float("REQUEST_TIMEOUT", "60")
STREAM_TIMEOUT = _float("STREAM_TIMEOUT", "120")
STREAM_MAX_DURATION = _float("STREAM_MAX_DURATION", "300")

# Server
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
