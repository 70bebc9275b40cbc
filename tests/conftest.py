import os
import sys
import tempfile
from pathlib import Path

import pytest

# Allow imports from the project root and keep test logs out of the repo
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="gateway-logs-"))

from core.config import AppSettings, Config, ProviderRegistry  # noqa: E402

GATEWAY_ENV_VARS = [
    "OPENAI_API_KEY", "ANTHROPIC_API_KEY", "OPENROUTER_API_KEY",
    "OLLAMA_ENABLED", "OLLAMA_BASE_URL", "OLLAMA_DEFAULT_MODEL",
    "LMSTUDIO_ENABLED", "LMSTUDIO_BASE_URL", "LMSTUDIO_DEFAULT_MODEL",
    "AI_GATEWAY_BASE_URL", "AI_GATEWAY_API_KEY",
    "DEFAULT_ACCESS_TOKEN", "MODELS_CATALOG_PATH", "API_VERSION",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's real credentials out of every test."""
    for var in GATEWAY_ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def test_settings():
    """Settings with OpenAI and Ollama enabled and nothing read from .env."""
    return AppSettings(
        _env_file=None,
        OPENAI_API_KEY="sk-test",
        OPENAI_BASE_URL="https://openai.test/v1",
        OLLAMA_BASE_URL="http://ollama.test",
    )


@pytest.fixture
def test_config(test_settings):
    return Config(test_settings)


@pytest.fixture
def registry(test_settings):
    return ProviderRegistry.from_settings(test_settings)
