import sys
from pathlib import Path

import pytest

# To allow imports from core
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from core.config import AppSettings, Config, Provider, ProviderRegistry, load_models_catalog
from core.errors import ConfigError


# --- Test Setup ---

@pytest.fixture
def env_file(tmp_path):
    env = tmp_path / ".env"
    env.write_text(
        "ANTHROPIC_API_KEY=ak-from-file\n"
        "LMSTUDIO_BASE_URL=http://127.0.0.1:1234/\n"
        "LMSTUDIO_TIMEOUT=5000\n"
        "LOG_LEVEL=DEBUG\n",
        encoding="utf-8",
    )
    return env


@pytest.fixture
def catalog_file(tmp_path):
    path = tmp_path / "models.yml"
    path.write_text("""
providers:
  ollama:
    enabled: true
    models:
      - name: llama3.2:latest
        capabilities: [summarize, keywords]
      - name: llava:7b
        capabilities: [vision]
        notes: small vision model
  openai:
    enabled: true
    models:
      - name: gpt-4.1-nano
        capabilities: [summarize]
  lmstudio:
    enabled: false
    models:
      - name: hidden
        capabilities: [summarize]
""", encoding="utf-8")
    return path


# --- Tests ---

class TestAppSettings:
    def test_defaults(self):
        settings = AppSettings(_env_file=None)

        assert settings.API_VERSION == "v1"
        assert settings.PORT == 3000
        assert settings.DEFAULT_ACCESS_TOKEN is None
        assert settings.OPENAI_MODEL == "gpt-4.1-nano"

    def test_env_file_is_read(self, env_file):
        settings = AppSettings(_env_file=env_file)

        assert settings.ANTHROPIC_API_KEY == "ak-from-file"
        assert settings.LOG_LEVEL == "DEBUG"

    def test_environment_overrides_env_file(self, env_file, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "ak-from-env")

        assert AppSettings(_env_file=env_file).ANTHROPIC_API_KEY == "ak-from-env"

    def test_log_dir_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LOG_DIR", str(tmp_path))

        assert AppSettings(_env_file=None).LOG_DIR == str(tmp_path)


class TestProviderRegistry:
    def test_nothing_enabled_without_credentials(self):
        registry = ProviderRegistry.from_settings(AppSettings(_env_file=None))

        assert [cfg.name for cfg in registry] == [
            Provider.OPENAI, Provider.ANTHROPIC, Provider.OLLAMA,
            Provider.OPENROUTER, Provider.LMSTUDIO, Provider.AIGATEWAY,
        ]
        assert not any(cfg.enabled for cfg in registry)
        assert registry.get_primary_service() is None

    def test_credentials_and_urls_enable_providers(self, env_file):
        registry = ProviderRegistry.from_settings(AppSettings(_env_file=env_file))

        assert registry.is_service_enabled("anthropic")
        assert registry.is_service_enabled("lmstudio")
        assert not registry.is_service_enabled("openai")
        assert registry.get_primary_service().name is Provider.ANTHROPIC

        lmstudio = registry.get_service_config("LMStudio")
        assert lmstudio.base_url == "http://127.0.0.1:1234"
        assert lmstudio.timeout == 5.0

    def test_priority_order(self, test_settings):
        registry = ProviderRegistry.from_settings(test_settings)

        assert registry.get_primary_service().name is Provider.OPENAI
        assert registry.get_service_config("ollama").base_url == "http://ollama.test"

    def test_ollama_enabled_flag_uses_localhost(self):
        registry = ProviderRegistry.from_settings(AppSettings(_env_file=None, OLLAMA_ENABLED=True))

        ollama = registry.get_service_config(Provider.OLLAMA)
        assert ollama.enabled
        assert ollama.base_url == "http://localhost:11434"
        assert ollama.vision_model == "llama3.2-vision:11b"

    def test_ai_gateway_defaults_its_key(self):
        registry = ProviderRegistry.from_settings(
            AppSettings(_env_file=None, AI_GATEWAY_BASE_URL="http://gw.local/")
        )

        gateway = registry.get_service_config("aigateway")
        assert gateway.enabled
        assert gateway.base_url == "http://gw.local"
        assert gateway.api_key == "ai-gateway"

    def test_unknown_service(self, registry):
        assert registry.get_service_config("mystery") is None
        assert registry.is_service_enabled("mystery") is False

    def test_public_view_hides_secrets(self, registry):
        openai = registry.get_service_config("openai").public_view()
        ollama = registry.get_service_config("ollama").public_view()

        assert openai == {"model": "gpt-4.1-nano", "hasApiKey": True}
        assert ollama == {"model": "llama3.2:latest", "baseURL": "http://ollama.test", "chatModel": "llama3.2:latest"}

    def test_configs_are_read_only(self, registry):
        cfg = registry.get_service_config("openai")
        with pytest.raises(AttributeError):
            cfg.model = "other"


class TestModelsCatalog:
    def test_bundled_catalog_loads(self):
        catalog = load_models_catalog()

        assert "gpt-4.1-nano" in catalog.all_models()["openai"]
        assert "aigateway" not in catalog.all_models()

    def test_views(self, catalog_file):
        catalog = load_models_catalog(catalog_file)

        assert catalog.models_by_capability("vision") == {"ollama": ["llava:7b"], "openai": []}
        assert catalog.all_models() == {"ollama": ["llama3.2:latest", "llava:7b"], "openai": ["gpt-4.1-nano"]}
        assert catalog.by_provider()["ollama"][1] == {
            "name": "llava:7b", "capabilities": ["vision"], "notes": "small vision model",
        }

    def test_config_uses_catalog_path(self, catalog_file):
        config = Config(AppSettings(_env_file=None, MODELS_CATALOG_PATH=str(catalog_file)))

        assert "lmstudio" not in config.load_catalog().all_models()

    def test_missing_catalog(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_models_catalog(tmp_path / "nope.yml")

    def test_invalid_catalog(self, tmp_path):
        path = tmp_path / "bad.yml"
        path.write_text("providers:\n  ollama:\n    models: 42\n", encoding="utf-8")

        with pytest.raises(ConfigError, match="Invalid model catalog"):
            load_models_catalog(path)
