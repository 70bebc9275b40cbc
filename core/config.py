import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.errors import ConfigError

# --- Base Path ---
BASE_DIR = Path(__file__).resolve().parent.parent
logger = logging.getLogger(__name__)


class Provider(str, Enum):
    """Provider tags accepted in a request's config."""
    OLLAMA = "ollama"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    OPENROUTER = "openrouter"
    LMSTUDIO = "lmstudio"
    AIGATEWAY = "aigateway"


# --- Environment-based Settings ---

class AppSettings(BaseSettings):
    """
    Main application settings loaded from environment variables.
    The .env file is loaded automatically by pydantic-settings.
    """
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    # --- General & Core ---
    LOG_LEVEL: str = Field("INFO", description="Log level for the application (e.g., DEBUG, INFO, WARNING, ERROR)")
    LOG_DIR: Optional[str] = Field(None, description="Directory for the rotating JSON log file. Defaults to logs/ in the project root.")
    DEFAULT_ACCESS_TOKEN: Optional[str] = Field(None, description="Bearer token required on API routes. Auth is off when unset.")
    API_VERSION: str = Field("v1", description="Version tag appended to every task response.")
    MODELS_CATALOG_PATH: Optional[str] = Field(None, description="Optional: Path to a YAML or JSON model catalog.")
    REQUEST_TIMEOUT: float = Field(60.0, description="Timeout in seconds for hosted backend calls.")
    HOST: str = Field("0.0.0.0", description="Bind address for the HTTP server.")
    PORT: int = Field(3000, description="Port for the HTTP server.")

    # --- OpenAI ---
    OPENAI_API_KEY: Optional[str] = Field(None)
    OPENAI_MODEL: str = Field("gpt-4.1-nano")
    OPENAI_BASE_URL: str = Field("https://api.openai.com/v1")

    # --- Anthropic ---
    ANTHROPIC_API_KEY: Optional[str] = Field(None)
    ANTHROPIC_MODEL: str = Field("claude-3-haiku-20240307")
    ANTHROPIC_BASE_URL: str = Field("https://api.anthropic.com/v1")

    # --- OpenRouter ---
    OPENROUTER_API_KEY: Optional[str] = Field(None)
    OPENROUTER_MODEL: str = Field("openai/gpt-4.1-nano")
    OPENROUTER_BASE_URL: str = Field("https://openrouter.ai/api/v1")

    # --- Ollama / Local LLMs ---
    OLLAMA_ENABLED: bool = Field(False)
    OLLAMA_BASE_URL: Optional[str] = Field(None, description="The full URL of your Ollama server.")
    OLLAMA_MODEL: str = Field("llama3.2:latest")
    OLLAMA_CHAT_MODEL: str = Field("llama3.2:latest")
    OLLAMA_VISION_MODEL: str = Field("llama3.2-vision:11b")
    OLLAMA_DEFAULT_MODEL: Optional[str] = Field(None, description="Preferred model; the first installed model is used when it is missing.")
    OLLAMA_TIMEOUT: int = Field(30000, description="Timeout in milliseconds for Ollama calls.")

    # --- LM Studio ---
    LMSTUDIO_ENABLED: bool = Field(False)
    LMSTUDIO_BASE_URL: Optional[str] = Field(None)
    LMSTUDIO_MODEL: str = Field("local-model")
    LMSTUDIO_CHAT_MODEL: str = Field("local-model")
    LMSTUDIO_DEFAULT_MODEL: Optional[str] = Field(None)
    LMSTUDIO_TIMEOUT: int = Field(60000, description="Timeout in milliseconds for LM Studio calls.")

    # --- AI Gateway (OpenAI-compatible) ---
    AI_GATEWAY_BASE_URL: Optional[str] = Field(None)
    AI_GATEWAY_API_KEY: Optional[str] = Field(None)
    AIGATEWAY_MODEL: str = Field("default")
    AIGATEWAY_CHAT_MODEL: str = Field("default")


# --- Provider Registry ---

@dataclass(frozen=True)
class ProviderConfig:
    """Static, read-only settings for one backend."""
    name: Provider
    display_name: str
    enabled: bool
    priority: int  # Lower number = higher priority
    base_url: str
    model: str
    chat_model: str
    api_key: Optional[str] = None
    vision_model: Optional[str] = None
    default_model: Optional[str] = None
    timeout: float = 60.0

    def public_view(self) -> Dict[str, object]:
        """Config fields safe to show in the status endpoint."""
        view: Dict[str, object] = {"model": self.model}
        if self.name in (Provider.OLLAMA, Provider.LMSTUDIO, Provider.AIGATEWAY):
            view["baseURL"] = self.base_url
            view["chatModel"] = self.chat_model
        else:
            view["hasApiKey"] = bool(self.api_key)
        if self.name is Provider.OPENROUTER:
            view["baseURL"] = self.base_url
        return view


class ProviderRegistry:
    """One ProviderConfig per provider, computed once from settings."""

    def __init__(self, configs: List[ProviderConfig]):
        self._configs: Dict[Provider, ProviderConfig] = {cfg.name: cfg for cfg in configs}

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "ProviderRegistry":
        s = settings
        return cls([
            ProviderConfig(
                name=Provider.OPENAI,
                display_name="OpenAI",
                enabled=bool(s.OPENAI_API_KEY),
                priority=1,
                base_url=s.OPENAI_BASE_URL,
                api_key=s.OPENAI_API_KEY,
                model=s.OPENAI_MODEL,
                chat_model=s.OPENAI_MODEL,
                timeout=s.REQUEST_TIMEOUT,
            ),
            ProviderConfig(
                name=Provider.ANTHROPIC,
                display_name="Anthropic",
                enabled=bool(s.ANTHROPIC_API_KEY),
                priority=2,
                base_url=s.ANTHROPIC_BASE_URL,
                api_key=s.ANTHROPIC_API_KEY,
                model=s.ANTHROPIC_MODEL,
                chat_model=s.ANTHROPIC_MODEL,
                timeout=s.REQUEST_TIMEOUT,
            ),
            ProviderConfig(
                name=Provider.OLLAMA,
                display_name="Ollama",
                enabled=s.OLLAMA_ENABLED or s.OLLAMA_BASE_URL is not None,
                priority=3,
                base_url=s.OLLAMA_BASE_URL or "http://localhost:11434",
                model=s.OLLAMA_MODEL,
                chat_model=s.OLLAMA_CHAT_MODEL,
                vision_model=s.OLLAMA_VISION_MODEL,
                default_model=s.OLLAMA_DEFAULT_MODEL,
                timeout=s.OLLAMA_TIMEOUT / 1000,
            ),
            ProviderConfig(
                name=Provider.OPENROUTER,
                display_name="OpenRouter",
                enabled=bool(s.OPENROUTER_API_KEY),
                priority=4,
                base_url=s.OPENROUTER_BASE_URL,
                api_key=s.OPENROUTER_API_KEY,
                model=s.OPENROUTER_MODEL,
                chat_model=s.OPENROUTER_MODEL,
                timeout=s.REQUEST_TIMEOUT,
            ),
            ProviderConfig(
                name=Provider.LMSTUDIO,
                display_name="LMStudio",
                enabled=s.LMSTUDIO_ENABLED or s.LMSTUDIO_BASE_URL is not None,
                priority=5,
                base_url=(s.LMSTUDIO_BASE_URL or "http://localhost:1234").rstrip("/"),
                model=s.LMSTUDIO_MODEL,
                chat_model=s.LMSTUDIO_CHAT_MODEL,
                default_model=s.LMSTUDIO_DEFAULT_MODEL,
                timeout=s.LMSTUDIO_TIMEOUT / 1000,
            ),
            ProviderConfig(
                name=Provider.AIGATEWAY,
                display_name="AIGateway",
                enabled=s.AI_GATEWAY_BASE_URL is not None,
                priority=6,
                base_url=(s.AI_GATEWAY_BASE_URL or "http://localhost:8080").rstrip("/"),
                api_key=s.AI_GATEWAY_API_KEY or "ai-gateway",
                model=s.AIGATEWAY_MODEL,
                chat_model=s.AIGATEWAY_CHAT_MODEL,
                timeout=s.REQUEST_TIMEOUT,
            ),
        ])

    def __iter__(self) -> Iterator[ProviderConfig]:
        return iter(self._configs.values())

    def get_service_config(self, name: str) -> Optional[ProviderConfig]:
        """Look a provider up by tag or display name, case-insensitively."""
        key = str(name.value if isinstance(name, Provider) else name).lower()
        for cfg in self._configs.values():
            if key in (cfg.name.value, cfg.display_name.lower()):
                return cfg
        return None

    def is_service_enabled(self, name: str) -> bool:
        cfg = self.get_service_config(name)
        return cfg.enabled if cfg else False

    def get_primary_service(self) -> Optional[ProviderConfig]:
        """Highest-priority enabled provider, or None."""
        enabled = sorted((cfg for cfg in self._configs.values() if cfg.enabled), key=lambda cfg: cfg.priority)
        return enabled[0] if enabled else None


# --- Model Catalog ---

CAPABILITIES = ("summarize", "keywords", "sentiment", "vision", "emailReply", "askText")


class CatalogModel(BaseModel):
    name: str
    capabilities: List[str] = Field(default_factory=list)
    notes: Optional[str] = None


class CatalogProvider(BaseModel):
    enabled: bool = True
    models: List[CatalogModel] = Field(default_factory=list)


class ModelsCatalog(BaseModel):
    """Capability → provider → model names, used for the informative listing endpoint."""
    providers: Dict[str, CatalogProvider] = Field(default_factory=dict)

    def models_by_capability(self, capability: str) -> Dict[str, List[str]]:
        return {
            provider: [m.name for m in cfg.models if capability in m.capabilities]
            for provider, cfg in self.providers.items()
            if cfg.enabled
        }

    def all_models(self) -> Dict[str, List[str]]:
        return {provider: [m.name for m in cfg.models] for provider, cfg in self.providers.items() if cfg.enabled}

    def by_provider(self) -> Dict[str, List[dict]]:
        return {
            provider: [m.model_dump(exclude_none=True) for m in cfg.models]
            for provider, cfg in self.providers.items()
            if cfg.enabled
        }


def load_models_catalog(path: Optional[Path] = None) -> ModelsCatalog:
    """Loads the catalog file (YAML, or JSON which is valid YAML) and validates it."""
    config_path = Path(path) if path else BASE_DIR / 'configs' / 'models.yml'
    if not config_path.exists():
        raise ConfigError(f"Model catalog '{config_path.name}' not found in {config_path.parent}")
    with open(config_path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or {}
    try:
        return ModelsCatalog.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid model catalog {config_path}: {e}") from e


# --- Main Config Object ---

class Config:
    """
    A unified configuration object.
    """
    def __init__(self, settings: Optional[AppSettings] = None):
        try:
            self.app = settings or AppSettings()
        except ValidationError as e:
            logger.critical(f"FATAL: Configuration validation error: {e}")
            raise ConfigError(str(e)) from e

        self.providers = ProviderRegistry.from_settings(self.app)

    def load_catalog(self) -> ModelsCatalog:
        path = Path(self.app.MODELS_CATALOG_PATH) if self.app.MODELS_CATALOG_PATH else None
        return load_models_catalog(path)


# --- Global Config Instance ---
_settings_instance = None

def get_settings() -> Config:
    """
    Returns a singleton instance of the Config object.
    Settings are read once at process start and never mutated.
    """
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Config()
    return _settings_instance
