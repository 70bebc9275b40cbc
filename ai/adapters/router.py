"""Dispatch layer that maps a request's provider tag onto exactly one adapter.

The router keeps a lookup table of adapter instances keyed by provider tag.
It never falls back to another backend: an unknown tag or a disabled provider
is an error raised before any network call.
"""
import asyncio
from typing import Any, Dict, List, Mapping, Optional, Type, Union

import httpx
from pydantic import BaseModel

from core.config import Provider, ProviderConfig, ProviderRegistry
from core.errors import ProviderUnavailableError, UnsupportedProviderError
from core.logging import logger

from .base import BaseProvider, StructuredResult, TextResult, TextStreamResult
from .local import LMStudioProvider, OllamaProvider
from .providers import AIGatewayProvider, AnthropicProvider, OpenAIProvider, OpenRouterProvider

__all__ = ["ADAPTERS", "ProviderRouter"]

ADAPTERS: Dict[Provider, Type[BaseProvider]] = {
    Provider.OPENAI: OpenAIProvider,
    Provider.ANTHROPIC: AnthropicProvider,
    Provider.OLLAMA: OllamaProvider,
    Provider.OPENROUTER: OpenRouterProvider,
    Provider.LMSTUDIO: LMStudioProvider,
    Provider.AIGATEWAY: AIGatewayProvider,
}


class ProviderRouter:
    """Routes task requests to the adapter named in the request config."""

    def __init__(self, providers: Mapping[Provider, BaseProvider]) -> None:
        self._providers: Dict[Provider, BaseProvider] = dict(providers)

    @classmethod
    def from_registry(
        cls,
        registry: ProviderRegistry,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "ProviderRouter":
        """Build one adapter per configured provider."""
        return cls({cfg.name: ADAPTERS[cfg.name](cfg, transport=transport) for cfg in registry})

    def _lookup(self, name: Union[str, Provider]) -> BaseProvider:
        try:
            tag = Provider(name.lower() if isinstance(name, str) else name)
        except ValueError:
            raise UnsupportedProviderError(str(name)) from None
        provider = self._providers.get(tag)
        if provider is None:
            raise UnsupportedProviderError(tag.value)
        return provider

    def get(self, name: Union[str, Provider]) -> BaseProvider:
        """Adapter for ``name``; raises when the tag is unknown or the provider is disabled."""
        provider = self._lookup(name)
        if not provider.config.enabled:
            raise ProviderUnavailableError(
                provider.name, f"Service {provider.config.display_name} is not enabled"
            )
        return provider

    def configs(self) -> List[ProviderConfig]:
        return [p.config for p in self._providers.values()]

    # ------------------------------------------------------------------
    # Task dispatch
    # ------------------------------------------------------------------

    async def process_structured_output_request(
        self,
        prompt: str,
        schema: Type[BaseModel],
        config: Any,
        temperature: Optional[float] = None,
    ) -> StructuredResult:
        provider = self.get(config.provider)
        if temperature is None:
            temperature = config.temperature or 0
        logger.info(f"Structured request -> {provider.name} model={config.model or 'default'}")
        return await provider.generate_structured_response(
            prompt, schema, model=config.model, temperature=temperature
        )

    async def process_text_output_request(
        self,
        prompt: str,
        config: Any,
    ) -> Union[TextResult, TextStreamResult]:
        if getattr(config, "stream", False):
            return await self.process_text_output_stream_request(prompt, config)

        provider = self.get(config.provider)
        logger.info(f"Text request -> {provider.name} model={config.model or 'default'}")
        return await provider.generate_text_response(
            prompt, model=config.model, temperature=config.temperature or 0
        )

    async def process_text_output_stream_request(self, prompt: str, config: Any) -> TextStreamResult:
        provider = self.get(config.provider)
        logger.info(f"Streaming request -> {provider.name} model={config.model or 'default'}")
        return await provider.generate_text_stream_response(
            prompt, model=config.model, temperature=config.temperature or 0
        )

    async def generate_image_response(self, images: List[str], config: Any) -> TextResult:
        provider = self.get(config.provider)
        temperature = config.temperature if config.temperature else 0.3
        return await provider.describe_image(images, model=config.model, temperature=temperature)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def check_service_availability(self, name: Union[str, Provider]) -> bool:
        """False for unknown or disabled providers; otherwise the adapter's own check."""
        try:
            provider = self.get(name)
        except (UnsupportedProviderError, ProviderUnavailableError):
            return False
        return await provider.check_availability()

    async def get_available_models(self, name: Union[str, Provider]) -> List[str]:
        if not await self.check_service_availability(name):
            return []
        return await self._lookup(name).list_available_models()

    async def get_service_status(self) -> Dict[str, Any]:
        """Per-provider enabled/available/config view plus the primary provider tag."""
        providers = list(self._providers.values())
        available = await asyncio.gather(
            *(self.check_service_availability(p.name) for p in providers)
        )
        services = {
            p.name: {
                "enabled": p.config.enabled,
                "available": ok,
                "config": p.config.public_view(),
            }
            for p, ok in zip(providers, available)
        }
        primary = ProviderRegistry(self.configs()).get_primary_service()
        return {
            "services": services,
            "primary": primary.name.value if primary else None,
            "anyAvailable": any(available),
        }
