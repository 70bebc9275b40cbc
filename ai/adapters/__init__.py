"""Adapters layer: provider abstraction, schema registry and dispatch.

Every backend implements the ``BaseProvider`` contract; ``ProviderRouter``
selects exactly one of them per request.
"""

from .base import BaseProvider, StructuredResult, TextResult, TextStreamResult, TokenUsage
from .local import LMStudioProvider, LocalProvider, OllamaProvider, resolve_default_model
from .providers import AIGatewayProvider, AnthropicProvider, OpenAIProvider, OpenRouterProvider
from .registry import SchemaRegistry, to_json_schema, validate_json
from .router import ProviderRouter

__all__ = [
    "BaseProvider",
    "StructuredResult",
    "TextResult",
    "TextStreamResult",
    "TokenUsage",
    "LocalProvider",
    "OllamaProvider",
    "LMStudioProvider",
    "resolve_default_model",
    "OpenAIProvider",
    "AnthropicProvider",
    "OpenRouterProvider",
    "AIGatewayProvider",
    "SchemaRegistry",
    "to_json_schema",
    "validate_json",
    "ProviderRouter",
]
