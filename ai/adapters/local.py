"""Adapters for locally hosted model servers (Ollama, LM Studio)."""
import json
from abc import abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional, Type

import httpx
from pydantic import BaseModel

from ai.prompts import describe_image_prompt
from core.errors import NoModelsAvailableError, ProviderRequestError, ProviderUnavailableError
from core.logging import logger

from .base import (
    BaseProvider,
    StreamItem,
    StructuredResult,
    TextResult,
    TextStreamResult,
    TokenUsage,
    stream_result,
)
from .providers import OpenAICompatibleProvider
from .registry import to_json_schema, validate_json

HEALTH_TIMEOUT = 5.0


def resolve_default_model(catalog: List[str], configured: Optional[str]) -> str:
    """
    Pick the model to use from a backend's installed models.

    The configured model wins when it is installed; otherwise the first
    catalog entry is used.
    """
    if not catalog:
        raise ValueError("catalog is empty")
    if configured and configured in catalog:
        return configured
    if configured:
        logger.warning(f"Specified model {configured} not found. Using {catalog[0]} instead.")
    return catalog[0]


class LocalProvider(BaseProvider):
    """Common behaviour for servers that run on the user's machine."""

    health_path = "/"

    async def _probe(self) -> None:
        """Short GET against the health endpoint. Any response below 500 counts as reachable."""
        try:
            async with self._client(timeout=HEALTH_TIMEOUT) as client:
                response = await client.get(self.health_path)
        except httpx.HTTPError as e:
            raise ProviderUnavailableError(
                self.name, f"Failed to connect to {self.config.display_name}: {str(e) or type(e).__name__}"
            ) from e
        if response.status_code >= 500:
            raise ProviderUnavailableError(
                self.name,
                f"Failed to connect to {self.config.display_name}: {response.status_code} {response.reason_phrase}",
            )

    @abstractmethod
    async def _fetch_catalog(self) -> List[str]:
        """Installed model names, raising httpx errors on failure."""

    async def check_health(self) -> bool:
        try:
            await self._probe()
        except ProviderUnavailableError as e:
            logger.warning(str(e))
            return False
        return True

    async def list_available_models(self) -> List[str]:
        try:
            return await self._fetch_catalog()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Failed to fetch available models from {self.config.display_name}: {e}")
            return []

    async def select_model(self) -> str:
        """Health probe, then catalog fetch, then default-model resolution."""
        await self._probe()
        try:
            catalog = await self._fetch_catalog()
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderUnavailableError(
                self.name, f"Failed to connect to {self.config.display_name}: {e}"
            ) from e
        if not catalog:
            raise NoModelsAvailableError(self.config.display_name)

        selected = resolve_default_model(catalog, self.config.default_model)
        logger.info(f"Using {self.config.display_name} as LLM provider with model: {selected}")
        return selected

    async def _resolve_model(self, model: Optional[str]) -> str:
        return model or await self.select_model()


class OllamaProvider(LocalProvider):
    """Ollama native chat API (``/api/chat``)."""

    health_path = "/api/version"

    async def _fetch_catalog(self) -> List[str]:
        data = await self._get_json("/api/tags")
        models = data.get("models") if isinstance(data, dict) else None
        if not isinstance(models, list):
            return []
        return [m["name"] for m in models if isinstance(m, dict) and isinstance(m.get("name"), str)]

    def _payload(
        self,
        messages: List[Dict[str, Any]],
        model: str,
        temperature: float,
        stream: bool = False,
        **extra: Any,
    ) -> Dict[str, Any]:
        return {
            "model": model,
            "messages": messages,
            "stream": stream,
            "options": {"temperature": temperature},
            **extra,
        }

    @staticmethod
    def _usage(data: Dict[str, Any]) -> TokenUsage:
        return TokenUsage.from_counts(data.get("prompt_eval_count"), data.get("eval_count"))

    @staticmethod
    def _finish_reason(data: Dict[str, Any]) -> str:
        return data.get("done_reason") or ("stop" if data.get("done") else "length")

    async def _chat(self, payload: Dict[str, Any]) -> TextResult:
        data = await self._post_json("/api/chat", payload)
        usage = self._usage(data)
        self._log_usage(usage)
        return TextResult(
            text=(data.get("message") or {}).get("content") or "",
            usage=usage,
            finish_reason=self._finish_reason(data),
            model=data.get("model", payload["model"]),
        )

    async def generate_text_response(
        self,
        prompt: str,
        model: Optional[str] = None,
        temperature: float = 0,
    ) -> TextResult:
        model = await self._resolve_model(model)
        return await self._chat(self._payload([{"role": "user", "content": prompt}], model, temperature))

    async def generate_structured_response(
        self,
        prompt: str,
        schema: Type[BaseModel],
        model: Optional[str] = None,
        temperature: float = 0,
    ) -> StructuredResult:
        model = await self._resolve_model(model)
        payload = self._payload(
            [{"role": "user", "content": prompt}], model, temperature, format=to_json_schema(schema)
        )
        result = await self._chat(payload)
        return StructuredResult(
            object=validate_json(schema, result.text),
            usage=result.usage,
            finish_reason=result.finish_reason,
            model=result.model,
        )

    async def generate_text_stream_response(
        self,
        prompt: str,
        model: Optional[str] = None,
        temperature: float = 0,
    ) -> TextStreamResult:
        model = await self._resolve_model(model)
        payload = self._payload([{"role": "user", "content": prompt}], model, temperature, stream=True)
        return stream_result(self._stream_chat(payload), model=model)

    async def _stream_chat(self, payload: Dict[str, Any]) -> AsyncIterator[StreamItem]:
        # Ollama streams newline-delimited JSON; the final object carries the token counts
        try:
            async with self._client() as client:
                async with client.stream("POST", "/api/chat", json=payload) as response:
                    if response.is_error:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        raise ProviderRequestError(self.name, f"{response.status_code} {response.reason_phrase} - {body}")
                    async for line in response.aiter_lines():
                        if not line.strip():
                            continue
                        event = json.loads(line)
                        if event.get("error"):
                            raise ProviderRequestError(self.name, event["error"])
                        text = (event.get("message") or {}).get("content")
                        if text:
                            yield text
                        if event.get("done"):
                            yield self._usage(event)
                            break
        except httpx.HTTPError as e:
            logger.error(f"Ollama stream error: {e!r}")
            raise ProviderRequestError(self.name, str(e) or type(e).__name__) from e
        except json.JSONDecodeError as e:
            raise ProviderRequestError(self.name, f"invalid stream event: {e}") from e

    async def describe_image(
        self,
        images: List[str],
        model: Optional[str] = None,
        temperature: float = 0.3,
    ) -> TextResult:
        messages = [{"role": "user", "content": describe_image_prompt(), "images": images}]
        return await self._chat(self._payload(messages, model or self.config.vision_model, temperature))


class LMStudioProvider(LocalProvider, OpenAICompatibleProvider):
    """LM Studio's OpenAI-compatible server (paths under ``/v1``)."""

    health_path = "/v1/health"
    chat_path = "/v1/chat/completions"
    models_path = "/v1/models"

    async def _fetch_catalog(self) -> List[str]:
        data = await self._get_json(self.models_path)
        models = data.get("data") if isinstance(data, dict) else None
        if not isinstance(models, list):
            return []
        return [m["id"] for m in models if isinstance(m, dict) and isinstance(m.get("id"), str)]

    def _response_format(self, schema: Type[BaseModel]) -> Dict[str, Any]:
        # LM Studio only honours JSON mode; the result is validated after parsing
        return {"type": "json_object"}
