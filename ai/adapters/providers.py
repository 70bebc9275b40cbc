"""AI Provider Adapters for hosted LLM services."""
import json
from typing import Any, AsyncIterator, Dict, List, Optional, Type

import httpx
from pydantic import BaseModel

from core.errors import ProviderRequestError
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
from .registry import to_json_schema, validate_json

ANTHROPIC_VERSION = "2023-06-01"
ANTHROPIC_MAX_TOKENS = 4096
ANTHROPIC_JSON_SYSTEM_PROMPT = (
    "You must respond with valid JSON that matches this schema. "
    "Do not include any text outside the JSON response."
)


def _sse_data(line: str) -> Optional[str]:
    """Payload of an SSE ``data:`` line, or None for other lines."""
    if not line.startswith("data:"):
        return None
    return line[len("data:"):].strip()


class OpenAICompatibleProvider(BaseProvider):
    """Chat Completions API shared by OpenAI and OpenAI-compatible services."""

    # Curated list for backends with catalogs too large to enumerate; None means fetch live
    static_models: Optional[List[str]] = None
    chat_path = "/chat/completions"
    models_path = "/models"

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    async def _resolve_model(self, model: Optional[str]) -> str:
        return model or self.config.chat_model

    def _payload(self, prompt: str, model: str, temperature: float, **extra: Any) -> Dict[str, Any]:
        return {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
            **extra,
        }

    def _response_format(self, schema: Type[BaseModel]) -> Dict[str, Any]:
        return {
            "type": "json_schema",
            "json_schema": {
                "name": schema.__name__,
                "schema": to_json_schema(schema),
                "strict": False,
            },
        }

    @staticmethod
    def _usage(data: Dict[str, Any]) -> TokenUsage:
        usage = data.get("usage") or {}
        return TokenUsage.from_counts(
            usage.get("prompt_tokens"),
            usage.get("completion_tokens"),
            usage.get("total_tokens"),
        )

    def _first_choice(self, data: Dict[str, Any]) -> Dict[str, Any]:
        choices = data.get("choices") or []
        if not choices or not isinstance(choices, list):
            raise ProviderRequestError(self.name, "response contained no choices")
        return choices[0] or {}

    async def generate_text_response(
        self,
        prompt: str,
        model: Optional[str] = None,
        temperature: float = 0,
    ) -> TextResult:
        model = await self._resolve_model(model)
        data = await self._post_json(self.chat_path, self._payload(prompt, model, temperature))

        choice = self._first_choice(data)
        message = choice.get("message") or {}
        usage = self._usage(data)
        self._log_usage(usage)
        return TextResult(
            text=message.get("content") or "",
            usage=usage,
            finish_reason=choice.get("finish_reason"),
            model=data.get("model", model),
        )

    async def generate_structured_response(
        self,
        prompt: str,
        schema: Type[BaseModel],
        model: Optional[str] = None,
        temperature: float = 0,
    ) -> StructuredResult:
        model = await self._resolve_model(model)
        payload = self._payload(prompt, model, temperature, response_format=self._response_format(schema))
        data = await self._post_json(self.chat_path, payload)

        choice = self._first_choice(data)
        message = choice.get("message") or {}
        # Some compatible servers hand back an already-parsed object
        content = message.get("parsed") if message.get("parsed") is not None else message.get("content")
        usage = self._usage(data)
        self._log_usage(usage)
        return StructuredResult(
            object=validate_json(schema, content),
            usage=usage,
            finish_reason=choice.get("finish_reason"),
            model=data.get("model", model),
        )

    async def generate_text_stream_response(
        self,
        prompt: str,
        model: Optional[str] = None,
        temperature: float = 0,
    ) -> TextStreamResult:
        model = await self._resolve_model(model)
        payload = self._payload(
            prompt, model, temperature, stream=True, stream_options={"include_usage": True}
        )
        return stream_result(self._stream_chat(payload), model=model)

    async def _stream_chat(self, payload: Dict[str, Any]) -> AsyncIterator[StreamItem]:
        try:
            async with self._client() as client:
                async with client.stream("POST", self.chat_path, json=payload) as response:
                    if response.is_error:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        raise ProviderRequestError(self.name, f"{response.status_code} {response.reason_phrase} - {body}")
                    async for line in response.aiter_lines():
                        data = _sse_data(line)
                        if not data:
                            continue
                        if data == "[DONE]":
                            break
                        event = json.loads(data)
                        if event.get("usage"):
                            yield self._usage(event)
                        for choice in event.get("choices") or []:
                            text = (choice.get("delta") or {}).get("content")
                            if text:
                                yield text
        except httpx.HTTPError as e:
            logger.error(f"{self.config.display_name} stream error: {e!r}")
            raise ProviderRequestError(self.name, str(e) or type(e).__name__) from e
        except json.JSONDecodeError as e:
            raise ProviderRequestError(self.name, f"invalid stream event: {e}") from e

    async def list_available_models(self) -> List[str]:
        if self.static_models is not None:
            return list(dict.fromkeys([self.config.model, *self.static_models]))
        try:
            data = await self._get_json(self.models_path)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Failed to fetch available models from {self.config.display_name}: {e}")
            return []
        models = data.get("data") if isinstance(data, dict) else None
        if not isinstance(models, list):
            return []
        return [m["id"] for m in models if isinstance(m, dict) and isinstance(m.get("id"), str)]


class OpenAIProvider(OpenAICompatibleProvider):
    """OpenAI API provider (GPT-4.1 family)."""

    # OpenAI supports hundreds of models; only the commonly used ones are listed
    static_models = ["gpt-4.1-nano"]


class OpenRouterProvider(OpenAICompatibleProvider):
    """OpenRouter, an OpenAI-compatible router over many hosted models."""

    static_models = ["openai/gpt-4.1-nano"]


class AIGatewayProvider(OpenAICompatibleProvider):
    """Self-hosted OpenAI-compatible gateway; models are fetched live."""

    models_path = "/v1/models"


class AnthropicProvider(BaseProvider):
    """Anthropic Messages API provider (Claude 3 Haiku, Sonnet, etc.)."""

    static_models = ["claude-3-haiku-20240307", "claude-3-5-sonnet-20241022"]

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.config.api_key or "",
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }

    def _payload(
        self,
        prompt: str,
        model: Optional[str],
        temperature: float,
        system: Optional[str] = None,
        **extra: Any,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": model or self.config.model,
            "max_tokens": ANTHROPIC_MAX_TOKENS,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
            **extra,
        }
        if system:
            payload["system"] = system
        return payload

    @staticmethod
    def _usage(usage: Dict[str, Any]) -> TokenUsage:
        return TokenUsage.from_counts(usage.get("input_tokens"), usage.get("output_tokens"))

    def _text(self, data: Dict[str, Any]) -> str:
        blocks = data.get("content") or []
        texts = [b.get("text", "") for b in blocks if isinstance(b, dict) and b.get("type") == "text"]
        if not texts:
            raise ProviderRequestError(self.name, "Unexpected response type from Anthropic")
        return "".join(texts)

    async def generate_text_response(
        self,
        prompt: str,
        model: Optional[str] = None,
        temperature: float = 0,
    ) -> TextResult:
        data = await self._post_json("/messages", self._payload(prompt, model, temperature))
        usage = self._usage(data.get("usage") or {})
        self._log_usage(usage)
        return TextResult(
            text=self._text(data),
            usage=usage,
            finish_reason=data.get("stop_reason"),
            model=data.get("model", model or self.config.model),
        )

    async def generate_structured_response(
        self,
        prompt: str,
        schema: Type[BaseModel],
        model: Optional[str] = None,
        temperature: float = 0,
    ) -> StructuredResult:
        system = f"{ANTHROPIC_JSON_SYSTEM_PROMPT}\n\nSchema:\n{json.dumps(to_json_schema(schema))}"
        data = await self._post_json("/messages", self._payload(prompt, model, temperature, system=system))
        usage = self._usage(data.get("usage") or {})
        self._log_usage(usage)
        return StructuredResult(
            object=validate_json(schema, self._text(data)),
            usage=usage,
            finish_reason=data.get("stop_reason"),
            model=data.get("model", model or self.config.model),
        )

    async def generate_text_stream_response(
        self,
        prompt: str,
        model: Optional[str] = None,
        temperature: float = 0,
    ) -> TextStreamResult:
        payload = self._payload(prompt, model, temperature, stream=True)
        return stream_result(self._stream_messages(payload), model=payload["model"])

    async def _stream_messages(self, payload: Dict[str, Any]) -> AsyncIterator[StreamItem]:
        input_tokens = 0
        output_tokens = 0
        try:
            async with self._client() as client:
                async with client.stream("POST", "/messages", json=payload) as response:
                    if response.is_error:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        raise ProviderRequestError(self.name, f"{response.status_code} {response.reason_phrase} - {body}")
                    async for line in response.aiter_lines():
                        data = _sse_data(line)
                        if not data:
                            continue
                        event = json.loads(data)
                        kind = event.get("type")
                        if kind == "message_start":
                            usage = (event.get("message") or {}).get("usage") or {}
                            input_tokens = usage.get("input_tokens") or 0
                        elif kind == "content_block_delta":
                            delta = event.get("delta") or {}
                            if delta.get("type") == "text_delta" and delta.get("text"):
                                yield delta["text"]
                        elif kind == "message_delta":
                            output_tokens = (event.get("usage") or {}).get("output_tokens") or output_tokens
                        elif kind == "error":
                            raise ProviderRequestError(self.name, (event.get("error") or {}).get("message", data))
                        elif kind == "message_stop":
                            break
        except httpx.HTTPError as e:
            logger.error(f"Anthropic stream error: {e!r}")
            raise ProviderRequestError(self.name, str(e) or type(e).__name__) from e
        except json.JSONDecodeError as e:
            raise ProviderRequestError(self.name, f"invalid stream event: {e}") from e

        yield TokenUsage.from_counts(input_tokens, output_tokens)

    async def list_available_models(self) -> List[str]:
        return list(dict.fromkeys([self.config.model, *self.static_models]))
