"""Adapter contract and normalized result types shared by every backend."""
import asyncio
import json
import time
from abc import ABC, abstractmethod
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Type, Union

import httpx
from pydantic import BaseModel

from core.config import ProviderConfig
from core.errors import ProviderRequestError, StreamingUnsupportedError
from core.logging import logger


@dataclass
class TokenUsage:
    """Token accounting for a single generation call."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_counts(
        cls,
        prompt_tokens: Optional[int],
        completion_tokens: Optional[int],
        total_tokens: Optional[int] = None,
    ) -> "TokenUsage":
        prompt = int(prompt_tokens or 0)
        completion = int(completion_tokens or 0)
        total = int(total_tokens) if total_tokens is not None else prompt + completion
        return cls(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)

    def to_public(self) -> Dict[str, int]:
        return {
            "input_tokens": self.prompt_tokens,
            "output_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass
class TextResult:
    """Free-text generation output."""
    text: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    finish_reason: Optional[str] = None
    model: Optional[str] = None


@dataclass
class StructuredResult:
    """Schema-validated generation output."""
    object: BaseModel
    usage: TokenUsage = field(default_factory=TokenUsage)
    finish_reason: Optional[str] = None
    model: Optional[str] = None


@dataclass
class TextStreamResult:
    """Incremental text plus usage that resolves once the stream is drained."""
    text_stream: AsyncIterator[str]
    usage: "asyncio.Future[TokenUsage]"
    model: Optional[str] = None


# Items yielded by a provider's raw stream: text chunks, and at most one final usage record
StreamItem = Union[str, TokenUsage]


def stream_result(raw: AsyncIterator[StreamItem], model: Optional[str] = None) -> TextStreamResult:
    """
    Split a provider's raw stream into text chunks and a usage future.

    The returned text stream pulls one item at a time from ``raw``; closing it
    early closes ``raw`` too, which releases the backend connection.
    """
    usage: "asyncio.Future[TokenUsage]" = asyncio.get_running_loop().create_future()

    async def text_stream() -> AsyncIterator[str]:
        final = TokenUsage()
        try:
            async with aclosing(raw):
                async for item in raw:
                    if isinstance(item, TokenUsage):
                        final = item
                    elif item:
                        yield item
            usage.set_result(final)
        finally:
            # Usage is unknown when the stream failed or was abandoned
            if not usage.done():
                usage.cancel()

    return TextStreamResult(text_stream=text_stream(), usage=usage, model=model)


class BaseProvider(ABC):
    """Base class for AI providers."""

    def __init__(self, config: ProviderConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport

    @property
    def name(self) -> str:
        return self.config.name.value

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    @abstractmethod
    async def generate_structured_response(
        self,
        prompt: str,
        schema: Type[BaseModel],
        model: Optional[str] = None,
        temperature: float = 0,
    ) -> StructuredResult:
        """Generate JSON conforming to ``schema``."""

    @abstractmethod
    async def generate_text_response(
        self,
        prompt: str,
        model: Optional[str] = None,
        temperature: float = 0,
    ) -> TextResult:
        """Free-text completion."""

    async def generate_text_stream_response(
        self,
        prompt: str,
        model: Optional[str] = None,
        temperature: float = 0,
    ) -> TextStreamResult:
        raise StreamingUnsupportedError(f"Streaming not supported for provider {self.name}")

    @abstractmethod
    async def list_available_models(self) -> List[str]:
        """Model identifiers this backend offers. Never raises."""

    async def check_health(self) -> bool:
        return self.config.enabled

    async def check_availability(self) -> bool:
        return await self.check_health()

    async def describe_image(
        self,
        images: List[str],
        model: Optional[str] = None,
        temperature: float = 0.3,
    ) -> TextResult:
        raise ProviderRequestError(self.name, f"Vision capabilities not supported for service: {self.name}")

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    def _client(self, timeout: Optional[float] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.config.base_url,
            headers=self._headers(),
            timeout=timeout if timeout is not None else self.config.timeout,
            transport=self._transport,
        )

    async def _post_json(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST a JSON payload and return the decoded body, wrapping every failure."""
        started = time.monotonic()
        async with self._client() as client:
            try:
                response = await client.post(path, json=payload)
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPStatusError as e:
                logger.error(f"{self.config.display_name} API error: {e.response.status_code} {e.response.text}")
                raise ProviderRequestError(
                    self.name, f"{e.response.status_code} {e.response.reason_phrase} - {e.response.text}"
                ) from e
            except httpx.HTTPError as e:
                logger.error(f"{self.config.display_name} API error: {e!r}")
                raise ProviderRequestError(self.name, str(e) or type(e).__name__) from e
            except json.JSONDecodeError as e:
                raise ProviderRequestError(self.name, f"invalid JSON body: {e}") from e

        duration_ms = (time.monotonic() - started) * 1000
        logger.info(f"{self.config.display_name} {path} completed in {duration_ms:.0f}ms")
        return data

    async def _get_json(self, path: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        async with self._client(timeout=timeout) as client:
            response = await client.get(path)
            response.raise_for_status()
            return response.json()

    def _log_usage(self, usage: TokenUsage) -> None:
        logger.info(
            f"{self.config.display_name} token usage: input={usage.prompt_tokens} "
            f"output={usage.completion_tokens} total={usage.total_tokens}"
        )
