"""
Tests for the hosted adapters and the provider router.

Every backend call goes through httpx.MockTransport, so no test touches the network.
"""
import json
import sys
from pathlib import Path
from typing import List

import pytest

# Add the parent directory to the path so we can import the modules
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from ai.adapters.base import TextResult, TextStreamResult, TokenUsage
from ai.adapters.providers import AIGatewayProvider, AnthropicProvider, OpenAIProvider, OpenRouterProvider
from ai.adapters.router import ProviderRouter
from ai.schemas import KeywordsOutput, RequestConfig, SentimentOutput
from core.config import Provider, ProviderRegistry
from core.errors import (
    ProviderRequestError,
    ProviderUnavailableError,
    SchemaValidationError,
    UnsupportedProviderError,
)
from tests.helpers import Recorder, json_route, lines_route, provider_config


def chat_completion(content, prompt_tokens=12, completion_tokens=5, **message_extra):
    return {
        "id": "chatcmpl-1",
        "model": "gpt-4.1-nano-2025-04-14",
        "choices": [{
            "index": 0,
            "message": {"role": "assistant", "content": content, **message_extra},
            "finish_reason": "stop",
        }],
        "usage": {
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "total_tokens": prompt_tokens + completion_tokens,
        },
    }


async def drain(result: TextStreamResult) -> List[str]:
    return [chunk async for chunk in result.text_stream]


class TestOpenAIProvider:
    """Chat Completions adapter"""

    @pytest.mark.asyncio
    async def test_text_response(self):
        recorder = Recorder({"/v1/chat/completions": json_route(chat_completion("A short summary."))})
        provider = OpenAIProvider(provider_config(Provider.OPENAI), transport=recorder.transport())

        result = await provider.generate_text_response("Summarize this", temperature=0.2)

        assert isinstance(result, TextResult)
        assert result.text == "A short summary."
        assert result.finish_reason == "stop"
        assert result.usage == TokenUsage(12, 5, 17)

        request = recorder.requests[0]
        assert request.headers["Authorization"] == "Bearer sk-test"
        body = recorder.body()
        assert body["model"] == "gpt-4.1-nano"
        assert body["temperature"] == 0.2
        assert body["messages"] == [{"role": "user", "content": "Summarize this"}]

    @pytest.mark.asyncio
    async def test_explicit_model_is_sent(self):
        recorder = Recorder({"/v1/chat/completions": json_route(chat_completion("ok"))})
        provider = OpenAIProvider(provider_config(Provider.OPENAI), transport=recorder.transport())

        await provider.generate_text_response("hi", model="gpt-4.1-mini")

        assert recorder.body()["model"] == "gpt-4.1-mini"

    @pytest.mark.asyncio
    async def test_structured_response_sends_json_schema(self):
        content = json.dumps({"keywords": ["fox", "dog"]})
        recorder = Recorder({"/v1/chat/completions": json_route(chat_completion(content))})
        provider = OpenAIProvider(provider_config(Provider.OPENAI), transport=recorder.transport())

        result = await provider.generate_structured_response("Extract keywords", KeywordsOutput)

        assert result.object == KeywordsOutput(keywords=["fox", "dog"])
        response_format = recorder.body()["response_format"]
        assert response_format["type"] == "json_schema"
        assert response_format["json_schema"]["name"] == "KeywordsOutput"
        assert "keywords" in response_format["json_schema"]["schema"]["properties"]

    @pytest.mark.asyncio
    async def test_structured_response_accepts_parsed_object(self):
        parsed = {"keywords": ["alpha"]}
        recorder = Recorder({"/v1/chat/completions": json_route(chat_completion(None, parsed=parsed))})
        provider = OpenAIProvider(provider_config(Provider.OPENAI), transport=recorder.transport())

        result = await provider.generate_structured_response("Extract keywords", KeywordsOutput)

        assert result.object.keywords == ["alpha"]

    @pytest.mark.asyncio
    async def test_structured_response_rejects_nonconforming_json(self):
        content = json.dumps({"sentiment": "positive"})
        recorder = Recorder({"/v1/chat/completions": json_route(chat_completion(content))})
        provider = OpenAIProvider(provider_config(Provider.OPENAI), transport=recorder.transport())

        with pytest.raises(SchemaValidationError):
            await provider.generate_structured_response("Analyze", SentimentOutput)

    @pytest.mark.asyncio
    async def test_http_error_is_wrapped(self):
        recorder = Recorder({"/v1/chat/completions": json_route({"error": "bad key"}, status_code=401)})
        provider = OpenAIProvider(provider_config(Provider.OPENAI), transport=recorder.transport())

        with pytest.raises(ProviderRequestError) as exc_info:
            await provider.generate_text_response("hi")
        assert "openai" in str(exc_info.value)
        assert "401" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_stream_yields_chunks_then_usage(self):
        events = [
            'data: {"choices": [{"delta": {"role": "assistant"}}]}',
            'data: {"choices": [{"delta": {"content": "Hel"}}]}',
            "",
            'data: {"choices": [{"delta": {"content": "lo"}}]}',
            'data: {"choices": [], "usage": {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5}}',
            "data: [DONE]",
        ]
        recorder = Recorder({"/v1/chat/completions": lines_route(events)})
        provider = OpenAIProvider(provider_config(Provider.OPENAI), transport=recorder.transport())

        result = await provider.generate_text_stream_response("Say hello")

        assert await drain(result) == ["Hel", "lo"]
        assert await result.usage == TokenUsage(3, 2, 5)
        body = recorder.body()
        assert body["stream"] is True
        assert body["stream_options"] == {"include_usage": True}

    @pytest.mark.asyncio
    async def test_stream_error_status_raises_while_iterating(self):
        recorder = Recorder({"/v1/chat/completions": json_route({"error": "overloaded"}, status_code=503)})
        provider = OpenAIProvider(provider_config(Provider.OPENAI), transport=recorder.transport())

        result = await provider.generate_text_stream_response("hi")

        with pytest.raises(ProviderRequestError):
            await drain(result)
        assert result.usage.cancelled()

    @pytest.mark.asyncio
    async def test_models_are_static(self):
        recorder = Recorder({})
        provider = OpenAIProvider(provider_config(Provider.OPENAI, model="gpt-4.1-mini"), transport=recorder.transport())

        assert await provider.list_available_models() == ["gpt-4.1-mini", "gpt-4.1-nano"]
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_availability_follows_credential(self):
        provider = OpenAIProvider(provider_config(Provider.OPENAI))
        assert await provider.check_availability() is True

        disabled = OpenAIProvider(provider_config(Provider.OPENAI, api_key=None, enabled=False))
        assert await disabled.check_availability() is False

    @pytest.mark.asyncio
    async def test_vision_is_not_supported(self):
        provider = OpenAIProvider(provider_config(Provider.OPENAI))

        with pytest.raises(ProviderRequestError, match="Vision capabilities not supported for service: openai"):
            await provider.describe_image(["aGVsbG8="])


class TestOpenAICompatibleProviders:
    """OpenRouter and the self-hosted gateway reuse the Chat Completions adapter"""

    @pytest.mark.asyncio
    async def test_openrouter_uses_its_base_url(self):
        recorder = Recorder({"/api/v1/chat/completions": json_route(chat_completion("routed"))})
        provider = OpenRouterProvider(provider_config(Provider.OPENROUTER), transport=recorder.transport())

        result = await provider.generate_text_response("hi")

        assert result.text == "routed"
        assert recorder.requests[0].url.host == "openrouter.test"
        assert recorder.requests[0].headers["Authorization"] == "Bearer or-test"

    @pytest.mark.asyncio
    async def test_gateway_fetches_models_live(self):
        recorder = Recorder({"/v1/models": json_route({"data": [{"id": "llama-3"}, {"id": "mistral"}, {"name": "x"}]})})
        provider = AIGatewayProvider(provider_config(Provider.AIGATEWAY), transport=recorder.transport())

        assert await provider.list_available_models() == ["llama-3", "mistral"]

    @pytest.mark.asyncio
    async def test_gateway_model_fetch_failure_returns_empty(self):
        recorder = Recorder({"/v1/models": json_route({"error": "down"}, status_code=500)})
        provider = AIGatewayProvider(provider_config(Provider.AIGATEWAY), transport=recorder.transport())

        assert await provider.list_available_models() == []


class TestAnthropicProvider:
    """Messages API adapter"""

    @staticmethod
    def message(text, input_tokens=20, output_tokens=8):
        return {
            "id": "msg_1",
            "type": "message",
            "model": "claude-3-haiku-20240307",
            "content": [{"type": "text", "text": text}],
            "stop_reason": "end_turn",
            "usage": {"input_tokens": input_tokens, "output_tokens": output_tokens},
        }

    @pytest.mark.asyncio
    async def test_text_response(self):
        recorder = Recorder({"/v1/messages": json_route(self.message("Bonjour"))})
        provider = AnthropicProvider(provider_config(Provider.ANTHROPIC), transport=recorder.transport())

        result = await provider.generate_text_response("Translate hello", temperature=0.5)

        assert result.text == "Bonjour"
        assert result.usage == TokenUsage(20, 8, 28)
        assert result.finish_reason == "end_turn"

        request = recorder.requests[0]
        assert request.headers["x-api-key"] == "ak-test"
        assert request.headers["anthropic-version"] == "2023-06-01"
        body = recorder.body()
        assert body["max_tokens"] == 4096
        assert body["temperature"] == 0.5
        assert "system" not in body

    @pytest.mark.asyncio
    async def test_structured_response_puts_schema_in_system_prompt(self):
        content = "```json\n" + json.dumps({"keywords": ["claude"]}) + "\n```"
        recorder = Recorder({"/v1/messages": json_route(self.message(content))})
        provider = AnthropicProvider(provider_config(Provider.ANTHROPIC), transport=recorder.transport())

        result = await provider.generate_structured_response("Extract keywords", KeywordsOutput)

        assert result.object.keywords == ["claude"]
        system = recorder.body()["system"]
        assert system.startswith("You must respond with valid JSON that matches this schema.")
        assert '"keywords"' in system

    @pytest.mark.asyncio
    async def test_non_text_content_is_an_error(self):
        body = self.message("ignored")
        body["content"] = [{"type": "tool_use", "id": "t1", "name": "x", "input": {}}]
        recorder = Recorder({"/v1/messages": json_route(body)})
        provider = AnthropicProvider(provider_config(Provider.ANTHROPIC), transport=recorder.transport())

        with pytest.raises(ProviderRequestError, match="Unexpected response type"):
            await provider.generate_text_response("hi")

    @pytest.mark.asyncio
    async def test_stream_collects_usage_from_events(self):
        events = [
            "event: message_start",
            'data: {"type": "message_start", "message": {"usage": {"input_tokens": 9, "output_tokens": 1}}}',
            "",
            'data: {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}}',
            'data: {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "One"}}',
            'data: {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": " two"}}',
            'data: {"type": "message_delta", "delta": {"stop_reason": "end_turn"}, "usage": {"output_tokens": 4}}',
            'data: {"type": "message_stop"}',
        ]
        recorder = Recorder({"/v1/messages": lines_route(events)})
        provider = AnthropicProvider(provider_config(Provider.ANTHROPIC), transport=recorder.transport())

        result = await provider.generate_text_stream_response("Count")

        assert await drain(result) == ["One", " two"]
        assert await result.usage == TokenUsage(9, 4, 13)
        assert recorder.body()["stream"] is True

    @pytest.mark.asyncio
    async def test_stream_error_event_raises(self):
        events = [
            'data: {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "partial"}}',
            'data: {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}}',
        ]
        recorder = Recorder({"/v1/messages": lines_route(events)})
        provider = AnthropicProvider(provider_config(Provider.ANTHROPIC), transport=recorder.transport())

        result = await provider.generate_text_stream_response("hi")
        chunks = []
        with pytest.raises(ProviderRequestError, match="Overloaded"):
            async for chunk in result.text_stream:
                chunks.append(chunk)
        assert chunks == ["partial"]


class TestProviderRouter:
    """Dispatch from a request's provider tag to exactly one adapter"""

    @pytest.fixture
    def recorder(self):
        return Recorder({
            "/v1/chat/completions": json_route(chat_completion("from openai")),
            "/v1/messages": json_route(TestAnthropicProvider.message("from anthropic")),
        })

    @pytest.fixture
    def router(self, recorder):
        registry = ProviderRegistry([
            provider_config(Provider.OPENAI),
            provider_config(Provider.ANTHROPIC),
            provider_config(Provider.OPENROUTER, enabled=False, api_key=None),
        ])
        return ProviderRouter.from_registry(registry, transport=recorder.transport())

    @pytest.mark.asyncio
    async def test_routes_to_named_provider(self, router, recorder):
        result = await router.process_text_output_request("hi", RequestConfig(provider="anthropic"))

        assert result.text == "from anthropic"
        assert recorder.requests[0].url.host == "anthropic.test"

    @pytest.mark.asyncio
    async def test_provider_tag_is_case_insensitive(self, router):
        result = await router.process_text_output_request("hi", RequestConfig(provider="OpenAI"))
        assert result.text == "from openai"

    @pytest.mark.asyncio
    async def test_unknown_provider_makes_no_network_call(self, router, recorder):
        with pytest.raises(UnsupportedProviderError, match="Unsupported service: unknown-provider"):
            await router.process_text_output_request("hi", RequestConfig(provider="unknown-provider"))
        assert recorder.requests == []

    def test_known_but_unconfigured_provider_is_unsupported(self, router):
        with pytest.raises(UnsupportedProviderError, match="Unsupported service: lmstudio"):
            router.get("lmstudio")

    @pytest.mark.asyncio
    async def test_disabled_provider_is_unavailable(self, router, recorder):
        with pytest.raises(ProviderUnavailableError, match="Service OpenRouter is not enabled"):
            await router.process_structured_output_request("hi", KeywordsOutput, RequestConfig(provider="openrouter"))
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_stream_flag_selects_streaming_path(self, recorder):
        recorder.routes["/v1/chat/completions"] = lines_route([
            'data: {"choices": [{"delta": {"content": "streamed"}}]}',
            "data: [DONE]",
        ])
        router = ProviderRouter.from_registry(
            ProviderRegistry([provider_config(Provider.OPENAI)]), transport=recorder.transport()
        )

        result = await router.process_text_output_request("hi", RequestConfig(provider="openai", stream=True))

        assert isinstance(result, TextStreamResult)
        assert await drain(result) == ["streamed"]

    @pytest.mark.asyncio
    async def test_structured_temperature_override(self, router, recorder):
        recorder.routes["/v1/chat/completions"] = json_route(chat_completion(json.dumps({"keywords": []})))
        config = RequestConfig(provider="openai", temperature=0.9)

        await router.process_structured_output_request("hi", KeywordsOutput, config, temperature=0.1)
        assert recorder.body()["temperature"] == 0.1

        await router.process_structured_output_request("hi", KeywordsOutput, config)
        assert recorder.body()["temperature"] == 0.9

    @pytest.mark.asyncio
    async def test_availability_checks(self, router):
        assert await router.check_service_availability("openai") is True
        assert await router.check_service_availability("openrouter") is False
        assert await router.check_service_availability("nope") is False

    @pytest.mark.asyncio
    async def test_models_for_unavailable_provider_are_empty(self, router):
        assert await router.get_available_models("openrouter") == []
        assert await router.get_available_models("openai") == ["gpt-4.1-nano"]

    @pytest.mark.asyncio
    async def test_service_status(self, router):
        status = await router.get_service_status()

        assert status["primary"] == "openai"
        assert status["anyAvailable"] is True
        assert set(status["services"]) == {"openai", "anthropic", "openrouter"}
        openai = status["services"]["openai"]
        assert openai == {"enabled": True, "available": True, "config": {"model": "gpt-4.1-nano", "hasApiKey": True}}
        assert "api_key" not in json.dumps(status)
        assert status["services"]["openrouter"]["available"] is False
