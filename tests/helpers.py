"""Fakes shared by the test modules: provider configs and a recording httpx transport."""
import json
from typing import Callable, Dict, List

import httpx

from core.config import Provider, ProviderConfig


def provider_config(name: Provider, **overrides) -> ProviderConfig:
    """A ProviderConfig for one backend pointing at a fake host."""
    defaults = {
        Provider.OPENAI: dict(display_name="OpenAI", base_url="https://openai.test/v1", api_key="sk-test",
                              model="gpt-4.1-nano", chat_model="gpt-4.1-nano"),
        Provider.ANTHROPIC: dict(display_name="Anthropic", base_url="https://anthropic.test/v1", api_key="ak-test",
                                 model="claude-3-haiku-20240307", chat_model="claude-3-haiku-20240307"),
        Provider.OPENROUTER: dict(display_name="OpenRouter", base_url="https://openrouter.test/api/v1",
                                  api_key="or-test", model="openai/gpt-4.1-nano", chat_model="openai/gpt-4.1-nano"),
        Provider.AIGATEWAY: dict(display_name="AIGateway", base_url="http://aigateway.test", api_key="ai-gateway",
                                 model="default", chat_model="default"),
        Provider.OLLAMA: dict(display_name="Ollama", base_url="http://ollama.test", model="llama3.2:latest",
                              chat_model="llama3.2:latest", vision_model="llama3.2-vision:11b"),
        Provider.LMSTUDIO: dict(display_name="LMStudio", base_url="http://lmstudio.test", model="local-model",
                                chat_model="local-model"),
    }[name]
    fields = dict(name=name, enabled=True, priority=1, **defaults)
    fields.update(overrides)
    return ProviderConfig(**fields)


class Recorder:
    """httpx.MockTransport handler that records requests and serves canned routes by path."""

    def __init__(self, routes: Dict[str, Callable[[httpx.Request], httpx.Response]]):
        self.routes = routes
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get(request.url.path)
        if handler is None:
            return httpx.Response(404, json={"error": f"no route for {request.url.path}"})
        return handler(request)

    @property
    def paths(self) -> List[str]:
        return [r.url.path for r in self.requests]

    def body(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def json_route(payload, status_code: int = 200):
    return lambda request: httpx.Response(status_code, json=payload)


def lines_route(lines: List[str], status_code: int = 200):
    return lambda request: httpx.Response(status_code, content="\n".join(lines).encode())


def unreachable(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("Connection refused", request=request)
