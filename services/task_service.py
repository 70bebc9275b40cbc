"""
Task orchestration: prompt building, dispatch and response envelopes.

Every public task method takes a validated ``{payload, config}`` request and
returns either a response body (a plain dict) or, for streaming text tasks,
the adapter's ``TextStreamResult`` which ``stream_events`` turns into events.
"""
import time
from contextlib import aclosing
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Mapping, Optional, Union

from ai import prompts
from ai.adapters.base import TextResult, TextStreamResult, TokenUsage
from ai.adapters.router import ProviderRouter
from ai.schemas import (
    AskTextRequest,
    DescribeImageRequest,
    EmailReplyRequest,
    HighlighterOutput,
    HighlighterRequest,
    KeywordsOutput,
    KeywordsRequest,
    MeetingNotesOutput,
    MeetingNotesRequest,
    PlannerRequest,
    RequestConfig,
    SentimentOutput,
    SentimentRequest,
    SummarizeRequest,
    TranslateRequest,
    response_fields,
)
from core.logging import logger
from core.monitoring import MonitoringService
from services.highlighter import normalize_highlights

PLANNER_DEFAULT_TEMPERATURE = 0.3

# Prefix of the error body returned when a task fails
FAILURE_MESSAGES = {
    "summarize": "Failed to summarize text",
    "translate": "Failed to translate text",
    "email_reply": "Failed to generate email reply",
    "ask_text": "Failed to answer question",
    "planner": "Failed to generate plan",
    "sentiment": "Failed to analyze sentiment",
    "keywords": "Failed to extract keywords from text",
    "highlighter": "Failed to generate highlights",
    "meeting_notes": "Failed to extract meeting notes",
    "describe_image": "Failed to describe image",
}

TextTaskResult = Union[Dict[str, Any], TextStreamResult]


def map_usage(usage: Union[TokenUsage, Mapping[str, Any], None]) -> Dict[str, int]:
    """Rename backend usage into {input_tokens, output_tokens, total_tokens}; missing counts are 0."""
    if usage is None:
        return TokenUsage().to_public()
    if isinstance(usage, TokenUsage):
        return usage.to_public()
    return TokenUsage.from_counts(
        usage.get("promptTokens", usage.get("prompt_tokens")),
        usage.get("completionTokens", usage.get("completion_tokens")),
        usage.get("totalTokens", usage.get("total_tokens")),
    ).to_public()


def create_final_response(response: Mapping[str, Any], api_version: str) -> Dict[str, Any]:
    return {**response, "apiVersion": api_version}


class TaskService:
    def __init__(
        self,
        router: ProviderRouter,
        monitoring: Optional[MonitoringService] = None,
        api_version: str = "v1",
    ):
        self.router = router
        self.monitoring = monitoring
        self.api_version = api_version

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    async def _run(self, task: str, config: RequestConfig, call: Callable[[], Awaitable[Any]]) -> Any:
        """Await a dispatch call, recording latency and failures."""
        started = time.monotonic()
        try:
            result = await call()
        except Exception as e:
            logger.error(f"{task} via {config.provider} failed: {e}")
            if self.monitoring:
                self.monitoring.log_error(task, config.provider, e)
                self.monitoring.log_request(task, config.provider, time.monotonic() - started, status="error")
            raise
        if self.monitoring:
            self.monitoring.log_request(task, config.provider, time.monotonic() - started)
        return result

    def _envelope(self, task: str, config: RequestConfig, body: Dict[str, Any], result: Any) -> Dict[str, Any]:
        usage = map_usage(result.usage)
        if self.monitoring:
            self.monitoring.log_usage(task, config.provider, usage)
        response = {
            **body,
            "provider": config.provider,
            "model": config.model or result.model,
            "usage": usage,
        }
        return create_final_response(response, self.api_version)

    async def _text_task(self, task: str, field: str, prompt: str, config: RequestConfig) -> TextTaskResult:
        result = await self._run(task, config, lambda: self.router.process_text_output_request(prompt, config))
        if isinstance(result, TextStreamResult):
            return result
        return self._envelope(task, config, {field: result.text}, result)

    async def stream_events(
        self,
        task: str,
        config: RequestConfig,
        start: Callable[[], Awaitable[TextStreamResult]],
    ) -> AsyncIterator[Dict[str, Any]]:
        """
        Event sequence for a streaming task.

        Chunk events are forwarded as the backend produces them, followed by a
        terminal ``done`` event with usage. Any failure, including one raised
        before the first chunk, ends the sequence with ``{error, done: true}``.
        """
        model = config.model
        result = None
        try:
            # start() is a task method, which records its own request metrics
            result = await start()
            model = model or result.model
            async with aclosing(result.text_stream) as chunks:
                async for chunk in chunks:
                    yield {"chunk": chunk, "provider": config.provider, "model": model, "version": self.api_version}
            usage = map_usage(await result.usage)
            if self.monitoring:
                self.monitoring.log_usage(task, config.provider, usage)
            yield {
                "done": True,
                "usage": usage,
                "provider": config.provider,
                "model": model,
                "version": self.api_version,
            }
        except Exception as e:
            logger.error(f"Streaming error in {task}: {e}")
            if result is not None and self.monitoring:
                self.monitoring.log_error(task, config.provider, e)
            yield {"error": str(e), "done": True}

    # ------------------------------------------------------------------
    # Text tasks (streamable)
    # ------------------------------------------------------------------

    async def summarize(self, request: SummarizeRequest) -> TextTaskResult:
        prompt = prompts.summarize_prompt(request.payload.text, request.payload.max_length)
        return await self._text_task("summarize", "summary", prompt, request.config)

    async def translate(self, request: TranslateRequest) -> TextTaskResult:
        prompt = prompts.translate_prompt(request.payload.text, request.payload.target_language)
        return await self._text_task("translate", "translation", prompt, request.config)

    async def email_reply(self, request: EmailReplyRequest) -> TextTaskResult:
        p = request.payload
        prompt = prompts.email_reply_prompt(p.text, p.custom_instruction, p.sender_name, p.recipient_name)
        return await self._text_task("email_reply", "reply", prompt, request.config)

    async def ask_text(self, request: AskTextRequest) -> TextTaskResult:
        prompt = prompts.ask_text_prompt(request.payload.text, request.payload.question)
        return await self._text_task("ask_text", "answer", prompt, request.config)

    # ------------------------------------------------------------------
    # Planner
    # ------------------------------------------------------------------

    async def plan(self, request: PlannerRequest) -> Dict[str, Any]:
        started = time.monotonic()
        p = request.payload
        prompt = prompts.planner_prompt(
            p.task,
            p.context,
            p.max_steps,
            p.detail_level,
            p.include_time_estimates,
            p.include_risks,
            p.domain,
        )
        # The plan is returned as one document, never streamed
        config = request.config.model_copy(update={
            "temperature": request.config.temperature or PLANNER_DEFAULT_TEMPERATURE,
            "stream": False,
        })
        result: TextResult = await self._run(
            "planner", config, lambda: self.router.process_text_output_request(prompt, config)
        )

        usage = map_usage(result.usage)
        if self.monitoring:
            self.monitoring.log_usage("planner", config.provider, usage)
        generated_at = datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
        response = {
            "plan": result.text,
            "metadata": {
                "generatedAt": generated_at,
                "provider": config.provider,
                "model": config.model or result.model or "",
                "processingTime": int((time.monotonic() - started) * 1000),
            },
            "usage": usage,
        }
        return create_final_response(response, self.api_version)

    # ------------------------------------------------------------------
    # Structured tasks
    # ------------------------------------------------------------------

    async def sentiment(self, request: SentimentRequest) -> Dict[str, Any]:
        config = request.config
        prompt = prompts.sentiment_prompt(request.payload.text, request.payload.categories)
        result = await self._run(
            "sentiment", config,
            lambda: self.router.process_structured_output_request(prompt, SentimentOutput, config),
        )
        output: SentimentOutput = result.object
        body = {
            "sentiment": output.sentiment,
            "confidence": output.confidence,
            "emotions": [e.model_dump() for e in output.emotions],
        }
        return self._envelope("sentiment", config, body, result)

    async def keywords(self, request: KeywordsRequest) -> Dict[str, Any]:
        config = request.config
        prompt = prompts.keywords_prompt(request.payload.text, request.payload.max_keywords)
        temperature = request.payload.temperature if request.payload.temperature is not None else config.temperature
        result = await self._run(
            "keywords", config,
            lambda: self.router.process_structured_output_request(prompt, KeywordsOutput, config, temperature),
        )
        return self._envelope("keywords", config, {"keywords": result.object.keywords}, result)

    async def highlighter(self, request: HighlighterRequest) -> Dict[str, Any]:
        config = request.config
        text = request.payload.text
        prompt = prompts.highlighter_prompt(text, request.payload.max_highlights)
        temperature = request.payload.temperature if request.payload.temperature is not None else config.temperature
        result = await self._run(
            "highlighter", config,
            lambda: self.router.process_structured_output_request(prompt, HighlighterOutput, config, temperature),
        )
        spans = normalize_highlights(text, result.object.highlights)
        body = {"highlights": [span.model_dump() for span in spans]}
        return self._envelope("highlighter", config, body, result)

    async def meeting_notes(self, request: MeetingNotesRequest) -> Dict[str, Any]:
        config = request.config
        prompt = prompts.meeting_notes_prompt(request.payload.text)
        result = await self._run(
            "meeting_notes", config,
            lambda: self.router.process_structured_output_request(prompt, MeetingNotesOutput, config),
        )
        # Null owner/estimate/meeting_date are omitted rather than sent as null
        return self._envelope("meeting_notes", config, response_fields(result.object), result)

    # ------------------------------------------------------------------
    # Vision
    # ------------------------------------------------------------------

    async def describe_image(self, request: DescribeImageRequest) -> Dict[str, Any]:
        config = request.config
        result = await self._run(
            "describe_image", config,
            lambda: self.router.generate_image_response(request.payload.images, config),
        )
        return self._envelope("describe_image", config, {"description": result.text}, result)
