"""
Request, response and structured-output models for the gateway tasks.

Wire fields are camelCase (``maxLength``, ``targetLanguage``); the models use
snake_case attributes and accept either spelling.
"""
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for payloads whose JSON keys are camelCase."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# === Request Config ===

class RequestConfig(BaseModel):
    """Per-request backend selection."""
    provider: str = Field(..., description="AI service to use", examples=["ollama"])
    model: Optional[str] = Field(None, description="Specific model to use")
    temperature: float = Field(0, ge=0, le=2)
    stream: bool = Field(False, description="Stream the response as server-sent events")


# === Task Payloads ===

class SummarizePayload(CamelModel):
    text: str = Field(..., min_length=1)
    max_length: Optional[int] = Field(None, ge=0)


class TranslatePayload(CamelModel):
    text: str = Field(..., min_length=1, description="Text to translate")
    target_language: str = Field(..., min_length=1, description='Target language code, e.g. "fr", "es", "zh"')


class EmailReplyPayload(CamelModel):
    text: str = Field(..., min_length=1, description="The email content to reply to")
    custom_instruction: Optional[str] = Field(
        None, description='Optional combined guidance/style instruction, e.g., "positive, professional in Tagalog"'
    )
    sender_name: Optional[str] = Field(None, description="Author of the original email; the reply addresses them")
    recipient_name: Optional[str] = Field(None, description="Person writing the reply")


class AskTextPayload(CamelModel):
    text: str = Field(..., min_length=1, description="The text context to base the answer on")
    question: str = Field(..., min_length=1, description="The question to answer based on the text")


class PlannerPayload(CamelModel):
    task: str = Field(..., min_length=1, description="The task or goal to create a plan for")
    context: Optional[str] = Field(None, description="Additional context or constraints for the plan")
    max_steps: int = Field(10, ge=1, description="Maximum number of steps to include")
    detail_level: Literal["basic", "detailed", "comprehensive"] = "detailed"
    include_time_estimates: bool = True
    include_risks: bool = True
    domain: Optional[str] = Field(None, description='Domain or field of the task (e.g., "software development")')


class SentimentPayload(CamelModel):
    text: str = Field(..., min_length=1, max_length=10000)
    categories: Optional[List[str]] = None


class KeywordsPayload(CamelModel):
    text: str = Field(..., min_length=1)
    max_keywords: Optional[int] = Field(None, gt=0)
    temperature: Optional[float] = Field(None, ge=0, le=1)


class HighlighterPayload(CamelModel):
    text: str = Field(..., min_length=1)
    max_highlights: Optional[int] = Field(None, gt=0)
    temperature: Optional[float] = Field(None, ge=0, le=1)


class MeetingNotesPayload(CamelModel):
    text: str = Field(..., min_length=1)


class DescribeImagePayload(CamelModel):
    images: List[str] = Field(..., min_length=1, description="Base64 encoded images")


# === Requests ({payload, config}) ===

class SummarizeRequest(BaseModel):
    payload: SummarizePayload
    config: RequestConfig


class TranslateRequest(BaseModel):
    payload: TranslatePayload
    config: RequestConfig


class EmailReplyRequest(BaseModel):
    payload: EmailReplyPayload
    config: RequestConfig


class AskTextRequest(BaseModel):
    payload: AskTextPayload
    config: RequestConfig


class PlannerRequest(BaseModel):
    payload: PlannerPayload
    config: RequestConfig


class SentimentRequest(BaseModel):
    payload: SentimentPayload
    config: RequestConfig


class KeywordsRequest(BaseModel):
    payload: KeywordsPayload
    config: RequestConfig


class HighlighterRequest(BaseModel):
    payload: HighlighterPayload
    config: RequestConfig


class MeetingNotesRequest(BaseModel):
    payload: MeetingNotesPayload
    config: RequestConfig


class DescribeImageRequest(BaseModel):
    payload: DescribeImagePayload
    config: RequestConfig


# === Structured Output Targets ===
# What the model is asked to return; validated before any post-processing.

class KeywordsOutput(BaseModel):
    """Keywords extracted from the text."""
    keywords: List[str] = Field(..., description="List of keywords extracted from the text")


class EmotionScore(BaseModel):
    emotion: str
    score: float = Field(..., ge=0, le=1)


class SentimentOutput(BaseModel):
    """Sentiment classification with emotion scores."""
    sentiment: str
    categories: Optional[List[str]] = None
    confidence: float = Field(..., ge=0, le=1)
    emotions: List[EmotionScore] = Field(default_factory=list)


class RawHighlight(BaseModel):
    """A highlight as proposed by the model, before normalization."""
    char_start_position: int
    char_end_position: int = Field(..., description="Exclusive end index")
    label: Optional[str] = None
    description: Optional[str] = None


class HighlighterOutput(BaseModel):
    """Highlighted segments of the input text."""
    highlights: List[RawHighlight] = Field(default_factory=list)


class MeetingTask(BaseModel):
    task: str
    owner: Optional[str] = None
    estimate: Optional[str] = Field(
        None, description='Estimated completion time or effort (e.g., "2 weeks", "3 days", "high priority")'
    )


class MeetingNotesOutput(BaseModel):
    """Structured notes extracted from a meeting transcript."""
    decisions: List[str] = Field(default_factory=list, description="Decisions made during the meeting")
    tasks: List[MeetingTask] = Field(default_factory=list, description="Action items identified during the meeting")
    attendees: List[str] = Field(default_factory=list, description="List of attendees if mentioned")
    meeting_date: Optional[str] = Field(
        None, description="Meeting date/time in ISO 8601 (e.g., YYYY-MM-DD or YYYY-MM-DDTHH:mm) if mentioned"
    )
    updates: List[str] = Field(default_factory=list, description="Status updates or progress mentioned")
    summary: str = Field(..., description="Short summary (1–2 sentences) of the meeting")


# === Responses ===

class Usage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


class HighlightSpan(BaseModel):
    """Normalized highlight: word-aligned, non-overlapping, 0 <= start < end <= len(text)."""
    char_start_position: int = Field(..., ge=0)
    char_end_position: int = Field(..., ge=0, description="Exclusive end index")
    label: str = Field(..., min_length=1)
    description: str = ""


class TaskResponse(BaseModel):
    """Fields shared by every task response."""
    provider: Optional[str] = Field(None, description="The AI service that was actually used")
    model: Optional[str] = Field(None, description="The model that was actually used")
    usage: Usage = Field(default_factory=Usage)
    apiVersion: Optional[str] = None


class SummarizeResponse(TaskResponse):
    summary: str


class TranslateResponse(TaskResponse):
    translation: str


class EmailReplyResponse(TaskResponse):
    reply: str


class AskTextResponse(TaskResponse):
    answer: str


class SentimentResponse(TaskResponse):
    sentiment: str
    confidence: float
    emotions: List[EmotionScore]


class KeywordsResponse(TaskResponse):
    keywords: List[str]


class HighlighterResponse(TaskResponse):
    highlights: List[HighlightSpan]


class MeetingNotesResponse(TaskResponse):
    decisions: List[str]
    tasks: List[MeetingTask]
    attendees: List[str]
    meeting_date: Optional[str] = None
    updates: List[str]
    summary: str


class DescribeImageResponse(TaskResponse):
    description: str


class PlannerMetadata(BaseModel):
    generatedAt: str
    provider: str
    model: str
    processingTime: Optional[int] = Field(None, description="Milliseconds taken to generate the plan")


class PlannerResponse(BaseModel):
    plan: str
    metadata: PlannerMetadata
    usage: Optional[Usage] = None
    apiVersion: Optional[str] = None


class ErrorResponse(BaseModel):
    error: str


class ServiceHealth(BaseModel):
    service: str
    available: bool
    timestamp: str


def response_fields(model: BaseModel) -> Dict[str, Any]:
    """Dump a structured output for merging into a response body, dropping unset optionals."""
    return model.model_dump(exclude_none=True)
