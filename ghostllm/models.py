"""Request and response models for the GhostLLM gateway.

The chat and completion shapes follow the OpenAI wire format, which is the
canonical interchange format inside the gateway. Provider adapters translate
to and from it.
"""

import time
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class Provider(str, Enum):
    """Backend providers a request can be routed to."""

    LOCAL = "ollama"
    OPENAI = "openai"
    CLAUDE = "claude"
    GOOGLE = "google"
    COPILOT = "github_copilot"

    @classmethod
    def parse(cls, name: str) -> "Provider":
        """Parse a provider name from a request body or config file.

        Raises:
            ValueError: If the name does not match any provider.
        """
        normalized = name.strip().lower()
        if normalized == "local":
            return cls.LOCAL
        try:
            return cls(normalized)
        except ValueError:
            choices = ", ".join(p.value for p in cls)
            raise ValueError(
                "Unknown provider '{}'. Expected one of: {}".format(name, choices)
            ) from None


class ChatMessage(BaseModel):
    """A single message in a chat conversation."""

    role: str
    content: str


class ChatRequest(BaseModel):
    """Incoming chat-completion request in canonical form."""

    model: str = "llama2"
    messages: List[ChatMessage]
    temperature: Optional[float] = None
    max_tokens: Optional[int] = Field(default=None, ge=0)
    stream: Optional[bool] = None
    provider: Optional[Provider] = Field(
        default=None, description="Explicit provider override"
    )

    @field_validator("provider", mode="before")
    @classmethod
    def _parse_provider(cls, value: object) -> object:
        if isinstance(value, str):
            return Provider.parse(value)
        return value


class CompletionRequest(BaseModel):
    """Incoming text-completion request."""

    model: str = "llama2"
    prompt: str
    temperature: Optional[float] = None
    max_tokens: Optional[int] = Field(default=None, ge=0)
    stream: Optional[bool] = None


class UsageInfo(BaseModel):
    """Token usage counters reported with every response."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatChoice(BaseModel):
    index: int = 0
    message: ChatMessage
    finish_reason: str = "stop"


class ChatResponse(BaseModel):
    """Canonical chat-completion response."""

    id: str
    object: str = "chat.completion"
    created: int
    model: str
    choices: List[ChatChoice]
    usage: UsageInfo


class CompletionChoice(BaseModel):
    index: int = 0
    text: str
    finish_reason: str = "stop"


class CompletionResponse(BaseModel):
    """Canonical text-completion response."""

    id: str
    object: str = "text_completion"
    created: int
    model: str
    choices: List[CompletionChoice]
    usage: UsageInfo


class ModelInfo(BaseModel):
    id: str
    object: str = "model"
    created: int = 1677610602
    owned_by: str


class ModelList(BaseModel):
    object: str = "list"
    data: List[ModelInfo] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: str = "healthy"
    service: str
    gpu_enabled: bool = True


class ErrorDetail(BaseModel):
    """Structured error detail."""

    message: str
    type: str
    code: int


class ErrorResponse(BaseModel):
    """Error response envelope."""

    error: ErrorDetail


class TaskRequest(BaseModel):
    """Free-form fields of a development-assistant task."""

    code: Optional[str] = None
    context: Optional[str] = None
    language: Optional[str] = None
    task: Optional[str] = None
    model: Optional[str] = None


class TaskEnvelope(BaseModel):
    """Successful task-layer response."""

    type: str
    content: str
    timestamp: int
    status: str = "success"
    provider: str
    model: str


class TaskErrorEnvelope(BaseModel):
    """Task-layer failure, reported in place of a TaskEnvelope."""

    type: str = "error"
    message: str
    timestamp: int
    status: str = "error"


def completion_id() -> str:
    """Return a response id derived from the current timestamp."""
    return "chatcmpl-{}".format(time.time_ns())


def now() -> int:
    """Return the current time in epoch seconds."""
    return int(time.time())
