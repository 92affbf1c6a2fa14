from typing import Any, Literal

from pydantic import BaseModel, ConfigDict


class ChatMessage(BaseModel):
    """A single assistant message in a completion response."""
    role: str = "assistant"
    content: str


class ModelsResponse(BaseModel):
    """Model list; always empty since the proxy keeps no catalog."""
    object: Literal["list"] = "list"
    data: list[dict[str, Any]] = []


class Usage(BaseModel):
    """Token usage information. Extra upstream counters are kept."""
    model_config = ConfigDict(extra="allow")

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatCompletionChoice(BaseModel):
    """A single completion choice."""
    index: int
    message: ChatMessage
    finish_reason: str | None = None


class ChatCompletionResponse(BaseModel):
    """OpenAI-compatible chat completion response."""
    id: str
    object: Literal["chat.completion"] = "chat.completion"
    created: int
    model: str
    choices: list[ChatCompletionChoice]
    usage: Usage


class HealthResponse(BaseModel):
    status: Literal["ok"] = "ok"
    service: str
    reasoning_display: bool
    thinking_mode: bool
    nim_api_base: str
    api_key_configured: bool
