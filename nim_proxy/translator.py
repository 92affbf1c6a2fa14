import time
import uuid
from collections.abc import Mapping
from typing import Any

from nim_proxy.config import Settings
from nim_proxy.errors import InvalidRequest
from nim_proxy.models import (
    ChatCompletionChoice,
    ChatCompletionResponse,
    ChatMessage,
    Usage,
)
from nim_proxy.reasoning import ReasoningRecombiner, combine_message, pop_reasoning

DEFAULT_TEMPERATURE = 0.6
DEFAULT_MAX_TOKENS = 9024

# Accepted names for the output length, in order of preference
MAX_TOKENS_FIELDS = ("max_tokens", "max_completion_tokens")
PASSTHROUGH_FIELDS = ("top_p", "presence_penalty", "frequency_penalty", "stop")


def validate_request(body: Any) -> None:
    if not isinstance(body, Mapping):
        raise InvalidRequest("Request body must be a JSON object")
    if not body.get("model"):
        raise InvalidRequest("Missing required field: model")
    if not isinstance(body.get("messages"), list):
        raise InvalidRequest("Missing/invalid field: messages (must be an array)")


def translate_request(body: Any, settings: Settings) -> dict[str, Any]:
    """
    Map an OpenAI chat completion request onto the NIM request.

    The model name is forwarded untouched and unknown fields are dropped.
    The keys of the result match ``AsyncOpenAI.chat.completions.create``.
    """
    validate_request(body)

    temperature = body.get("temperature")
    max_tokens = next(
        (body[name] for name in MAX_TOKENS_FIELDS if body.get(name) is not None),
        DEFAULT_MAX_TOKENS,
    )

    nim_request: dict[str, Any] = {
        "model": body["model"],
        "messages": body["messages"],
        "temperature": DEFAULT_TEMPERATURE if temperature is None else temperature,
        "max_tokens": max_tokens,
        "stream": bool(body.get("stream")),
    }

    for name in PASSTHROUGH_FIELDS:
        if body.get(name) is not None:
            nim_request[name] = body[name]

    if settings.enable_thinking_mode:
        nim_request["extra_body"] = {"chat_template_kwargs": {"thinking": True}}

    return nim_request


def translate_response(
    upstream: Any,
    model: str,
    settings: Settings,
) -> ChatCompletionResponse:
    """Map a complete NIM response onto the OpenAI response shape."""
    upstream = upstream if isinstance(upstream, Mapping) else {}
    raw_choices = upstream.get("choices")
    if not isinstance(raw_choices, list):
        raw_choices = []

    choices = []
    for i, choice in enumerate(raw_choices):
        choice = choice if isinstance(choice, Mapping) else {}
        message = dict(choice.get("message") or {})
        reasoning = pop_reasoning(message)
        content = message.get("content")

        index = choice.get("index")
        finish_reason = choice.get("finish_reason")
        role = message.get("role")
        choices.append(ChatCompletionChoice(
            index=index if isinstance(index, int) and not isinstance(index, bool) else i,
            message=ChatMessage(
                role=role if isinstance(role, str) and role else "assistant",
                content=combine_message(
                    reasoning,
                    content if isinstance(content, str) else None,
                    settings.show_reasoning,
                ),
            ),
            finish_reason=finish_reason if isinstance(finish_reason, str) and finish_reason else None,
        ))

    usage = upstream.get("usage")
    if isinstance(usage, Mapping):
        # NIM may report counters it did not compute as null
        usage = {name: value for name, value in usage.items() if value is not None}
    return ChatCompletionResponse(
        id=f"chatcmpl-{uuid.uuid4().hex}",
        created=int(time.time()),
        model=model,
        choices=choices,
        usage=Usage.model_validate(usage) if isinstance(usage, dict) else Usage(),
    )


def translate_chunk(payload: Any, recombiner: ReasoningRecombiner) -> Any:
    """Rewrite the first choice's delta of a streamed chunk in place."""
    if not isinstance(payload, Mapping):
        return payload
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], Mapping):
        return payload

    delta = choices[0].get("delta")
    if isinstance(delta, dict):
        recombiner.rewrite_delta(delta)
    return payload
