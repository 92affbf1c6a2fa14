from collections.abc import Mapping
from typing import Any


class ProxyError(Exception):
    """Base error rendered as an OpenAI-style error envelope."""

    status_code: int = 500
    error_type: str = "server_error"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_envelope(self) -> dict[str, Any]:
        return {
            "error": {
                "message": self.message,
                "type": self.error_type,
                "code": self.status_code,
            }
        }


class InvalidRequest(ProxyError):
    status_code = 400
    error_type = "invalid_request_error"


class ServerMisconfigured(ProxyError):
    status_code = 500
    error_type = "server_error"


class UpstreamError(ProxyError):
    status_code = 500
    error_type = "upstream_error"


class NotFound(ProxyError):
    status_code = 404
    error_type = "invalid_request_error"


class StreamDecodeError(ValueError):
    """A single SSE payload could not be decoded; never fatal to the stream."""


def extract_error_message(body: Any, fallback: str | None = None) -> str:
    """
    Pick the most useful message out of an upstream error body.

    Upstream errors come in several shapes, tried in order:
        1. a plain string body
        2. {"error": {"message": "..."}}
        3. {"error": "..."}
        4. {"message": "..."}
    then the caller's fallback (usually the exception message), then a
    generic message.
    """
    if isinstance(body, str) and body.strip():
        return body.strip()

    if isinstance(body, Mapping):
        error = body.get("error")
        if isinstance(error, Mapping):
            message = error.get("message")
            if isinstance(message, str) and message:
                return message
        if isinstance(error, str) and error:
            return error
        message = body.get("message")
        if isinstance(message, str) and message:
            return message

    if fallback:
        return fallback
    return "Internal server error"
