import logging
import time
from collections.abc import Mapping

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from nim_proxy.config import Settings

logger = logging.getLogger(__name__)

SENSITIVE_HEADERS = frozenset({"authorization", "proxy-authorization", "cookie", "x-api-key"})
REDACTED = "[REDACTED]"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Debug logging of inbound requests, driven by the LOG_* settings."""

    def __init__(self, app, settings: Settings):
        """
        Initialize the middleware.

        Args:
            app: FastAPI application
            settings: Proxy settings; only the logging toggles are read
        """
        super().__init__(app)
        self.settings = settings

    async def dispatch(self, request: Request, call_next):
        """
        Log the request line, headers and body, then the outcome.

        Response bodies are never logged since they may be event streams.
        """
        settings = self.settings
        path = request.url.path

        if settings.log_headers:
            headers = redact_headers(request.headers, settings.redact_headers)
            logger.info(f"Headers for {request.method} {path}: {headers}")

        if settings.log_bodies and request.method in ("POST", "PUT", "PATCH"):
            body = await request.body()
            text = body.decode("utf-8", errors="replace")
            logger.info(f"Body for {request.method} {path}: {truncate(text, settings.log_max_body_size)}")

        started = time.perf_counter()
        response = await call_next(request)

        if settings.log_requests:
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.info(f"{request.method} {path} -> {response.status_code} ({elapsed_ms:.1f} ms)")

        return response


def redact_headers(headers: Mapping[str, str], enabled: bool = True) -> dict[str, str]:
    """
    Copy headers for logging, masking credentials.

    Example:
        >>> redact_headers({"Authorization": "Bearer abc", "Accept": "*/*"})
        {'Authorization': '[REDACTED]', 'Accept': '*/*'}
    """
    if not enabled:
        return dict(headers)
    return {
        name: REDACTED if name.lower() in SENSITIVE_HEADERS else value
        for name, value in headers.items()
    }


def truncate(text: str, limit: int) -> str:
    if limit <= 0 or len(text) <= limit:
        return text
    return f"{text[:limit]}... [truncated {len(text) - limit} chars]"
