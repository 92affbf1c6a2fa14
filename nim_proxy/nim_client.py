import logging
from typing import Any

import httpx
from openai import APIError, APIStatusError, AsyncOpenAI

from nim_proxy.config import Settings
from nim_proxy.errors import ServerMisconfigured, UpstreamError, extract_error_message

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def to_upstream_error(exc: Exception) -> UpstreamError:
    """Map an SDK/transport failure onto an UpstreamError, keeping the upstream status."""
    if isinstance(exc, APIStatusError):
        return UpstreamError(
            extract_error_message(exc.body, fallback=exc.message),
            status_code=exc.status_code,
        )
    return UpstreamError(extract_error_message(None, fallback=str(exc) or None))


class NIMClient:
    """Client for the NVIDIA NIM chat completions API.

    Responses are read raw so the proxy controls the translation; the SDK is
    used for the request, auth and error mapping only.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None) -> None:
        self.base_url = settings.nim_api_base
        if settings.api_key_configured:
            self.client = AsyncOpenAI(
                api_key=settings.nim_api_key.get_secret_value(),
                base_url=settings.nim_api_base,
                max_retries=0,
                timeout=settings.upstream_timeout,
                http_client=http_client,
            )
            self.available = True
        else:
            logger.warning("NIM_API_KEY is not set. Requests will fail until you set it.")
            self.client = None
            self.available = False

    def _require_client(self) -> AsyncOpenAI:
        if self.client is None:
            raise ServerMisconfigured("Server misconfigured: NIM_API_KEY is not set")
        return self.client

    async def create_completion(self, nim_request: dict[str, Any], request_id: str) -> Any:
        """Send a non-streaming completion and return the decoded JSON body."""
        client = self._require_client()
        try:
            response = await client.chat.completions.with_raw_response.create(
                **nim_request,
                extra_headers={REQUEST_ID_HEADER: request_id},
            )
            return response.http_response.json()
        except (APIError, httpx.HTTPError, ValueError) as e:
            raise to_upstream_error(e) from e

    def open_stream(
        self,
        nim_request: dict[str, Any],
        request_id: str,
    ):
        """
        Start a streaming completion.

        Returns an async context manager; entering it sends the request and
        raises on a non-2xx status, leaving it closes the upstream connection.
        """
        client = self._require_client()
        return client.chat.completions.with_streaming_response.create(
            **nim_request,
            extra_headers={REQUEST_ID_HEADER: request_id},
        )
