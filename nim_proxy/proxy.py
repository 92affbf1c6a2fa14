import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack
from typing import Any

import anyio
import httpx
from fastapi.responses import JSONResponse, StreamingResponse
from openai import APIError

from nim_proxy.config import Settings
from nim_proxy.errors import ServerMisconfigured
from nim_proxy.framing import KEEPALIVE_FRAME, FrameKind, SSEDecoder, SSEFrame, encode_frame
from nim_proxy.nim_client import REQUEST_ID_HEADER, NIMClient, to_upstream_error
from nim_proxy.reasoning import ReasoningRecombiner
from nim_proxy.translator import translate_chunk, translate_request, translate_response

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def resolve_request_id(inbound: str | None) -> str:
    """Reuse the caller's correlation id when it sent one."""
    if inbound and inbound.strip():
        return inbound.strip()
    return uuid.uuid4().hex


class ChatCompletionProxy:
    """Forwards one chat completion request to NIM and translates the answer back."""

    def __init__(self, settings: Settings, client: NIMClient) -> None:
        self.settings = settings
        self.client = client

    async def complete(self, body: Any, request_id: str) -> JSONResponse | StreamingResponse:
        nim_request = translate_request(body, self.settings)

        if not self.settings.api_key_configured:
            raise ServerMisconfigured("Server misconfigured: NIM_API_KEY is not set")

        model = nim_request["model"]
        logger.info(
            f"Chat completion request: id={request_id}, model={model}, "
            f"messages={len(nim_request['messages'])}, stream={nim_request['stream']}"
        )

        if nim_request["stream"]:
            return await self._stream(nim_request, request_id)

        upstream = await self.client.create_completion(nim_request, request_id)
        response = translate_response(upstream, model, self.settings)
        return JSONResponse(
            response.model_dump(),
            headers={REQUEST_ID_HEADER: request_id},
        )

    async def _stream(self, nim_request: dict[str, Any], request_id: str) -> StreamingResponse:
        # Enter the upstream call before answering so an upstream error can
        # still become a proper status code.
        stack = AsyncExitStack()
        try:
            upstream = await stack.enter_async_context(
                self.client.open_stream(nim_request, request_id)
            )
        except (APIError, httpx.HTTPError) as e:
            await stack.aclose()
            raise to_upstream_error(e) from e

        return StreamingResponse(
            self.relay(upstream, stack, request_id),
            media_type="text/event-stream",
            headers={**SSE_HEADERS, REQUEST_ID_HEADER: request_id},
        )

    async def relay(
        self,
        upstream: Any,
        stack: AsyncExitStack,
        request_id: str,
    ) -> AsyncIterator[bytes]:
        """
        Pump upstream SSE frames to the client, rewriting reasoning deltas.

        Leaving the generator for any reason (end of stream, upstream error,
        client disconnect) closes the upstream connection.
        """
        decoder = SSEDecoder()
        recombiner = ReasoningRecombiner(self.settings.show_reasoning)
        try:
            yield KEEPALIVE_FRAME
            async for chunk in upstream.iter_bytes():
                for frame in decoder.feed(chunk):
                    yield self._encode(frame, recombiner)
            for frame in decoder.flush():
                yield self._encode(frame, recombiner)
            logger.debug(f"Stream {request_id} completed")
        except (APIError, httpx.HTTPError) as e:
            logger.error(f"Stream error for {request_id}: {e}", exc_info=True)
        finally:
            with anyio.CancelScope(shield=True):
                await stack.aclose()

    @staticmethod
    def _encode(frame: SSEFrame, recombiner: ReasoningRecombiner) -> bytes:
        if frame.kind is FrameKind.JSON:
            translate_chunk(frame.payload, recombiner)
        return encode_frame(frame)
