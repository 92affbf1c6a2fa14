import json
import logging

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from nim_proxy.config import Settings, get_settings
from nim_proxy.errors import InvalidRequest, NotFound, ProxyError
from nim_proxy.middleware import RequestLoggingMiddleware
from nim_proxy.models import HealthResponse, ModelsResponse
from nim_proxy.nim_client import REQUEST_ID_HEADER, NIMClient
from nim_proxy.proxy import ChatCompletionProxy, resolve_request_id

SERVICE_NAME = "OpenAI to NVIDIA NIM Proxy (no model mapping)"

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def create_app(
    settings: Settings | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Build the proxy application.

    ``http_client`` is handed to the upstream SDK client; tests use it to
    substitute a mock transport.
    """
    settings = settings or get_settings()
    proxy = ChatCompletionProxy(settings, NIMClient(settings, http_client=http_client))

    app = FastAPI(
        title="OpenAI to NVIDIA NIM Proxy",
        description="OpenAI-compatible chat completions backed by NVIDIA NIM",
        version="1.0.0",
    )
    if settings.log_requests or settings.log_headers or settings.log_bodies:
        app.add_middleware(RequestLoggingMiddleware, settings=settings)
        logger.info("Debug request logging enabled")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ProxyError)
    async def proxy_error_handler(request: Request, exc: ProxyError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"Proxy error: {exc.status_code} {exc.message}")
        else:
            logger.warning(f"Proxy error: {exc.status_code} {exc.message}")
        return JSONResponse(exc.to_envelope(), status_code=exc.status_code)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code in (404, 405):
            error = NotFound(f"Endpoint {request.url.path} not found")
        else:
            error = ProxyError(str(exc.detail), status_code=exc.status_code)
        return JSONResponse(error.to_envelope(), status_code=error.status_code)

    @app.get("/health")
    async def health_check() -> HealthResponse:
        """Status and configuration snapshot."""
        return HealthResponse(
            service=SERVICE_NAME,
            reasoning_display=settings.show_reasoning,
            thinking_mode=settings.enable_thinking_mode,
            nim_api_base=settings.nim_api_base,
            api_key_configured=settings.api_key_configured,
        )

    @app.get("/v1/models")
    @app.get("/models")
    async def list_models() -> ModelsResponse:
        """Model names are passed through as-is, so there is no list to return."""
        return ModelsResponse()

    @app.options("/v1/chat/completions")
    @app.options("/chat/completions")
    async def chat_completions_preflight() -> Response:
        return Response(status_code=204)

    @app.post("/v1/chat/completions", response_model=None)
    @app.post("/chat/completions", response_model=None)
    async def create_chat_completion(request: Request) -> JSONResponse | StreamingResponse:
        """
        Proxy a chat completion to NIM.

        Supports both streaming and non-streaming responses.
        """
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise InvalidRequest(f"Invalid JSON body: {e}") from e

        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        return await proxy.complete(body, request_id)

    return app


def log_startup(settings: Settings) -> None:
    logger.info(f"OpenAI->NVIDIA NIM Proxy running on port {settings.port}")
    logger.info(f"Health check: http://localhost:{settings.port}/health")
    logger.info(f"Reasoning display: {'ENABLED' if settings.show_reasoning else 'DISABLED'}")
    logger.info(f"Thinking mode: {'ENABLED' if settings.enable_thinking_mode else 'DISABLED'}")


def run() -> None:
    import uvicorn

    settings = get_settings()
    configure_logging(settings)
    log_startup(settings)
    uvicorn.run(
        "nim_proxy.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level
    )


configure_logging(get_settings())
app = create_app()


if __name__ == "__main__":
    run()
