from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import anyio
import httpx
import uvicorn
from fastapi import Body, Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse

from config.settings import Settings, get_settings
from relay.core.schemas import PromptRequest
from relay.relay import StreamRelay, build_upstream_request
from relay.upstream import OpenAIChatClient, UpstreamConnectionError, build_http_client


settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="[%(asctime)s] %(levelname)s - %(message)s",
)
logger = logging.getLogger("prompt_stream")

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


class RelayHTTPError(Exception):
    """Error reported to the caller as ``{"message": ...}`` before streaming starts."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.http_client = build_http_client(settings)
    logger.info(
        "OpenAI relay ready: model=%s key_set=%s port=%s",
        settings.openai_model,
        bool(settings.openai_api_key),
        settings.port,
    )
    try:
        yield
    finally:
        await app.state.http_client.aclose()


app = FastAPI(title="OpenAI Prompt Stream Relay", version="1.0.0", lifespan=lifespan)

# CORS: allow local frontend during development
if settings.app_env.lower() in {"dev", "development", "local"}:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(RelayHTTPError)
async def relay_http_error_handler(request: Request, exc: RelayHTTPError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


def get_openai_client(
    request: Request, settings: Settings = Depends(get_settings)
) -> OpenAIChatClient:
    return OpenAIChatClient(settings, request.app.state.http_client)


async def _close_upstream(fragments: AsyncIterator[str], response: httpx.Response) -> None:
    with anyio.CancelScope(shield=True):
        await fragments.aclose()
        await response.aclose()


async def _stream_body(
    first: str,
    fragments: AsyncIterator[str],
    relay: StreamRelay,
    response: httpx.Response,
) -> AsyncIterator[str]:
    try:
        if first:
            yield first
        async for fragment in fragments:
            yield fragment
    except httpx.HTTPError:
        # Headers are committed; re-raising aborts the connection instead of
        # finishing the chunked body as if the answer were complete.
        logger.warning(
            "Aborting client stream after %s fragments", relay.fragments_sent
        )
        raise
    finally:
        await _close_upstream(fragments, response)
        logger.info(
            "Streaming complete: state=%s fragments=%s",
            relay.state.value,
            relay.fragments_sent,
        )


@app.post("/prompt-stream")
async def prompt_stream(
    req: Optional[PromptRequest] = Body(default=None),
    settings: Settings = Depends(get_settings),
    client: OpenAIChatClient = Depends(get_openai_client),
):
    if req is None or not req.messages:
        raise RelayHTTPError(400, "Messages is required")

    upstream = build_upstream_request(req.messages, settings)
    logger.info(
        "Config: model=%s key_set=%s url=%s",
        upstream.model,
        bool(settings.openai_api_key),
        settings.openai_api_url,
    )
    logger.info("Incoming prompt: turns=%s", len(req.messages))
    logger.debug("Messages: %s", [turn.model_dump() for turn in upstream.messages])

    try:
        response = await client.open_stream(upstream)
    except UpstreamConnectionError as exc:
        logger.error("Error calling OpenAI API: %s", exc)
        raise RelayHTTPError(500, "Error communicating with OpenAI") from exc

    relay = StreamRelay()
    fragments = relay.relay(response.aiter_lines())

    # Read up to the first fragment while the status code can still change.
    # Until the StreamingResponse takes over, this handler owns the upstream.
    try:
        first = await fragments.__anext__()
    except StopAsyncIteration:
        first = ""
    except httpx.HTTPError:
        await _close_upstream(fragments, response)
        return PlainTextResponse("Error during OpenAI streaming", status_code=500)
    except BaseException:
        await _close_upstream(fragments, response)
        raise

    return StreamingResponse(
        _stream_body(first, fragments, relay, response),
        media_type="text/event-stream",
        headers=STREAM_HEADERS,
    )


@app.get("/health")
def health():
    return {"status": "ok"}


def run() -> None:
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
