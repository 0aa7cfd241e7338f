from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict

import httpx

from relay.core.schemas import UpstreamRequest

if TYPE_CHECKING:
    from config.settings import Settings


logger = logging.getLogger("prompt_stream.upstream")

ERROR_SNIPPET_CHARS = 500


class UpstreamConnectionError(RuntimeError):
    """The upstream stream could not be opened."""


def build_http_client(settings: "Settings") -> httpx.AsyncClient:
    # Only connecting is bounded; a generation may stream for as long as it likes.
    timeout = httpx.Timeout(None, connect=settings.connect_timeout)
    return httpx.AsyncClient(timeout=timeout)


class OpenAIChatClient:
    def __init__(self, settings: "Settings", http_client: httpx.AsyncClient) -> None:
        self._settings = settings
        self._http = http_client

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._settings.openai_api_key}",
            "Content-Type": "application/json",
        }

    async def open_stream(self, upstream: UpstreamRequest) -> httpx.Response:
        """Send one streaming completion request and return the open response.

        The caller owns the returned response and must ``aclose()`` it.
        """
        if not self._settings.openai_api_key:
            raise UpstreamConnectionError(
                "OPENAI_API_KEY not set. Please configure it in environment or .env"
            )

        request = self._http.build_request(
            "POST",
            self._settings.openai_api_url,
            headers=self._headers(),
            json=upstream.model_dump(),
        )
        try:
            response = await self._http.send(request, stream=True)
        except httpx.HTTPError as exc:
            raise UpstreamConnectionError(f"OpenAI API call failed: {exc}") from exc

        if response.is_error:
            try:
                body = await response.aread()
            except httpx.HTTPError:
                body = b""
            finally:
                await response.aclose()
            snippet = body.decode("utf-8", errors="replace")[:ERROR_SNIPPET_CHARS]
            raise UpstreamConnectionError(
                f"OpenAI API returned HTTP {response.status_code}: {snippet}"
            )

        logger.debug("Upstream stream open: status=%s", response.status_code)
        return response
