from relay.upstream.openai_client import (
    OpenAIChatClient,
    UpstreamConnectionError,
    build_http_client,
)

__all__ = ["OpenAIChatClient", "UpstreamConnectionError", "build_http_client"]
