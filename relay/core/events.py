"""Payloads of the upstream chat-completions event stream.

The upstream answers with ``data: <payload>`` lines where the payload is
either a JSON completion chunk or the ``[DONE]`` sentinel. Line reassembly
across chunk boundaries is left to ``httpx.Response.aiter_lines``.
"""

from __future__ import annotations

import json
import logging
from typing import Any


DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"

logger = logging.getLogger("prompt_stream.events")


def extract_delta(payload: str) -> str:
    """Return ``choices[0].delta.content`` of one completion chunk.

    Raises ``ValueError`` when the payload is not valid JSON. Anything else
    that does not carry text yields an empty string.
    """
    parsed: Any = json.loads(payload)
    if not isinstance(parsed, dict):
        return ""

    if parsed.get("error"):
        logger.warning("Upstream reported an error in-stream: %s", parsed["error"])
        return ""

    choices = parsed.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    first = choices[0]
    if not isinstance(first, dict):
        return ""
    delta = first.get("delta")
    if not isinstance(delta, dict):
        return ""
    content = delta.get("content")
    return content if isinstance(content, str) else ""
