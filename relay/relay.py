from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, AsyncIterator, Iterable, List, Optional

from relay.core.events import DATA_PREFIX, DONE_SENTINEL, extract_delta
from relay.core.schemas import ConversationTurn, UpstreamRequest

if TYPE_CHECKING:
    from config.settings import Settings


logger = logging.getLogger("prompt_stream.relay")


def build_upstream_request(
    turns: Iterable[ConversationTurn], settings: "Settings"
) -> UpstreamRequest:
    messages: List[ConversationTurn] = [
        ConversationTurn(role="system", content=settings.system_prompt)
    ]
    messages.extend(turns)
    return UpstreamRequest(model=settings.openai_model, messages=messages, stream=True)


class RelayState(str, Enum):
    STREAMING = "streaming"
    DONE = "done"
    FAILED = "failed"


class StreamRelay:
    """Turns upstream completion event lines into plain text fragments.

    ``feed_line``, ``finish`` and ``fail`` are the three upstream events
    (data, end, error). Once the relay leaves ``STREAMING`` it ignores
    further input.
    """

    def __init__(self) -> None:
        self.state = RelayState.STREAMING
        self.fragments_sent = 0

    def feed_line(self, line: str) -> Optional[str]:
        if self.state is not RelayState.STREAMING:
            return None
        if not line.strip():
            return None
        # Comments and keep-alives carry no payload.
        if not line.startswith(DATA_PREFIX):
            return None

        payload = line[len(DATA_PREFIX):]
        if payload.strip() == DONE_SENTINEL:
            self.state = RelayState.DONE
            return None

        try:
            content = extract_delta(payload)
        except ValueError as exc:
            logger.warning("Error parsing OpenAI response %r: %s", payload, exc)
            return None

        if not content:
            return None
        logger.debug("Sending chunk to client: %r", content)
        self.fragments_sent += 1
        return content

    def finish(self) -> None:
        if self.state is RelayState.STREAMING:
            self.state = RelayState.DONE

    def fail(self, exc: BaseException) -> None:
        if self.state is RelayState.STREAMING:
            logger.error("Error during OpenAI streaming: %s", exc)
            self.state = RelayState.FAILED

    async def relay(self, lines: AsyncIterator[str]) -> AsyncIterator[str]:
        try:
            async for line in lines:
                content = self.feed_line(line)
                if content:
                    yield content
                if self.state is not RelayState.STREAMING:
                    return
        except Exception as exc:
            self.fail(exc)
            raise

        self.finish()
