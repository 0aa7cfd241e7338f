from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


Role = Literal["system", "user", "assistant"]


class ConversationTurn(BaseModel):
    role: Role = Field(..., description="'system', 'user' or 'assistant'")
    content: str


class PromptRequest(BaseModel):
    messages: Optional[List[ConversationTurn]] = Field(
        default=None,
        description="Conversation so far, oldest first. The system turn is added by the relay.",
    )


class UpstreamRequest(BaseModel):
    """Body of one streaming chat-completions call."""

    model: str
    messages: List[ConversationTurn]
    stream: bool = True
