from __future__ import annotations

import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict

from relay.core.prompt import DEFAULT_SYSTEM_PROMPT


load_dotenv()


class Settings(BaseModel):
    """Application settings loaded from environment variables.

    Keep all credentials and config centralized here. Instances are frozen;
    build one with explicit values in tests instead of touching the env.
    """

    model_config = ConfigDict(frozen=True)

    app_env: str = "development"
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-3.5-turbo"
    openai_api_url: str = "https://api.openai.com/v1/chat/completions"
    connect_timeout: float = 10.0
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    host: str = "0.0.0.0"
    port: int = 6002
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            app_env=os.getenv("APP_ENV", "development"),
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            openai_model=os.getenv("OPENAI_MODEL") or "gpt-3.5-turbo",
            openai_api_url=os.getenv(
                "OPENAI_API_URL", "https://api.openai.com/v1/chat/completions"
            ),
            connect_timeout=float(os.getenv("OPENAI_CONNECT_TIMEOUT", "10.0")),
            # An empty SYSTEM_PROMPT falls back to the default instruction.
            system_prompt=os.getenv("SYSTEM_PROMPT") or DEFAULT_SYSTEM_PROMPT,
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "6002")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
