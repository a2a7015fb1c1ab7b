"""Runtime settings, read from ``P402_``-prefixed environment variables."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_API_BASE_URL = "https://p402.crestal.dev/"


class SyncSettings(BaseSettings):
    """Configuration for talking to the agent API.

    Every field can be overridden with an environment variable, e.g.
    ``P402_API_BASE_URL`` or ``P402_TOKEN_TIMEOUT``, or passed directly.
    """

    model_config = SettingsConfigDict(
        env_prefix="P402_",
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    api_base_url: str = DEFAULT_API_BASE_URL
    request_timeout: float = Field(30.0, gt=0)
    token_timeout: float = Field(10.0, gt=0)
    chat_page_size: int = Field(50, ge=1, le=200)
