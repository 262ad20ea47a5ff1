"""Chat configuration schema."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ChatConfig(BaseModel):
    """Settings for the remote text-generation service.

    Loaded from the ``[chat]`` table of defaults.toml. ``model`` is a LiteLLM
    model identifier, so any provider LiteLLM routes to can back the chat.
    """

    model: str = Field(
        default="gemini/gemini-3-pro-preview",
        description="LiteLLM model identifier",
    )
    display_name: str = Field(default="Gemini", description="Human-friendly model name")
    api_key_env: str = Field(
        default="GEMINI_API_KEY", description="Environment variable name holding the API key"
    )
    api_base: str = Field(default="", description="Custom API base URL (empty = provider default)")
    timeout: float = Field(default=120.0, gt=0, description="Request timeout in seconds")
    system_prompt: str = Field(default="", description="Optional system message sent first")
