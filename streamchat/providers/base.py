"""Abstract base class for streaming text providers.

The session controller talks to the remote service exclusively through
this interface; it never calls a provider SDK directly.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from streamchat.schemas.config import ChatConfig


class StreamProvider(ABC):
    """A remote text generator that delivers its reply in fragments."""

    def __init__(self, config: ChatConfig) -> None:
        self._config = config

    @property
    def model_id(self) -> str:
        """LiteLLM model identifier used for routing."""
        return self._config.model

    @property
    def display_name(self) -> str:
        """Human-friendly model name for CLI output."""
        return self._config.display_name

    @property
    def config(self) -> ChatConfig:
        return self._config

    @abstractmethod
    async def open_stream(self, prompt: str) -> AsyncIterator[str]:
        """Open a streaming channel for ``prompt``.

        Awaiting this establishes the channel. The returned iterator yields
        text fragments (possibly empty) in arrival order. It is finite and
        cannot be restarted.

        Raises:
            AuthorizationFailure: If the credential or billing account is
                rejected, either on open or while iterating.
            TransportFailure: For any other failure, either on open or
                while iterating.
        """
