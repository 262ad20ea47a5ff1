"""LiteLLM adapter implementing the StreamProvider interface.

Opens a streaming completion through ``litellm.acompletion(stream=True)``
and turns each chunk's delta into a text fragment. Provider exceptions are
translated into AuthorizationFailure or TransportFailure; nothing is
retried.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator

import litellm

# Suppress LiteLLM's "Give Feedback / Get Help" and "Provider List" banners
litellm.suppress_debug_info = True

from streamchat.errors import (
    AuthorizationFailure,
    ErrorKind,
    StreamChatError,
    TransportFailure,
    classify_failure,
)
from streamchat.providers.base import StreamProvider

logger = logging.getLogger(__name__)


# (reason, substrings of the lowered error text), checked in order
_REASON_MARKERS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("timeout", ("timeout", "timed out")),
    ("rejected key", ("401", "403", "api key")),
    ("service unavailable", ("503", "unavailable")),
    ("server error", ("500", "internal")),
    ("connection error", ("connection",)),
)


def _short_error_reason(error: BaseException) -> str:
    """Short reason for a failed stream, for log lines."""
    if isinstance(error, (TimeoutError, litellm.Timeout)):
        return "timeout"
    lowered = str(error).lower()
    for reason, markers in _REASON_MARKERS:
        if any(marker in lowered for marker in markers):
            return reason
    return str(error)[:80] or type(error).__name__


class LiteLLMStreamProvider(StreamProvider):
    """Streams replies from any model LiteLLM can route to."""

    @property
    def api_key(self) -> str:
        """The API key, read from the environment on every access."""
        return os.environ.get(self._config.api_key_env, "")

    async def open_stream(self, prompt: str) -> AsyncIterator[str]:
        kwargs = self._build_completion_kwargs(prompt)
        try:
            response = await litellm.acompletion(**kwargs)
        except StreamChatError:
            raise
        except Exception as e:
            raise self._translate(e, "open") from e

        return self._iter_fragments(response)

    async def _iter_fragments(self, response) -> AsyncIterator[str]:
        try:
            async for chunk in response:
                yield self._extract_delta(chunk)
        except StreamChatError:
            raise
        except Exception as e:
            raise self._translate(e, "mid-stream") from e

    def _build_completion_kwargs(self, prompt: str) -> dict:
        """Build the kwargs dict for litellm.acompletion."""
        messages = [{"role": "user", "content": prompt}]
        if self._config.system_prompt:
            messages.insert(0, {"role": "system", "content": self._config.system_prompt})

        kwargs: dict = {
            "model": self._config.model,
            "messages": messages,
            "stream": True,
            "timeout": float(self._config.timeout),
        }

        api_key = self.api_key
        if api_key:
            kwargs["api_key"] = api_key

        if self._config.api_base:
            kwargs["api_base"] = self._config.api_base

        return kwargs

    @staticmethod
    def _extract_delta(chunk) -> str:
        choices = getattr(chunk, "choices", None)
        if not choices:
            return ""
        delta = getattr(choices[0], "delta", None)
        if delta is None:
            return ""
        return getattr(delta, "content", None) or ""

    def _translate(self, error: Exception, phase: str) -> StreamChatError:
        """Convert a provider exception into one of our failure types."""
        logger.warning(
            "Stream %s failure for %s (%s)",
            phase, self._config.display_name, _short_error_reason(error),
        )
        if classify_failure(error) == ErrorKind.AUTHORIZATION:
            return AuthorizationFailure(
                f"Authorization failed for {self._config.model}. "
                f"Check that {self._config.api_key_env} is set to a billable key: {error}"
            )
        return TransportFailure(f"Stream {phase} failed for {self._config.model}: {error}")
