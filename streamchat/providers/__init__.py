"""Stream provider layer.

All remote text generation goes through a StreamProvider. The default
implementation routes through LiteLLM.
"""

from streamchat.providers.base import StreamProvider
from streamchat.providers.litellm_provider import LiteLLMStreamProvider
from streamchat.providers.registry import load_chat_config

__all__ = [
    "LiteLLMStreamProvider",
    "StreamProvider",
    "load_chat_config",
]
