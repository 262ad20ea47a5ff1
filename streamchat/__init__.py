"""streamchat: streaming chat sessions over LiteLLM."""

__version__ = "0.1.0"

from .controller import StreamingSessionController
from .errors import (
    AuthorizationFailure,
    ErrorKind,
    InvalidTargetError,
    StreamChatError,
    TransportFailure,
)
from .schemas import Author, ChatConfig, Entry, EntryRef, ExchangeResult, SessionState, SessionStatus
from .transcript import TranscriptStore

__all__ = [
    "Author",
    "AuthorizationFailure",
    "ChatConfig",
    "Entry",
    "EntryRef",
    "ErrorKind",
    "ExchangeResult",
    "InvalidTargetError",
    "SessionState",
    "SessionStatus",
    "StreamChatError",
    "StreamingSessionController",
    "TranscriptStore",
    "TransportFailure",
]
