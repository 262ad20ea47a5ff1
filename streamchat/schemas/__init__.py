"""Pydantic schemas for transcript entries, session state and configuration."""

from streamchat.schemas.config import ChatConfig
from streamchat.schemas.session import ExchangeOutcome, ExchangeResult, SessionState, SessionStatus
from streamchat.schemas.transcript import Author, Entry, EntryRef

__all__ = [
    "Author",
    "ChatConfig",
    "Entry",
    "EntryRef",
    "ExchangeOutcome",
    "ExchangeResult",
    "SessionState",
    "SessionStatus",
]
