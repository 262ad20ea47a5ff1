"""Per-exchange session state and exchange results."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field

from streamchat.errors import ErrorKind
from streamchat.schemas.transcript import EntryRef


class SessionStatus(StrEnum):
    """Lifecycle of a single request/response exchange."""

    IDLE = "idle"
    AWAITING = "awaiting"
    STREAMING = "streaming"
    FAILED = "failed"


class SessionState(BaseModel):
    """Ephemeral state of the exchange currently being driven.

    ``pending_entry`` is a non-owning reference into the transcript and is
    only set while the status is AWAITING or STREAMING.
    """

    status: SessionStatus = Field(default=SessionStatus.IDLE)
    pending_entry: EntryRef | None = Field(default=None)
    last_error: str | None = Field(
        default=None, description="Diagnostic for the most recent failed exchange"
    )

    @property
    def is_busy(self) -> bool:
        return self.status in (SessionStatus.AWAITING, SessionStatus.STREAMING)


class ExchangeOutcome(StrEnum):
    """How an accepted exchange resolved."""

    COMPLETED = "completed"
    FAILED = "failed"


class ExchangeResult(BaseModel):
    """Summary of one accepted submit() call."""

    outcome: ExchangeOutcome
    prompt: str = Field(description="The trimmed user text that was submitted")
    text: str = Field(default="", description="Assistant text accumulated")
    fragment_count: int = Field(default=0, ge=0)
    error_kind: ErrorKind | None = Field(default=None)
    error: str | None = Field(default=None, description="User-facing diagnostic")
    elapsed: float = Field(default=0.0, ge=0.0, description="Wall time in seconds")

    @property
    def ok(self) -> bool:
        return self.outcome == ExchangeOutcome.COMPLETED
