"""Transcript schemas.

An Entry is one conversation turn. Entries are immutable values: growing
the pending assistant entry swaps the trailing transcript slot for a new
Entry, so a reader holding a snapshot never sees a half-applied merge.
"""

from __future__ import annotations

import uuid
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class Author(StrEnum):
    """Who wrote a transcript entry."""

    USER = "user"
    ASSISTANT = "assistant"


class Entry(BaseModel):
    """A single conversation turn."""

    model_config = ConfigDict(frozen=True)

    author: Author = Field(description="Who wrote this turn")
    text: str = Field(default="", description="Accumulated text content")
    pending: bool = Field(
        default=False,
        description="True while this assistant entry is still receiving fragments",
    )
    entry_id: str = Field(
        default_factory=lambda: uuid.uuid4().hex,
        description="Unique id used to detect stale references",
    )

    def with_text(self, text: str) -> Entry:
        return self.model_copy(update={"text": text})


class EntryRef(BaseModel):
    """Stable reference to a transcript entry returned by append()."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0, description="Position in the transcript")
    entry_id: str = Field(description="Id of the entry at that position")
