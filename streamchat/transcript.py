"""Ordered conversation log with safe mutation primitives.

Only the trailing pending assistant entry may change after it is appended.
Every mutation and every snapshot runs under one lock, so a renderer
reading from another thread always sees whole entries.
"""

from __future__ import annotations

import logging
import threading

from streamchat.errors import InvalidTargetError
from streamchat.schemas.transcript import Author, Entry, EntryRef

logger = logging.getLogger(__name__)


class TranscriptStore:
    """Append-only-by-default log of conversation entries."""

    def __init__(self) -> None:
        self._entries: list[Entry] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def append(self, author: Author, initial_text: str = "", *, pending: bool = False) -> EntryRef:
        """Add a new entry at the end and return a reference to it.

        Raises:
            InvalidTargetError: If a pending entry still trails the log, or
                a pending entry is requested for a user turn.
        """
        if pending and author != Author.ASSISTANT:
            raise InvalidTargetError("Only assistant entries can be pending")

        entry = Entry(author=author, text=initial_text, pending=pending)
        with self._lock:
            if self._entries and self._entries[-1].pending:
                raise InvalidTargetError(
                    "Cannot append while the last entry is still pending"
                )
            self._entries.append(entry)
            index = len(self._entries) - 1

        logger.debug("Appended %s entry at %d (pending=%s)", author, index, pending)
        return EntryRef(index=index, entry_id=entry.entry_id)

    def append_fragment(self, ref: EntryRef, fragment: str) -> None:
        """Concatenate ``fragment`` onto the pending entry ``ref`` points at.

        Raises:
            InvalidTargetError: If ``ref`` is not the last entry, points at a
                different entry than the one it was issued for, or that
                entry is not a pending assistant entry.
        """
        with self._lock:
            entry = self._resolve_last(ref)
            if entry is None:
                raise InvalidTargetError(
                    f"Stale entry reference {ref.index} "
                    f"(transcript has {len(self._entries)} entries)"
                )
            if entry.author != Author.ASSISTANT or not entry.pending:
                raise InvalidTargetError(
                    f"Entry {ref.index} is not a pending assistant entry"
                )
            if fragment:
                self._entries[ref.index] = entry.with_text(entry.text + fragment)

    def finalize(self, ref: EntryRef) -> None:
        """Mark the pending entry ``ref`` as complete. Stale refs are ignored."""
        with self._lock:
            entry = self._resolve_last(ref)
            if entry is not None and entry.pending:
                self._entries[ref.index] = entry.model_copy(update={"pending": False})

    def remove_if_empty(self, ref: EntryRef) -> bool:
        """Erase a trailing assistant entry that never received any text.

        Returns:
            True if the entry was removed, False if this was a no-op.
        """
        with self._lock:
            entry = self._resolve_last(ref)
            if entry is None or entry.author != Author.ASSISTANT or entry.text:
                return False
            self._entries.pop()

        logger.debug("Removed empty assistant entry at %d", ref.index)
        return True

    def snapshot(self) -> tuple[Entry, ...]:
        """Return a consistent, read-only copy of the transcript."""
        with self._lock:
            return tuple(self._entries)

    def clear(self) -> None:
        """Drop every entry.

        Raises:
            InvalidTargetError: If an entry is still receiving fragments.
        """
        with self._lock:
            if self._entries and self._entries[-1].pending:
                raise InvalidTargetError("Cannot clear while a reply is streaming")
            self._entries.clear()

    def _resolve_last(self, ref: EntryRef) -> Entry | None:
        """Return the entry for ``ref`` if it is still the last one. Lock must be held."""
        if not self._entries or ref.index != len(self._entries) - 1:
            return None
        entry = self._entries[ref.index]
        if entry.entry_id != ref.entry_id:
            return None
        return entry
