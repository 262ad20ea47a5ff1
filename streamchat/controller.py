"""Streaming session controller.

Drives one request/response exchange at a time: records the user turn,
opens a stream on the provider, grows a pending assistant entry fragment by
fragment, and resolves the exchange to a completed reply or to a surfaced
error with the empty placeholder rolled back. Partial replies survive a
broken stream.
"""

from __future__ import annotations

import asyncio
import logging
import time

from streamchat.errors import (
    ErrorKind,
    InvalidTargetError,
    classify_failure,
    user_message,
)
from streamchat.events import EventType, SessionEventEmitter
from streamchat.providers.base import StreamProvider
from streamchat.schemas.session import (
    ExchangeOutcome,
    ExchangeResult,
    SessionState,
    SessionStatus,
)
from streamchat.schemas.transcript import Author, Entry, EntryRef
from streamchat.transcript import TranscriptStore

logger = logging.getLogger(__name__)


class StreamingSessionController:
    """Owns one conversation: its transcript and the in-flight exchange.

    Admission is "one outstanding request": submit() called while an
    exchange is awaiting or streaming is ignored, as is blank input.
    Remote failures never propagate out of submit(); they end up in
    ``session.last_error`` and in the returned ExchangeResult.
    """

    def __init__(
        self,
        provider: StreamProvider,
        transcript: TranscriptStore | None = None,
        emitter: SessionEventEmitter | None = None,
    ) -> None:
        self._provider = provider
        self._transcript = transcript if transcript is not None else TranscriptStore()
        self._emitter = emitter or SessionEventEmitter()
        self._session = SessionState()

    # ── State access ──────────────────────────────────────────

    @property
    def provider(self) -> StreamProvider:
        return self._provider

    @property
    def transcript(self) -> TranscriptStore:
        return self._transcript

    @property
    def emitter(self) -> SessionEventEmitter:
        return self._emitter

    @property
    def session(self) -> SessionState:
        """A copy of the current session state."""
        return self._session.model_copy()

    @property
    def status(self) -> SessionStatus:
        return self._session.status

    @property
    def is_busy(self) -> bool:
        return self._session.is_busy

    @property
    def last_error(self) -> str | None:
        return self._session.last_error

    def snapshot(self) -> tuple[Entry, ...]:
        return self._transcript.snapshot()

    # ── Exchange ──────────────────────────────────────────────

    async def submit(self, user_text: str) -> ExchangeResult | None:
        """Run one exchange for ``user_text``.

        Returns:
            The ExchangeResult, or None when the submission was ignored
            (blank input, or another exchange still outstanding).
        """
        prompt = (user_text or "").strip()
        if not prompt:
            logger.debug("Ignoring submission: %s", ErrorKind.EMPTY_INPUT)
            return None
        if self._session.is_busy:
            logger.debug(
                "Ignoring submission: %s (status=%s)",
                ErrorKind.REENTRANT_SUBMISSION, self._session.status,
            )
            return None

        # Claim the session before the first await so a second submit sees it busy
        self._session = SessionState(status=SessionStatus.AWAITING)
        started = time.monotonic()

        try:
            return await self._run_exchange(prompt, started)
        except asyncio.CancelledError:
            logger.warning("Exchange cancelled for prompt of %d chars", len(prompt))
            self._rollback_pending()
            self._reset()
            raise

    async def _run_exchange(self, prompt: str, started: float) -> ExchangeResult:
        """Body of submit() once the session is claimed.

        Every await happens under the caller's cancellation guard.
        """
        stream = None
        fragments = 0
        try:
            await self._emit(EventType.STATUS_CHANGED, status=SessionStatus.AWAITING)
            user_ref = self._transcript.append(Author.USER, prompt)
            await self._emit(EventType.ENTRY_APPENDED, index=user_ref.index, author=Author.USER)

            stream = await self._provider.open_stream(prompt)

            ref = self._transcript.append(Author.ASSISTANT, "", pending=True)
            self._session.pending_entry = ref
            self._session.status = SessionStatus.STREAMING
            await self._emit(EventType.ENTRY_APPENDED, index=ref.index, author=Author.ASSISTANT)
            await self._emit(EventType.STATUS_CHANGED, status=SessionStatus.STREAMING)

            async for fragment in stream:
                self._transcript.append_fragment(ref, fragment)
                fragments += 1
                await self._emit(EventType.FRAGMENT_MERGED, index=ref.index, fragment=fragment)

        except InvalidTargetError:
            logger.exception("Transcript contract violated during exchange")
            return await self._fail(
                ErrorKind.INVALID_TARGET, prompt, fragments, started, rollback=False,
            )
        except Exception as e:
            kind = classify_failure(e)
            logger.warning(
                "Exchange failed (%s) after %d fragment(s): %s", kind, fragments, e,
            )
            return await self._fail(kind, prompt, fragments, started, rollback=True)
        finally:
            await _close_stream(stream)

        text = self._entry_text(ref)
        self._transcript.finalize(ref)
        self._reset()
        await self._emit(EventType.STATUS_CHANGED, status=SessionStatus.IDLE)

        result = ExchangeResult(
            outcome=ExchangeOutcome.COMPLETED,
            prompt=prompt,
            text=text,
            fragment_count=fragments,
            elapsed=time.monotonic() - started,
        )
        logger.debug(
            "Exchange completed: %d fragment(s), %d chars, %.2fs",
            fragments, len(text), result.elapsed,
        )
        await self._emit(EventType.EXCHANGE_COMPLETED, text=text, fragments=fragments)
        return result

    async def _fail(
        self,
        kind: ErrorKind,
        prompt: str,
        fragments: int,
        started: float,
        *,
        rollback: bool,
    ) -> ExchangeResult:
        """Record a failed exchange, roll back an empty placeholder, reset."""
        message = user_message(kind)
        ref = self._session.pending_entry
        text = self._entry_text(ref) if ref is not None else ""

        self._session.status = SessionStatus.FAILED
        self._session.last_error = message
        await self._emit(EventType.STATUS_CHANGED, status=SessionStatus.FAILED)

        if rollback:
            if self._rollback_pending():
                await self._emit(EventType.ENTRY_REMOVED, index=ref.index)
        elif ref is not None:
            self._transcript.finalize(ref)

        self._reset()
        await self._emit(EventType.STATUS_CHANGED, status=SessionStatus.IDLE)
        await self._emit(EventType.EXCHANGE_FAILED, kind=kind, error=message)

        return ExchangeResult(
            outcome=ExchangeOutcome.FAILED,
            prompt=prompt,
            text=text,
            fragment_count=fragments,
            error_kind=kind,
            error=message,
            elapsed=time.monotonic() - started,
        )

    def _rollback_pending(self) -> bool:
        """Remove the pending entry if empty, otherwise keep it as final.

        Returns:
            True if the placeholder was removed.
        """
        ref = self._session.pending_entry
        if ref is None:
            return False
        if self._transcript.remove_if_empty(ref):
            return True
        self._transcript.finalize(ref)
        return False

    def _reset(self) -> None:
        """Return to IDLE, dropping the pending reference but keeping last_error."""
        self._session.status = SessionStatus.IDLE
        self._session.pending_entry = None

    def _entry_text(self, ref: EntryRef) -> str:
        entries = self._transcript.snapshot()
        if ref.index < len(entries) and entries[ref.index].entry_id == ref.entry_id:
            return entries[ref.index].text
        return ""

    async def _emit(self, event_type: EventType, **data) -> None:
        await self._emitter.emit(event_type, **data)


async def _close_stream(stream) -> None:
    """Close an async generator stream that was abandoned early.

    A failing close is logged, never raised: the exchange has already
    been resolved by the time it runs.
    """
    aclose = getattr(stream, "aclose", None)
    if aclose is None:
        return
    try:
        await aclose()
    except Exception as e:
        logger.warning("Closing the reply stream failed: %s", e)
