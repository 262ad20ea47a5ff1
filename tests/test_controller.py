"""Tests for streamchat.controller - the streaming exchange state machine."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

import pytest

from streamchat.controller import StreamingSessionController
from streamchat.errors import (
    AUTHORIZATION_MESSAGE,
    GENERIC_MESSAGE,
    INTERNAL_MESSAGE,
    AuthorizationFailure,
    ErrorKind,
    InvalidTargetError,
    TransportFailure,
)
from streamchat.events import EventType, SessionEvent, SessionEventEmitter
from streamchat.providers.base import StreamProvider
from streamchat.schemas.config import ChatConfig
from streamchat.schemas.session import ExchangeOutcome, SessionStatus
from streamchat.schemas.transcript import Author, EntryRef
from streamchat.transcript import TranscriptStore

# ── Helpers ───────────────────────────────────────────────────


class FakeProvider(StreamProvider):
    """Scripted provider: optional gate, open error, fragments, mid-stream error."""

    def __init__(
        self,
        fragments: list[str] | None = None,
        *,
        open_error: Exception | None = None,
        stream_error: Exception | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        super().__init__(ChatConfig(model="fake/model", display_name="Fake"))
        self.fragments = fragments or []
        self.open_error = open_error
        self.stream_error = stream_error
        self.gate = gate
        self.prompts: list[str] = []

    async def open_stream(self, prompt: str) -> AsyncIterator[str]:
        self.prompts.append(prompt)
        if self.gate is not None:
            await self.gate.wait()
        if self.open_error is not None:
            raise self.open_error
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        for fragment in self.fragments:
            await asyncio.sleep(0)
            yield fragment
        if self.stream_error is not None:
            raise self.stream_error


def _texts(controller: StreamingSessionController) -> list[tuple[Author, str]]:
    return [(e.author, e.text) for e in controller.snapshot()]


async def _wait_for_status(controller: StreamingSessionController, status: SessionStatus) -> None:
    for _ in range(100):
        if controller.status == status:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"controller never reached {status}")


class _UnclosableStream:
    """Async iterator whose aclose() blows up."""

    def __init__(self, fragments: list[str], error: Exception | None) -> None:
        self._fragments = iter(fragments)
        self._error = error

    def __aiter__(self) -> _UnclosableStream:
        return self

    async def __anext__(self) -> str:
        try:
            return next(self._fragments)
        except StopIteration:
            if self._error is not None:
                raise self._error from None
            raise StopAsyncIteration from None

    async def aclose(self) -> None:
        raise RuntimeError("close failed")


class _UnclosableProvider(FakeProvider):
    def __init__(self, fragments: list[str], *, error: Exception | None = None) -> None:
        super().__init__(fragments)
        self._error = error

    async def open_stream(self, prompt: str) -> AsyncIterator[str]:
        self.prompts.append(prompt)
        return _UnclosableStream(self.fragments, self._error)


# ── Success path ──────────────────────────────────────────────


class TestSuccessfulExchange:
    @pytest.mark.asyncio
    async def test_fragments_concatenate(self):
        """submit("hello") with three fragments yields one assistant entry."""
        controller = StreamingSessionController(FakeProvider(["Hi", " there", "!"]))

        result = await controller.submit("hello")

        assert _texts(controller) == [
            (Author.USER, "hello"),
            (Author.ASSISTANT, "Hi there!"),
        ]
        assert controller.status == SessionStatus.IDLE
        assert result is not None
        assert result.ok
        assert result.outcome == ExchangeOutcome.COMPLETED
        assert result.text == "Hi there!"
        assert result.fragment_count == 3

    @pytest.mark.asyncio
    async def test_empty_fragments_are_identity(self):
        controller = StreamingSessionController(FakeProvider(["", "a", "", "b", ""]))
        await controller.submit("q")
        assert controller.snapshot()[-1].text == "ab"

    @pytest.mark.asyncio
    async def test_ordering_for_varied_lengths(self):
        """The final text is exactly the concatenation in arrival order."""
        fragments = ["x" * n for n in (0, 1, 7, 0, 300, 2)] + ["tail"]
        controller = StreamingSessionController(FakeProvider(fragments))
        await controller.submit("q")
        assert controller.snapshot()[-1].text == "".join(fragments)

    @pytest.mark.asyncio
    async def test_no_content_reply_is_kept(self):
        """A stream that completes with no text leaves an empty assistant entry."""
        controller = StreamingSessionController(FakeProvider([]))
        result = await controller.submit("hello")
        assert _texts(controller) == [(Author.USER, "hello"), (Author.ASSISTANT, "")]
        assert result.ok

    @pytest.mark.asyncio
    async def test_prompt_is_trimmed(self):
        provider = FakeProvider(["ok"])
        controller = StreamingSessionController(provider)
        await controller.submit("  hello \n")
        assert provider.prompts == ["hello"]
        assert controller.snapshot()[0].text == "hello"

    @pytest.mark.asyncio
    async def test_final_entry_is_not_pending(self):
        controller = StreamingSessionController(FakeProvider(["done"]))
        await controller.submit("q")
        assert all(not e.pending for e in controller.snapshot())
        assert controller.session.pending_entry is None

    @pytest.mark.asyncio
    async def test_each_fragment_visible_on_arrival(self):
        """Snapshots taken at each merge show the prefix received so far."""
        fragments = ["Hi", " there", "!"]
        emitter = SessionEventEmitter()
        controller = StreamingSessionController(FakeProvider(fragments), emitter=emitter)
        seen: list[str] = []

        def _on_event(event: SessionEvent) -> None:
            if event.type == EventType.FRAGMENT_MERGED:
                seen.append(controller.snapshot()[-1].text)

        emitter.add_listener(_on_event)
        await controller.submit("hello")

        assert seen == ["Hi", "Hi there", "Hi there!"]

    @pytest.mark.asyncio
    async def test_status_transitions(self):
        emitter = SessionEventEmitter()
        controller = StreamingSessionController(FakeProvider(["a"]), emitter=emitter)
        statuses: list[SessionStatus] = []
        emitter.add_listener(
            lambda e: statuses.append(e.data["status"])
            if e.type == EventType.STATUS_CHANGED else None
        )

        await controller.submit("q")

        assert statuses == [
            SessionStatus.AWAITING,
            SessionStatus.STREAMING,
            SessionStatus.IDLE,
        ]


# ── Failure path ──────────────────────────────────────────────


class TestFailedExchange:
    @pytest.mark.asyncio
    async def test_authorization_failure_on_open(self):
        """An auth failure before any fragment leaves only the user entry."""
        provider = FakeProvider(open_error=AuthorizationFailure("unfunded key"))
        controller = StreamingSessionController(provider)

        result = await controller.submit("hello")

        assert _texts(controller) == [(Author.USER, "hello")]
        assert controller.last_error == AUTHORIZATION_MESSAGE
        assert controller.status == SessionStatus.IDLE
        assert result.outcome == ExchangeOutcome.FAILED
        assert result.error_kind == ErrorKind.AUTHORIZATION

    @pytest.mark.asyncio
    async def test_partial_content_retained_on_mid_stream_failure(self):
        """submit("hello") → ["Par"] then a generic failure keeps "Par"."""
        provider = FakeProvider(["Par"], stream_error=TransportFailure("reset"))
        controller = StreamingSessionController(provider)

        result = await controller.submit("hello")

        assert _texts(controller) == [
            (Author.USER, "hello"),
            (Author.ASSISTANT, "Par"),
        ]
        assert controller.last_error == GENERIC_MESSAGE
        assert controller.snapshot()[-1].pending is False
        assert result.text == "Par"
        assert result.error_kind == ErrorKind.TRANSPORT

    @pytest.mark.asyncio
    async def test_empty_placeholder_removed_on_mid_stream_failure(self):
        """Only empty fragments before the break: placeholder is erased."""
        provider = FakeProvider(["", ""], stream_error=TransportFailure("reset"))
        controller = StreamingSessionController(provider)

        await controller.submit("hello")

        assert _texts(controller) == [(Author.USER, "hello")]

    @pytest.mark.asyncio
    async def test_failure_adds_exactly_one_user_entry(self):
        controller = StreamingSessionController(FakeProvider(["first"]))
        await controller.submit("one")
        before = len(controller.transcript)

        controller._provider = FakeProvider(open_error=TransportFailure("down"))
        await controller.submit("two")

        assert len(controller.transcript) == before + 1
        assert controller.snapshot()[-1].author == Author.USER

    @pytest.mark.asyncio
    async def test_unknown_exception_is_transport_failure(self):
        controller = StreamingSessionController(FakeProvider(open_error=ConnectionError("boom")))
        result = await controller.submit("hello")
        assert result.error_kind == ErrorKind.TRANSPORT
        assert controller.last_error == GENERIC_MESSAGE

    @pytest.mark.asyncio
    async def test_unstructured_authorization_text_is_recognized(self):
        error = RuntimeError("404 Requested entity was not found.")
        controller = StreamingSessionController(FakeProvider(open_error=error))
        await controller.submit("hello")
        assert controller.last_error == AUTHORIZATION_MESSAGE

    @pytest.mark.asyncio
    async def test_failure_does_not_raise(self):
        controller = StreamingSessionController(
            FakeProvider(["a"], stream_error=ValueError("malformed chunk"))
        )
        result = await controller.submit("hello")
        assert result is not None
        assert not result.ok

    @pytest.mark.asyncio
    async def test_failure_status_transitions(self):
        emitter = SessionEventEmitter()
        controller = StreamingSessionController(
            FakeProvider(["a"], stream_error=TransportFailure("x")), emitter=emitter,
        )
        events: list[SessionEvent] = []
        emitter.add_listener(events.append)

        await controller.submit("q")

        statuses = [e.data["status"] for e in events if e.type == EventType.STATUS_CHANGED]
        assert statuses == [
            SessionStatus.AWAITING,
            SessionStatus.STREAMING,
            SessionStatus.FAILED,
            SessionStatus.IDLE,
        ]
        assert events[-1].type == EventType.EXCHANGE_FAILED

    @pytest.mark.asyncio
    async def test_removed_placeholder_emits_event(self):
        emitter = SessionEventEmitter()
        controller = StreamingSessionController(
            FakeProvider(stream_error=TransportFailure("x")), emitter=emitter,
        )
        events: list[SessionEvent] = []
        emitter.add_listener(events.append)

        await controller.submit("q")

        assert EventType.ENTRY_REMOVED in [e.type for e in events]


class _BrokenStore(TranscriptStore):
    """Rejects every fragment merge as if the reference had gone stale."""

    def append_fragment(self, ref: EntryRef, fragment: str) -> None:
        raise InvalidTargetError("stale reference")


class TestInvalidTarget:
    @pytest.mark.asyncio
    async def test_invalid_target_fails_exchange(self):
        controller = StreamingSessionController(
            FakeProvider(["a", "b"]), transcript=_BrokenStore(),
        )

        result = await controller.submit("hello")

        assert result.error_kind == ErrorKind.INVALID_TARGET
        assert controller.last_error == INTERNAL_MESSAGE
        assert controller.status == SessionStatus.IDLE

    @pytest.mark.asyncio
    async def test_invalid_target_does_not_roll_back(self):
        """No recovery is attempted: the placeholder stays, but is closed."""
        controller = StreamingSessionController(
            FakeProvider(["a"]), transcript=_BrokenStore(),
        )

        await controller.submit("hello")

        entries = controller.snapshot()
        assert [e.author for e in entries] == [Author.USER, Author.ASSISTANT]
        assert entries[-1].pending is False

    @pytest.mark.asyncio
    async def test_next_exchange_works_after_invalid_target(self):
        store = _BrokenStore()
        controller = StreamingSessionController(FakeProvider(["a"]), transcript=store)
        await controller.submit("hello")

        controller._provider = FakeProvider([])
        result = await controller.submit("again")

        assert result.ok

    @pytest.mark.asyncio
    async def test_pending_entry_in_shared_store_fails_exchange(self):
        """A store that still ends in a pending reply rejects the user turn."""
        store = TranscriptStore()
        store.append(Author.ASSISTANT, "left over", pending=True)
        provider = FakeProvider(["x"])
        controller = StreamingSessionController(provider, transcript=store)

        result = await controller.submit("hi")

        assert result is not None
        assert result.outcome == ExchangeOutcome.FAILED
        assert result.error_kind == ErrorKind.INVALID_TARGET
        assert controller.status == SessionStatus.IDLE
        assert controller.last_error == INTERNAL_MESSAGE
        assert provider.prompts == []
        assert [e.text for e in store.snapshot()] == ["left over"]


# ── Admission ─────────────────────────────────────────────────


class TestAdmission:
    @pytest.mark.asyncio
    async def test_empty_input_ignored(self):
        provider = FakeProvider(["x"])
        controller = StreamingSessionController(provider)

        assert await controller.submit("") is None
        assert await controller.submit("   \n\t") is None

        assert len(controller.transcript) == 0
        assert provider.prompts == []
        assert controller.status == SessionStatus.IDLE

    @pytest.mark.asyncio
    async def test_submit_while_awaiting_is_noop(self):
        """A second submit before the first resolves changes nothing."""
        gate = asyncio.Event()
        provider = FakeProvider(["reply to a"], gate=gate)
        controller = StreamingSessionController(provider)

        first = asyncio.create_task(controller.submit("a"))
        await _wait_for_status(controller, SessionStatus.AWAITING)
        before_entries = controller.snapshot()
        before_session = controller.session

        assert await controller.submit("b") is None
        assert controller.snapshot() == before_entries
        assert controller.session == before_session

        gate.set()
        await first

        assert _texts(controller) == [
            (Author.USER, "a"),
            (Author.ASSISTANT, "reply to a"),
        ]
        assert provider.prompts == ["a"]

    @pytest.mark.asyncio
    async def test_submit_while_streaming_is_noop(self):
        release = asyncio.Event()

        class _SlowProvider(FakeProvider):
            async def _iterate(self):
                yield "first"
                await release.wait()
                yield " second"

        controller = StreamingSessionController(_SlowProvider())
        task = asyncio.create_task(controller.submit("a"))
        await _wait_for_status(controller, SessionStatus.STREAMING)

        assert await controller.submit("b") is None

        release.set()
        await task
        assert _texts(controller) == [
            (Author.USER, "a"),
            (Author.ASSISTANT, "first second"),
        ]

    @pytest.mark.asyncio
    async def test_submit_claims_session_synchronously(self):
        """Two submits scheduled together: only the first is admitted."""
        provider = FakeProvider(["ok"])
        controller = StreamingSessionController(provider)

        results = await asyncio.gather(controller.submit("a"), controller.submit("b"))

        assert results[1] is None
        assert provider.prompts == ["a"]


# ── Reset ─────────────────────────────────────────────────────


class TestReset:
    @pytest.mark.asyncio
    async def test_new_exchange_after_failure(self):
        controller = StreamingSessionController(
            FakeProvider(open_error=TransportFailure("down"))
        )
        await controller.submit("one")
        assert controller.last_error == GENERIC_MESSAGE
        assert controller.session.pending_entry is None

        controller._provider = FakeProvider(["fine"])
        result = await controller.submit("two")

        assert result.ok
        assert controller.last_error is None
        assert _texts(controller) == [
            (Author.USER, "one"),
            (Author.USER, "two"),
            (Author.ASSISTANT, "fine"),
        ]

    @pytest.mark.asyncio
    async def test_consecutive_exchanges_accumulate(self):
        controller = StreamingSessionController(FakeProvider(["r"]))
        await controller.submit("one")
        await controller.submit("two")
        assert [a for a, _ in _texts(controller)] == [
            Author.USER, Author.ASSISTANT, Author.USER, Author.ASSISTANT,
        ]

    @pytest.mark.asyncio
    async def test_cancellation_resets_session(self):
        gate = asyncio.Event()
        controller = StreamingSessionController(FakeProvider(["x"], gate=gate))

        task = asyncio.create_task(controller.submit("a"))
        await _wait_for_status(controller, SessionStatus.AWAITING)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert controller.status == SessionStatus.IDLE
        assert _texts(controller) == [(Author.USER, "a")]

    @pytest.mark.asyncio
    async def test_listener_errors_do_not_break_exchange(self):
        emitter = SessionEventEmitter()

        def _broken(_event: SessionEvent) -> None:
            raise RuntimeError("renderer crashed")

        emitter.add_listener(_broken)
        controller = StreamingSessionController(FakeProvider(["ok"]), emitter=emitter)

        result = await controller.submit("q")

        assert result.ok
        assert controller.snapshot()[-1].text == "ok"

    @pytest.mark.asyncio
    async def test_cancellation_inside_status_listener_resets_session(self):
        """Cancelling while the first status event is being delivered."""
        emitter = SessionEventEmitter()
        entered = asyncio.Event()
        never = asyncio.Event()

        async def _stalling_listener(event: SessionEvent) -> None:
            if event.type == EventType.STATUS_CHANGED and not entered.is_set():
                entered.set()
                await never.wait()

        emitter.add_listener(_stalling_listener)
        controller = StreamingSessionController(FakeProvider(["ok"]), emitter=emitter)

        task = asyncio.create_task(controller.submit("a"))
        await entered.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert controller.status == SessionStatus.IDLE
        assert controller.session.pending_entry is None

        result = await controller.submit("b")
        assert result is not None
        assert result.ok
        assert _texts(controller) == [(Author.USER, "b"), (Author.ASSISTANT, "ok")]

    @pytest.mark.asyncio
    async def test_failing_stream_close_is_contained(self):
        controller = StreamingSessionController(_UnclosableProvider(["Hi", "!"]))

        result = await controller.submit("hello")

        assert result is not None
        assert result.ok
        assert result.text == "Hi!"
        assert controller.status == SessionStatus.IDLE

    @pytest.mark.asyncio
    async def test_failing_stream_close_keeps_failure_result(self):
        provider = _UnclosableProvider(["Par"], error=TransportFailure("reset"))
        controller = StreamingSessionController(provider)

        result = await controller.submit("hello")

        assert result is not None
        assert result.error_kind == ErrorKind.TRANSPORT
        assert _texts(controller) == [(Author.USER, "hello"), (Author.ASSISTANT, "Par")]
