"""
Tests for the conversation orchestrator.

Covers optimistic insertion, reply/error handling, title derivation and
sends that race against other store mutations.
"""

import asyncio

import pytest

from darija_tutor.models.tutor_client import GatewayError
from darija_tutor.orchestrator import (
    ERROR_MESSAGE,
    AudioInput,
    ConversationOrchestrator,
    MessageKind,
    MessageRole,
    SessionStore,
    TutorResponse,
    VocabItem,
)
from darija_tutor.orchestrator.schemas import DEFAULT_SESSION_TITLE


def _response(transcription: str = "لاباس (Labas)") -> TutorResponse:
    return TutorResponse(
        transcription=transcription,
        translation="Fine / no harm",
        explanation="A common greeting reply.",
        vocabulary=[VocabItem(word="لاباس (Labas)", meaning="fine", notes="greeting")],
    )


class FakeClient:
    def __init__(self, response: TutorResponse | None = None, error: Exception | None = None) -> None:
        self._response = response or _response()
        self._error = error
        self.calls: list[tuple[str | None, AudioInput | None]] = []
        self.on_call = None

    async def analyze(self, text=None, audio=None):
        self.calls.append((text, audio))
        if self.on_call is not None:
            self.on_call()
        if self._error is not None:
            raise self._error
        return self._response

    async def synthesize(self, text: str) -> str:
        raise AssertionError("synthesize should not be called")


class GatedClient(FakeClient):
    """Blocks analyze() until released so tests can act mid-flight."""

    def __init__(self, response: TutorResponse | None = None, error: Exception | None = None) -> None:
        super().__init__(response, error)
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def analyze(self, text=None, audio=None):
        self.calls.append((text, audio))
        self.started.set()
        await self.release.wait()
        if self._error is not None:
            raise self._error
        return self._response


@pytest.fixture
def store() -> SessionStore:
    return SessionStore()


class TestSend:
    """Tests for ConversationOrchestrator.send."""

    @pytest.mark.asyncio
    async def test_empty_input_is_noop(self, store: SessionStore) -> None:
        client = FakeClient()
        orchestrator = ConversationOrchestrator(client=client, store=store)

        assert await orchestrator.send(text="   ") is None
        assert await orchestrator.send() is None
        assert len(store) == 0
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_creates_session_when_none_active(self, store: SessionStore) -> None:
        orchestrator = ConversationOrchestrator(client=FakeClient(), store=store)

        reply = await orchestrator.send(text="Salam")

        session = orchestrator.current_session
        assert session is not None
        assert [m.role for m in session.messages] == [MessageRole.USER, MessageRole.MODEL]
        assert session.messages[1].id == reply.id
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_user_message_visible_before_gateway_call(self, store: SessionStore) -> None:
        client = FakeClient()
        orchestrator = ConversationOrchestrator(client=client, store=store)
        seen: list[list[MessageRole]] = []

        def _snapshot() -> None:
            session = store.current_session()
            seen.append([m.role for m in session.messages])

        client.on_call = _snapshot
        await orchestrator.send(text="Salam")

        assert seen == [[MessageRole.USER]]

    @pytest.mark.asyncio
    async def test_success_attaches_structured_response(self, store: SessionStore) -> None:
        response = _response()
        orchestrator = ConversationOrchestrator(client=FakeClient(response), store=store)

        reply = await orchestrator.send(text="Labas?")

        assert reply.role == MessageRole.MODEL
        assert reply.response == response
        assert not reply.is_error
        assert TutorResponse.model_validate_json(reply.content) == response

    @pytest.mark.asyncio
    async def test_gateway_failure_appends_single_error_reply(self, store: SessionStore) -> None:
        orchestrator = ConversationOrchestrator(client=FakeClient(error=GatewayError("boom")), store=store)

        reply = await orchestrator.send(text="Salam")

        session = orchestrator.current_session
        assert len(session.messages) == 2
        user, model = session.messages
        assert user.role == MessageRole.USER and user.content == "Salam"
        assert model.role == MessageRole.MODEL
        assert model.is_error
        assert model.response is None
        assert model.content == ERROR_MESSAGE
        assert reply.id == model.id

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_not_raised(self, store: SessionStore) -> None:
        orchestrator = ConversationOrchestrator(client=FakeClient(error=RuntimeError("network")), store=store)

        reply = await orchestrator.send(text="Salam")

        assert reply is not None and reply.is_error

    @pytest.mark.asyncio
    async def test_loading_cleared_exactly_once(self, store: SessionStore) -> None:
        for client in (FakeClient(), FakeClient(error=GatewayError("x"))):
            orchestrator = ConversationOrchestrator(client=client, store=store)
            events: list[bool] = []
            orchestrator.add_loading_listener(events.append)

            await orchestrator.send(text="Salam")

            assert events == [True, False]
            assert orchestrator.is_loading is False

    @pytest.mark.asyncio
    async def test_every_user_message_gets_at_most_one_reply(self, store: SessionStore) -> None:
        orchestrator = ConversationOrchestrator(client=FakeClient(), store=store)
        failing = ConversationOrchestrator(client=FakeClient(error=GatewayError("x")), store=store)

        await orchestrator.send(text="one")
        await failing.send(text="two")
        await orchestrator.send(text="three")

        messages = store.current_session().messages
        roles = [m.role for m in messages]
        assert roles == [MessageRole.USER, MessageRole.MODEL] * 3
        assert [m.content for m in messages if m.role == MessageRole.USER] == ["one", "two", "three"]


class TestTitles:
    """Tests for session title derivation."""

    @pytest.mark.asyncio
    async def test_long_first_text_is_truncated(self, store: SessionStore) -> None:
        orchestrator = ConversationOrchestrator(client=FakeClient(), store=store)

        await orchestrator.send(text="Labas, kif dayer? Ana bikhir")

        assert orchestrator.current_session.title == "Labas, kif dayer? An..."

    @pytest.mark.asyncio
    async def test_short_first_text_is_kept(self, store: SessionStore) -> None:
        orchestrator = ConversationOrchestrator(client=FakeClient(), store=store)

        await orchestrator.send(text="Salam")

        assert orchestrator.current_session.title == "Salam"

    @pytest.mark.asyncio
    async def test_later_messages_do_not_retitle(self, store: SessionStore) -> None:
        orchestrator = ConversationOrchestrator(client=FakeClient(), store=store)

        await orchestrator.send(text="Salam")
        await orchestrator.send(text="Something else entirely")

        assert orchestrator.current_session.title == "Salam"

    @pytest.mark.asyncio
    async def test_audio_first_message_titled_from_transcription(self, store: SessionStore) -> None:
        client = GatedClient(_response(transcription="كيف داير؟ لاباس عليك الحمد لله"))
        orchestrator = ConversationOrchestrator(client=client, store=store)
        audio = AudioInput(base64_data="UklGRg==", mime_type="audio/wav")

        task = asyncio.create_task(orchestrator.send(audio=audio))
        await client.started.wait()

        pending = store.current_session()
        assert pending.title == DEFAULT_SESSION_TITLE
        assert pending.messages[0].kind == MessageKind.AUDIO
        assert pending.messages[0].content == "UklGRg=="
        assert client.calls == [(None, audio)]

        client.release.set()
        await task

        assert store.current_session().title == "كيف داير؟ لاباس عليك..."

    @pytest.mark.asyncio
    async def test_audio_failure_keeps_default_title(self, store: SessionStore) -> None:
        orchestrator = ConversationOrchestrator(client=FakeClient(error=GatewayError("x")), store=store)

        await orchestrator.send(audio=AudioInput(base64_data="AAAA", mime_type="audio/wav"))

        assert orchestrator.current_session.title == DEFAULT_SESSION_TITLE


class TestConcurrency:
    """Tests for sends racing other interactions."""

    @pytest.mark.asyncio
    async def test_reply_dropped_when_session_deleted_mid_flight(self, store: SessionStore) -> None:
        client = GatedClient()
        orchestrator = ConversationOrchestrator(client=client, store=store)

        task = asyncio.create_task(orchestrator.send(text="Salam"))
        await client.started.wait()
        session_id = store.current_session_id
        assert orchestrator.delete_session(session_id, confirm=lambda: True)

        client.release.set()
        result = await task

        assert result is None
        assert len(store) == 0
        assert orchestrator.is_loading is False

    @pytest.mark.asyncio
    async def test_reply_lands_in_originating_session_after_switch(self, store: SessionStore) -> None:
        client = GatedClient()
        orchestrator = ConversationOrchestrator(client=client, store=store)

        task = asyncio.create_task(orchestrator.send(text="Salam"))
        await client.started.wait()
        origin_id = store.current_session_id
        other = orchestrator.new_session()

        client.release.set()
        await task

        assert store.current_session_id == other.id
        assert len(store.get_session(other.id).messages) == 0
        assert len(store.get_session(origin_id).messages) == 2

    @pytest.mark.asyncio
    async def test_concurrent_edit_is_not_overwritten(self, store: SessionStore) -> None:
        client = GatedClient()
        orchestrator = ConversationOrchestrator(client=client, store=store)

        task = asyncio.create_task(orchestrator.send(text="Salam"))
        await client.started.wait()
        session = store.current_session()
        store.update_session(session.model_copy(update={"title": "Renamed"}))

        client.release.set()
        await task

        final = store.get_session(session.id)
        assert final.title == "Renamed"
        assert len(final.messages) == 2


class TestSessionActions:
    """Tests for session management through the orchestrator."""

    def test_ensure_active_session_is_idempotent(self, store: SessionStore) -> None:
        orchestrator = ConversationOrchestrator(client=FakeClient(), store=store)

        first = orchestrator.ensure_active_session()
        second = orchestrator.ensure_active_session()

        assert first == second
        assert len(store) == 1

    def test_delete_requires_confirmation(self, store: SessionStore) -> None:
        orchestrator = ConversationOrchestrator(client=FakeClient(), store=store)
        session = orchestrator.new_session()

        assert orchestrator.delete_session(session.id, confirm=lambda: False) is False
        assert session.id in store
        assert orchestrator.delete_session(session.id, confirm=lambda: True) is True
        assert store.current_session_id is None

    @pytest.mark.asyncio
    async def test_send_survives_persistence_failure(self) -> None:
        def failing_write(sessions) -> None:
            raise OSError("database is locked")

        store = SessionStore(on_change=failing_write)
        orchestrator = ConversationOrchestrator(client=FakeClient(), store=store)

        reply = await orchestrator.send(text="Salam")

        assert reply is not None and reply.response == _response()
        assert [m.role for m in orchestrator.current_session.messages] == [MessageRole.USER, MessageRole.MODEL]
        assert orchestrator.is_loading is False

    @pytest.mark.asyncio
    async def test_audio_message_keeps_mime_type(self, store: SessionStore) -> None:
        orchestrator = ConversationOrchestrator(client=FakeClient(), store=store)
        audio = AudioInput(base64_data="UklGRg==", mime_type="audio/mpeg")

        await orchestrator.send(audio=audio)

        first = orchestrator.current_session.messages[0]
        assert first.kind == MessageKind.AUDIO
        assert first.audio == audio
