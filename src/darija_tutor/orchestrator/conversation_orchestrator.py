"""
Conversation orchestrator.

Drives a single "send" interaction end to end: optimistic insertion of the
user message, the round trip to the inference gateway, and insertion of the
tutor reply or an error placeholder.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from darija_tutor.orchestrator.schemas import (
    AudioInput,
    Message,
    MessageKind,
    Session,
    TutorResponse,
    truncate_title,
)
from darija_tutor.orchestrator.session_store import SessionStore

if TYPE_CHECKING:
    from darija_tutor.models.tutor_client import TutorClientBase

ERROR_MESSAGE = (
    "Sorry, I encountered an error connecting to the Tutor. "
    "Please check your API Key or try again."
)

LoadingListener = Callable[[bool], None]


class ConversationOrchestrator:
    """
    Orchestrates the conversation between the learner and the tutor model.

    The orchestrator is the only writer of the session store. Every write
    addresses its target session by id, so sends that are still waiting on
    the gateway never overwrite changes made in the meantime.
    """

    def __init__(
        self,
        client: TutorClientBase,
        store: SessionStore | None = None,
    ) -> None:
        """
        Initialize the conversation orchestrator.

        Args:
            client: Inference gateway for analysis.
            store: Session store. Creates an empty one if None.
        """
        self._logger = logging.getLogger(__name__)
        self._client = client
        self._store = store if store is not None else SessionStore()
        self._is_loading = False
        self._loading_listeners: list[LoadingListener] = []

    @property
    def store(self) -> SessionStore:
        """Get the session store."""
        return self._store

    @property
    def is_loading(self) -> bool:
        """Check whether a round trip is in flight."""
        return self._is_loading

    def add_loading_listener(self, listener: LoadingListener) -> None:
        """Register a callback invoked with the new loading flag on each change."""
        self._loading_listeners.append(listener)

    def _set_loading(self, value: bool) -> None:
        self._is_loading = value
        for listener in self._loading_listeners:
            listener(value)

    @property
    def current_session(self) -> Session | None:
        """Get a copy of the active session, if any."""
        return self._store.current_session()

    def list_sessions(self) -> list[Session]:
        """Get sessions, most recently active first."""
        return self._store.list_sessions()

    def new_session(self) -> Session:
        """Start a new empty conversation and make it active."""
        return self._store.create_session()

    def select_session(self, session_id: str) -> None:
        """Switch the active conversation."""
        self._store.select_session(session_id)

    def delete_session(self, session_id: str, confirm: Callable[[], bool]) -> bool:
        """
        Delete a conversation after confirmation.

        Args:
            session_id: Session to delete.
            confirm: Asked before deleting; nothing happens unless it returns True.

        Returns:
            True if the session was deleted.
        """
        if session_id not in self._store:
            return False
        if not confirm():
            return False
        return self._store.delete_session(session_id)

    def ensure_active_session(self) -> str:
        """
        Return the active session id, creating and activating a session if none is usable.

        Safe to call repeatedly: an existing active session is left alone.
        """
        current_id = self._store.current_session_id
        if current_id is not None and current_id in self._store:
            return current_id
        return self._store.create_session().id

    async def send(
        self,
        text: str | None = None,
        audio: AudioInput | None = None,
    ) -> Message | None:
        """
        Send a learner utterance and record the tutor's reply.

        The user message is visible in the store before the gateway is
        called. Gateway failures are recorded as an error reply, never raised.

        Args:
            text: Typed input; ignored when audio is given.
            audio: Encoded recording or upload.

        Returns:
            The appended model message, or None if nothing was sent or the
            session was deleted before the reply arrived.
        """
        if audio is None and not (text and text.strip()):
            return None

        session_id = self.ensure_active_session()

        if audio is not None:
            user_message = Message.from_user_audio(audio)
        else:
            user_message = Message.from_user_text(text or "")

        def _append_user(session: Session) -> Session:
            title = None
            if not session.messages and user_message.kind == MessageKind.TEXT:
                title = truncate_title(user_message.content)
            return session.with_message(user_message, title=title)

        if self._store.modify_session(session_id, _append_user) is None:
            return None

        self._set_loading(True)
        try:
            try:
                response = await self._client.analyze(
                    text=None if audio is not None else text,
                    audio=audio,
                )
            except Exception as e:  # noqa: BLE001
                self._logger.error(f"Tutor request failed for session {session_id}: {e}")
                return self._append_reply(session_id, Message.from_error(ERROR_MESSAGE))

            self._logger.debug(
                f"Tutor reply for session {session_id}: {len(response.vocabulary)} vocabulary items"
            )
            return self._append_reply(
                session_id,
                Message.from_response(response),
                retitle_from=response if audio is not None else None,
                user_message_id=user_message.id,
            )
        finally:
            self._set_loading(False)

    def _append_reply(
        self,
        session_id: str,
        reply: Message,
        retitle_from: TutorResponse | None = None,
        user_message_id: str | None = None,
    ) -> Message | None:
        def _append(session: Session) -> Session:
            title = None
            if (
                retitle_from is not None
                and session.messages
                and session.messages[0].id == user_message_id
            ):
                title = truncate_title(retitle_from.transcription)
            return session.with_message(reply, title=title)

        if self._store.modify_session(session_id, _append) is None:
            self._logger.info(f"Session {session_id} was deleted before its reply arrived")
            return None
        return reply
