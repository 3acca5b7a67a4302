"""
Session store.

Holds every conversation session in memory, tracks which one is active,
and hands each change to the persistence collaborator.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from darija_tutor.orchestrator.schemas import Session

logger = logging.getLogger(__name__)

SessionsListener = Callable[[list[Session]], None]


class SessionStore:
    """
    In-memory collection of sessions with an active-session pointer.

    All operations are synchronous. Readers always receive copies, so a
    caller holding a session across an await never aliases stored state;
    writers go through :meth:`modify_session` or :meth:`update_session`,
    which match by id.
    """

    def __init__(
        self,
        sessions: Iterable[Session] | None = None,
        on_change: SessionsListener | None = None,
    ) -> None:
        """
        Initialize the store.

        Args:
            sessions: Previously persisted sessions, in stored order.
            on_change: Called with the full stored collection after each mutation.
        """
        self._sessions: list[Session] = []
        seen: set[str] = set()
        for session in sessions or []:
            if session.id in seen:
                logger.warning(f"Dropping duplicate session id on load: {session.id}")
                continue
            seen.add(session.id)
            self._sessions.append(session)
        self._current_id: str | None = None
        self._on_change = on_change

    @property
    def current_session_id(self) -> str | None:
        """Get the id of the active session, if any."""
        return self._current_id

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return self._index_of(session_id) is not None  # type: ignore[arg-type]

    def _index_of(self, session_id: str) -> int | None:
        for i, session in enumerate(self._sessions):
            if session.id == session_id:
                return i
        return None

    def _changed(self) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change(self.stored_sessions())
        except Exception as e:
            logger.error(f"Failed to persist sessions: {e}")

    def stored_sessions(self) -> list[Session]:
        """Get copies of all sessions in storage order (newest created first)."""
        return [s.model_copy(deep=True) for s in self._sessions]

    def create_session(self) -> Session:
        """
        Create an empty session, prepend it, and make it active.

        Returns:
            A copy of the new session.
        """
        session = Session()
        while session.id in self:
            session = Session()
        self._sessions.insert(0, session)
        self._current_id = session.id
        logger.info(f"Created session {session.id}")
        self._changed()
        return session.model_copy(deep=True)

    def select_session(self, session_id: str | None) -> None:
        """Make a session active. Unknown ids are ignored; None clears the pointer."""
        if session_id is None or session_id in self:
            self._current_id = session_id
        else:
            logger.debug(f"Ignoring selection of unknown session {session_id}")

    def get_session(self, session_id: str) -> Session | None:
        """Get a copy of a session by id."""
        index = self._index_of(session_id)
        if index is None:
            return None
        return self._sessions[index].model_copy(deep=True)

    def current_session(self) -> Session | None:
        """Get a copy of the active session, if any."""
        if self._current_id is None:
            return None
        return self.get_session(self._current_id)

    def update_session(self, session: Session) -> bool:
        """
        Replace a stored session by id.

        Returns:
            True if a session was replaced, False if the id was absent.
        """
        index = self._index_of(session.id)
        if index is None:
            logger.debug(f"Dropping update for missing session {session.id}")
            return False
        self._sessions[index] = session.model_copy(deep=True)
        self._changed()
        return True

    def modify_session(self, session_id: str, fn: Callable[[Session], Session]) -> Session | None:
        """
        Read-modify-write a session addressed by id.

        Args:
            session_id: Target session.
            fn: Receives a copy of the latest stored value and returns its replacement.

        Returns:
            A copy of the stored replacement, or None if the session no longer exists.
        """
        current = self.get_session(session_id)
        if current is None:
            logger.debug(f"Dropping modification for missing session {session_id}")
            return None
        updated = fn(current)
        if updated.id != session_id:
            raise ValueError("modify_session cannot change a session id")
        self.update_session(updated)
        return updated.model_copy(deep=True)

    def delete_session(self, session_id: str) -> bool:
        """
        Remove a session; clears the active pointer if it referenced it.

        Returns:
            True if a session was removed.
        """
        index = self._index_of(session_id)
        if index is None:
            return False
        del self._sessions[index]
        if self._current_id == session_id:
            self._current_id = None
        logger.info(f"Deleted session {session_id}")
        self._changed()
        return True

    def list_sessions(self) -> list[Session]:
        """Get copies of all sessions, most recently active first."""
        return sorted(self.stored_sessions(), key=lambda s: s.updated_at, reverse=True)
