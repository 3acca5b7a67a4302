"""
Repository pattern for persisted application state.

Provides an opaque key-value store (SQLAlchemy-backed or in-memory) and a
repository that serializes sessions, saved words and the theme flag into it.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Literal

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session as DbSession
from sqlalchemy.orm import sessionmaker

from darija_tutor.db.models import Base, KeyValueModel
from darija_tutor.orchestrator.schemas import Session, VocabItem

logger = logging.getLogger(__name__)

SESSIONS_KEY = "darija_sessions"
SAVED_WORDS_KEY = "darija_saved_words"
THEME_KEY = "darija_theme"

Theme = Literal["dark", "light"]

_sessions_adapter = TypeAdapter(list[Session])
_vocabulary_adapter = TypeAdapter(list[VocabItem])


class KeyValueStore(ABC):
    """Abstract string key-value store."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """
        Get a stored value.

        Args:
            key: Storage key.

        Returns:
            The value if present, None otherwise.
        """
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """
        Store a value, replacing any previous one.

        Args:
            key: Storage key.
            value: Serialized value.
        """
        ...


class InMemoryKeyValueStore(KeyValueStore):
    """Key-value store that lives only as long as the process."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class SqlKeyValueStore(KeyValueStore):
    """Key-value store backed by a SQL table."""

    def __init__(self, url: str | None = None, engine: Engine | None = None) -> None:
        """
        Initialize the store and create its table if needed.

        Args:
            url: SQLAlchemy database URL (ignored if engine is given).
            engine: Pre-built engine.
        """
        if engine is None:
            if url is None:
                raise ValueError("Either url or engine is required")
            _ensure_sqlite_dir(url)
            engine = create_engine(url)
        self._engine = engine
        self._sessionmaker = sessionmaker(bind=engine, expire_on_commit=False)
        Base.metadata.create_all(engine)

    def get(self, key: str) -> str | None:
        with self._sessionmaker() as db:
            row = db.get(KeyValueModel, key)
            return row.value if row is not None else None

    def set(self, key: str, value: str) -> None:
        with self._sessionmaker.begin() as db:
            self._upsert(db, key, value)

    @staticmethod
    def _upsert(db: DbSession, key: str, value: str) -> None:
        row = db.get(KeyValueModel, key)
        if row is None:
            db.add(KeyValueModel(key=key, value=value))
        else:
            row.value = value

    def dispose(self) -> None:
        """Release pooled connections."""
        self._engine.dispose()


def _ensure_sqlite_dir(url: str) -> None:
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite" and parsed.database not in (None, "", ":memory:"):
        Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)


class AppStateRepository:
    """
    Loads and saves application state through a key-value store.

    Loads never raise on bad data: a missing or malformed value yields the
    empty state and a logged warning.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    def _load_json(self, key: str) -> object | None:
        raw = self._store.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring malformed stored value for {key}: {e}")
            return None

    def load_sessions(self) -> list[Session]:
        """Load persisted sessions, or an empty list."""
        data = self._load_json(SESSIONS_KEY)
        if data is None:
            return []
        try:
            return _sessions_adapter.validate_python(data)
        except ValidationError as e:
            logger.warning(f"Ignoring invalid stored sessions: {e.error_count()} errors")
            return []

    def save_sessions(self, sessions: list[Session]) -> None:
        """Persist the session collection."""
        self._store.set(SESSIONS_KEY, _sessions_adapter.dump_json(sessions).decode("utf-8"))

    def load_vocabulary(self) -> list[VocabItem]:
        """Load saved words, or an empty list."""
        data = self._load_json(SAVED_WORDS_KEY)
        if data is None:
            return []
        try:
            return _vocabulary_adapter.validate_python(data)
        except ValidationError as e:
            logger.warning(f"Ignoring invalid stored vocabulary: {e.error_count()} errors")
            return []

    def save_vocabulary(self, items: list[VocabItem]) -> None:
        """Persist saved words."""
        self._store.set(SAVED_WORDS_KEY, _vocabulary_adapter.dump_json(items).decode("utf-8"))

    def load_theme(self) -> Theme:
        """Load the theme flag; anything but "dark" means light."""
        return "dark" if self._store.get(THEME_KEY) == "dark" else "light"

    def save_theme(self, theme: Theme) -> None:
        """Persist the theme flag."""
        self._store.set(THEME_KEY, theme)
