"""
Database module for persistence.

Provides the SQLAlchemy key-value model and the repository that stores
sessions, saved words and the theme flag.
"""

from darija_tutor.db.models import Base, KeyValueModel
from darija_tutor.db.repository import (
    AppStateRepository,
    InMemoryKeyValueStore,
    KeyValueStore,
    SqlKeyValueStore,
)

__all__ = [
    "Base",
    "KeyValueModel",
    "AppStateRepository",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "SqlKeyValueStore",
]
