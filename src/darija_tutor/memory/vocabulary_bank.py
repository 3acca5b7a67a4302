"""
Vocabulary bank.

A cross-session collection of saved words, deduplicated by the word itself.
Saving a word keeps no link to the message it came from.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator

from darija_tutor.orchestrator.schemas import VocabItem

logger = logging.getLogger(__name__)

VocabularyListener = Callable[[list[VocabItem]], None]


class VocabularyBank:
    """
    Insertion-ordered set of vocabulary items keyed by ``word``.

    The backing dict preserves display order and doubles as the lookup
    index, so membership tests stay O(1) for large banks.
    """

    def __init__(
        self,
        items: Iterable[VocabItem] | None = None,
        on_change: VocabularyListener | None = None,
    ) -> None:
        self._items: dict[str, VocabItem] = {}
        for item in items or []:
            self._items.setdefault(item.word, item)
        self._on_change = on_change
        self._is_open = False

    @property
    def is_open(self) -> bool:
        """Whether the bank is currently shown to the user."""
        return self._is_open

    def open(self) -> None:
        self._is_open = True

    def close(self) -> None:
        self._is_open = False

    def toggle(self) -> bool:
        self._is_open = not self._is_open
        return self._is_open

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[VocabItem]:
        return iter(list(self._items.values()))

    def __contains__(self, word: object) -> bool:
        return word in self._items

    def contains(self, word: str) -> bool:
        """Check whether a word is saved."""
        return word in self._items

    def items(self) -> list[VocabItem]:
        """Get saved items in insertion order."""
        return list(self._items.values())

    def save(self, item: VocabItem) -> bool:
        """
        Save a vocabulary item and open the bank.

        Args:
            item: Item to save.

        Returns:
            True if the item was added, False if its word was already saved.
        """
        if item.word in self._items:
            return False
        self._items[item.word] = item
        self._is_open = True
        logger.debug(f"Saved word: {item.word}")
        self._changed()
        return True

    def remove(self, word: str) -> bool:
        """
        Remove a saved word by exact match.

        Returns:
            True if a word was removed.
        """
        if self._items.pop(word, None) is None:
            return False
        logger.debug(f"Removed word: {word}")
        self._changed()
        return True

    def _changed(self) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change(self.items())
        except Exception as e:
            logger.error(f"Failed to persist saved words: {e}")
