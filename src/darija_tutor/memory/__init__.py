"""
Memory module for saved vocabulary.

Provides the cross-session vocabulary bank the user builds while practicing.
"""

from darija_tutor.memory.vocabulary_bank import VocabularyBank

__all__ = [
    "VocabularyBank",
]
