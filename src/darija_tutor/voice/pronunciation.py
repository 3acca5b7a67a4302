"""Pronunciation of vocabulary entries.

Tutor vocabulary uses an "Arabic Script (Latin Script)" convention. Only the
part before the first parenthesis is sent to speech synthesis.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from darija_tutor.models.tutor_client import TutorClientBase
    from darija_tutor.voice.playback import PCMPlayer

logger = logging.getLogger(__name__)

_BEFORE_PAREN_RE = re.compile(r"^([^(]+)")


def to_speakable_word(text: str) -> str:
    """
    Extract the text to speak from a vocabulary entry.

    "لاباس (Labas)" -> "لاباس". Text without a parenthesis is returned
    trimmed; text starting with one is returned whole.
    """
    match = _BEFORE_PAREN_RE.match(text or "")
    spoken = match.group(1).strip() if match else ""
    return spoken or (text or "").strip()


class Pronouncer:
    """Synthesizes a word through the gateway and plays it."""

    def __init__(self, client: TutorClientBase, player: PCMPlayer) -> None:
        self._client = client
        self._player = player

    async def pronounce(self, text: str) -> bool:
        """
        Speak a word or phrase.

        Returns:
            False if there was nothing to speak, True once playback finished.
        """
        spoken = to_speakable_word(text)
        if not spoken:
            logger.warning("No text found to pronounce")
            return False

        audio = await self._client.synthesize(spoken)
        await self._player.play(audio)
        return True
