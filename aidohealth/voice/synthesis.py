"""
Speech synthesis helpers: voice preference and utterance bookkeeping.
"""

import logging
from typing import Optional, Sequence

from aidohealth.voice.interfaces import UtteranceRequest, Voice

logger = logging.getLogger(__name__)

# Name fragments that usually mark the better-sounding voices
QUALITY_VOICE_MARKERS = ("google", "natural", "premium", "enhanced", "neural")


def is_english(voice: Voice, language: str = "en") -> bool:
    return voice.lang.lower().startswith(language.lower().split("-")[0])


def select_voice(voices: Sequence[Voice], language: str = "en") -> Optional[Voice]:
    """
    Preferred voice for ``language``.

    A quality-marked voice in the language, else the first voice in the
    language, else None (platform default).
    """
    candidates = [v for v in voices if is_english(v, language)]
    for voice in candidates:
        name = voice.name.lower()
        if any(marker in name for marker in QUALITY_VOICE_MARKERS):
            return voice
    return candidates[0] if candidates else None


class UtteranceTracker:
    """
    Tracks which utterance is current so events from cancelled ones are ignored.

    Only the most recently submitted utterance may change ``speaking``.
    """

    def __init__(self):
        self._next_id = 1
        self.current_id: Optional[int] = None
        self.speaking = False

    def next_request(self, text: str, rate: float, pitch: float, voice: Optional[Voice]) -> UtteranceRequest:
        request = UtteranceRequest(text=text, rate=rate, pitch=pitch, voice=voice, utterance_id=self._next_id)
        self._next_id += 1
        self.current_id = request.utterance_id
        self.speaking = False
        return request

    def started(self, utterance_id: int) -> bool:
        if utterance_id != self.current_id:
            logger.debug(f"[Synthesis] Ignoring start of stale utterance {utterance_id}")
            return False
        self.speaking = True
        return True

    def finished(self, utterance_id: int) -> bool:
        if utterance_id != self.current_id:
            logger.debug(f"[Synthesis] Ignoring end of stale utterance {utterance_id}")
            return False
        self.speaking = False
        self.current_id = None
        return True

    def cancelled(self):
        self.speaking = False
        self.current_id = None
