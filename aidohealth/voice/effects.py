"""
Side effects produced by voice state transitions.

Transitions never touch the recognizer, the synthesizer or caller code
directly; they return these records and the engine carries them out in order.
"""

from dataclasses import dataclass
from typing import Optional

from aidohealth.voice.commands import Command
from aidohealth.voice.interfaces import PermissionState, VoiceError


class Effect:
    """Base class for all effects."""


@dataclass(frozen=True)
class StartRecognition(Effect):
    restart: bool = False       # True when re-opening after an end/no-speech
    announcement: Optional[str] = None  # spoken once the recognizer has started


@dataclass(frozen=True)
class StopRecognition(Effect):
    pass


@dataclass(frozen=True)
class ScheduleRestart(Effect):
    delay: float
    fresh: bool = False         # fresh start: reset buffers and re-announce


@dataclass(frozen=True)
class CancelRestart(Effect):
    pass


@dataclass(frozen=True)
class RequestPermission(Effect):
    pass


@dataclass(frozen=True)
class RecordPermission(Effect):
    state: PermissionState


@dataclass(frozen=True)
class Speak(Effect):
    text: str


@dataclass(frozen=True)
class NotifyListening(Effect):
    pass


@dataclass(frozen=True)
class NotifyStopped(Effect):
    pass


@dataclass(frozen=True)
class NotifyWakeWord(Effect):
    pass


@dataclass(frozen=True)
class NotifyResult(Effect):
    transcript: str


@dataclass(frozen=True)
class InvokeCommand(Effect):
    command: Command
    transcript: str
    notify: bool = True         # report through on_command_detected afterwards


@dataclass(frozen=True)
class InvokeLogin(Effect):
    email: str


@dataclass(frozen=True)
class InvokePassword(Effect):
    password: str

    def __repr__(self):
        return "InvokePassword(password='***')"


@dataclass(frozen=True)
class NotifyCommandDetected(Effect):
    name: str
    transcript: str


@dataclass(frozen=True)
class ReportError(Effect):
    error: VoiceError
