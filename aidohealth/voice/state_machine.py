"""
Voice session state machine.

    IDLE -> (start, permission granted) -> STARTING
    IDLE -> (start, no permission) -> REQUESTING_PERMISSION
         -> granted -> STARTING / denied -> PERMISSION_DENIED
    STARTING -> (recognizer started) -> WAITING_FOR_WAKE_WORD
    WAITING_FOR_WAKE_WORD -> (wake word in final segment) -> LISTENING_FOR_COMMAND
    LISTENING_FOR_COMMAND -> (final segment) -> dispatch, stay
    any active -> stop -> IDLE

`VoiceStateMachine.transition` is pure: (state, event) -> (state, effects).
"""

import re
import logging
from enum import Enum
from dataclasses import dataclass, replace
from typing import List, Tuple

from aidohealth.voice.dispatch import CommandDispatcher, normalize_transcript
from aidohealth.voice.effects import (
    CancelRestart,
    Effect,
    NotifyListening,
    NotifyResult,
    NotifyStopped,
    NotifyWakeWord,
    RecordPermission,
    ReportError,
    RequestPermission,
    ScheduleRestart,
    Speak,
    StartRecognition,
    StopRecognition,
)
from aidohealth.voice.interfaces import ErrorKind, PermissionState, VoiceError

logger = logging.getLogger(__name__)

WAKE_ACKNOWLEDGEMENT = "Hello! How can I help you?"
START_FAILED_MESSAGE = "Could not start speech recognition."
PERMISSION_DENIED_MESSAGE = "Microphone access was denied. Allow microphone access to use voice commands."

PERMISSION_ERROR_CODES = ("not-allowed", "service-not-allowed")
TRANSIENT_ERROR_CODES = ("no-speech",)
IGNORED_ERROR_CODES = ("aborted",)
DEVICE_ERROR_MESSAGES = {
    "audio-capture": "No microphone was found or it stopped working.",
    "network": "Speech recognition needs a network connection.",
}


class Phase(Enum):
    IDLE = "idle"
    REQUESTING_PERMISSION = "requesting_permission"
    PERMISSION_DENIED = "permission_denied"
    STARTING = "starting"
    WAITING_FOR_WAKE_WORD = "waiting_for_wake_word"
    LISTENING_FOR_COMMAND = "listening_for_command"


ACTIVE_PHASES = (Phase.STARTING, Phase.WAITING_FOR_WAKE_WORD, Phase.LISTENING_FOR_COMMAND)
LISTENING_PHASES = (Phase.WAITING_FOR_WAKE_WORD, Phase.LISTENING_FOR_COMMAND)


@dataclass(frozen=True)
class SessionState:
    """Per-activation recognition session."""
    phase: Phase = Phase.IDLE
    final_transcript: str = ""
    interim_transcript: str = ""
    fresh_start_pending: bool = False   # restart-while-active waiting for its tick
    stale_ends: int = 0                 # torn-down sessions whose end event is still due

    @property
    def active(self) -> bool:
        return self.phase in ACTIVE_PHASES

    @property
    def listening(self) -> bool:
        return self.phase in LISTENING_PHASES

    @property
    def waiting_for_wake_word(self) -> bool:
        return self.phase in (Phase.STARTING, Phase.WAITING_FOR_WAKE_WORD)


# Events

@dataclass(frozen=True)
class StartRequested:
    permission_granted: bool


@dataclass(frozen=True)
class PermissionResolved:
    granted: bool


@dataclass(frozen=True)
class PermissionChanged:
    state: PermissionState


@dataclass(frozen=True)
class StopRequested:
    pass


@dataclass(frozen=True)
class RecognitionStarted:
    pass


@dataclass(frozen=True)
class RecognitionResult:
    interim: str
    final: str


@dataclass(frozen=True)
class RecognitionErrored:
    code: str


@dataclass(frozen=True)
class RecognitionEnded:
    pass


@dataclass(frozen=True)
class RestartDue:
    fresh: bool = False


@dataclass(frozen=True)
class RecognitionStartFailed:
    restart: bool = False


@dataclass(frozen=True)
class WakeWordReset:
    pass


Transition = Tuple[SessionState, List[Effect]]


def _fold(text: str) -> str:
    return re.sub(r"[\s\-]+", " ", text.lower()).strip()


class VoiceStateMachine:
    """Transition table for one engine; holds only immutable configuration."""

    def __init__(self, dispatcher: CommandDispatcher, wake_word: str = "WAKE-UP",
                 restart_delay: float = 0.3, listening_prompt: str = None):
        if not _fold(wake_word):
            raise ValueError("wake_word must not be empty")
        self.dispatcher = dispatcher
        self.wake_word = wake_word
        self.restart_delay = restart_delay
        self.listening_prompt = listening_prompt or \
            f"Voice assistant is now listening. Say '{wake_word}' to activate."
        self._handlers = {
            StartRequested: self._on_start_requested,
            PermissionResolved: self._on_permission_resolved,
            PermissionChanged: self._on_permission_changed,
            StopRequested: self._on_stop_requested,
            RecognitionStarted: self._on_recognition_started,
            RecognitionResult: self._on_recognition_result,
            RecognitionErrored: self._on_recognition_errored,
            RecognitionEnded: self._on_recognition_ended,
            RestartDue: self._on_restart_due,
            RecognitionStartFailed: self._on_start_failed,
            WakeWordReset: self._on_wake_word_reset,
        }

    def transition(self, state: SessionState, event) -> Transition:
        handler = self._handlers.get(type(event))
        if handler is None:
            raise TypeError(f"Unknown voice event: {event!r}")
        return handler(state, event)

    def contains_wake_word(self, text: str) -> bool:
        return _fold(self.wake_word) in _fold(text)

    def _begin(self, stale_ends: int = 0) -> Transition:
        return (SessionState(phase=Phase.STARTING, stale_ends=stale_ends),
                [StartRecognition(announcement=self.listening_prompt)])

    def _deny(self, state: SessionState, code: str) -> Transition:
        effects: List[Effect] = [CancelRestart()]
        if state.active:
            effects.append(StopRecognition())
        effects.append(RecordPermission(PermissionState.DENIED))
        if state.phase != Phase.PERMISSION_DENIED:
            effects.append(ReportError(VoiceError(PERMISSION_DENIED_MESSAGE, code, ErrorKind.PERMISSION)))
        if state.active:
            effects.append(NotifyStopped())
        return SessionState(phase=Phase.PERMISSION_DENIED), effects

    def _on_start_requested(self, state: SessionState, event: StartRequested) -> Transition:
        if state.active:
            # Tear down the running session and start fresh on the next tick
            stale_ends = state.stale_ends if state.fresh_start_pending else state.stale_ends + 1
            return (SessionState(phase=Phase.STARTING, fresh_start_pending=True, stale_ends=stale_ends),
                    [StopRecognition(), ScheduleRestart(0.0, fresh=True)])
        if state.phase == Phase.REQUESTING_PERMISSION:
            return state, []
        if event.permission_granted:
            return self._begin()
        return SessionState(phase=Phase.REQUESTING_PERMISSION), [RequestPermission()]

    def _on_permission_resolved(self, state: SessionState, event: PermissionResolved) -> Transition:
        if state.phase != Phase.REQUESTING_PERMISSION:
            # Stopped while the request was open; keep the answer for the next start
            return state, [RecordPermission(PermissionState.GRANTED if event.granted else PermissionState.DENIED)]
        if event.granted:
            new_state, effects = self._begin()
            return new_state, [RecordPermission(PermissionState.GRANTED)] + effects
        return self._deny(state, "not-allowed")

    def _on_permission_changed(self, state: SessionState, event: PermissionChanged) -> Transition:
        effects: List[Effect] = [RecordPermission(event.state)]
        if event.state == PermissionState.DENIED and (state.active or state.phase == Phase.REQUESTING_PERMISSION):
            new_state, deny_effects = self._deny(state, "not-allowed")
            return new_state, effects + [e for e in deny_effects if not isinstance(e, RecordPermission)]
        if event.state == PermissionState.GRANTED and state.phase == Phase.PERMISSION_DENIED:
            return SessionState(phase=Phase.IDLE), effects
        return state, effects

    def _on_stop_requested(self, state: SessionState, event: StopRequested) -> Transition:
        if state.active:
            return SessionState(phase=Phase.IDLE), [CancelRestart(), StopRecognition(), NotifyStopped()]
        if state.phase == Phase.REQUESTING_PERMISSION:
            return SessionState(phase=Phase.IDLE), []
        return state, []

    def _on_recognition_started(self, state: SessionState, event: RecognitionStarted) -> Transition:
        if state.phase == Phase.STARTING and not state.fresh_start_pending:
            return replace(state, phase=Phase.WAITING_FOR_WAKE_WORD), [NotifyListening()]
        if state.active:
            return state, []
        # Late start from a session we already stopped
        return state, [StopRecognition()]

    def _on_recognition_result(self, state: SessionState, event: RecognitionResult) -> Transition:
        if not state.listening:
            return state, []

        normalized = normalize_transcript(event.final)
        if not normalized:
            return replace(state, interim_transcript=event.interim), []

        if state.phase == Phase.WAITING_FOR_WAKE_WORD:
            if self.contains_wake_word(normalized):
                logger.info(f"[VoiceStateMachine] Wake word detected in '{normalized}'")
                return (replace(state, phase=Phase.LISTENING_FOR_COMMAND, final_transcript="", interim_transcript=""),
                        [NotifyWakeWord(), Speak(WAKE_ACKNOWLEDGEMENT)])
            return replace(state, interim_transcript=event.interim), []

        segment = event.final.strip()
        transcript = f"{state.final_transcript} {segment}" if state.final_transcript else segment
        new_state = replace(state, final_transcript=transcript, interim_transcript=event.interim)
        return new_state, [NotifyResult(transcript)] + self.dispatcher.dispatch(normalized)

    def _on_recognition_errored(self, state: SessionState, event: RecognitionErrored) -> Transition:
        code = event.code
        if code in IGNORED_ERROR_CODES:
            return state, []

        if code in TRANSIENT_ERROR_CODES:
            if state.active and not state.fresh_start_pending:
                return state, [StopRecognition(), ScheduleRestart(self.restart_delay)]
            return state, []

        if code in PERMISSION_ERROR_CODES:
            return self._deny(state, code)

        if not state.active:
            return state, []
        message = DEVICE_ERROR_MESSAGES.get(code, f"Speech recognition error: {code}")
        return (SessionState(phase=Phase.IDLE),
                [CancelRestart(), StopRecognition(),
                 ReportError(VoiceError(message, code, ErrorKind.DEVICE)), NotifyStopped()])

    def _on_recognition_ended(self, state: SessionState, event: RecognitionEnded) -> Transition:
        if state.stale_ends:
            return replace(state, stale_ends=state.stale_ends - 1), []
        if state.active and not state.fresh_start_pending:
            return state, [ScheduleRestart(self.restart_delay)]
        return state, []

    def _on_restart_due(self, state: SessionState, event: RestartDue) -> Transition:
        if not state.active:
            return state, []
        if event.fresh:
            return self._begin(state.stale_ends)
        if state.fresh_start_pending:
            return state, []
        return state, [StartRecognition(restart=True)]

    def _on_start_failed(self, state: SessionState, event: RecognitionStartFailed) -> Transition:
        if not state.active:
            return state, []
        if event.restart:
            return SessionState(phase=Phase.IDLE), [CancelRestart(), NotifyStopped()]
        return (SessionState(phase=Phase.IDLE),
                [CancelRestart(), ReportError(VoiceError(START_FAILED_MESSAGE, "start-failed", ErrorKind.START_FAILED))])

    def _on_wake_word_reset(self, state: SessionState, event: WakeWordReset) -> Transition:
        if state.phase == Phase.LISTENING_FOR_COMMAND:
            return replace(state, phase=Phase.WAITING_FOR_WAKE_WORD, interim_transcript=""), []
        return state, []
