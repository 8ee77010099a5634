"""
Voice command engine.

Owns the continuous listen -> recognize -> act loop: wake word gate,
command dispatch, spoken feedback and recovery from recognizer hiccups.

Usage:
    engine = VoiceCommandEngine(registry, recognition=source,
                                synthesis=sink, permission=authority)
    await engine.start()   # asks for the microphone if needed
    engine.stop()
    engine.close()         # on page teardown

The engine is single-threaded and event driven. Platform events are turned
into state machine events; the resulting effects run in order, and events
raised while effects run are queued until the current batch finishes.
Nothing raises across the public API: failures go to ``on_error``.
"""

import asyncio
import logging
from collections import deque
from typing import Any, Callable, Dict, Optional

from aidohealth.voice.commands import CommandRegistry
from aidohealth.voice.config import VoiceConfig, get_voice_config
from aidohealth.voice.dispatch import CommandDispatcher
from aidohealth.voice.effects import (
    CancelRestart,
    InvokeCommand,
    InvokeLogin,
    InvokePassword,
    NotifyCommandDetected,
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
from aidohealth.voice.intents import IntentExtractor
from aidohealth.voice.interfaces import (
    ErrorKind,
    PermissionAuthority,
    PermissionState,
    RecognitionListener,
    RecognitionSource,
    SynthesisListener,
    SynthesisSink,
    VoiceError,
)
from aidohealth.voice.scheduler import AsyncioRestartScheduler, RestartScheduler
from aidohealth.voice.state_machine import (
    Phase,
    PermissionChanged,
    PermissionResolved,
    RecognitionEnded,
    RecognitionErrored,
    RecognitionResult,
    RecognitionStarted,
    RecognitionStartFailed,
    RestartDue,
    SessionState,
    StartRequested,
    StopRequested,
    VoiceStateMachine,
    WakeWordReset,
)
from aidohealth.voice.synthesis import UtteranceTracker, select_voice

logger = logging.getLogger(__name__)

RECOGNITION_UNSUPPORTED = "Your browser doesn't support speech recognition."
SYNTHESIS_UNSUPPORTED = "Your browser doesn't support speech synthesis."


class VoiceCommandEngine(RecognitionListener, SynthesisListener):
    """Wake-word gated voice command loop over injected platform capabilities."""

    def __init__(self,
                 registry: CommandRegistry,
                 recognition: Optional[RecognitionSource] = None,
                 synthesis: Optional[SynthesisSink] = None,
                 permission: Optional[PermissionAuthority] = None,
                 scheduler: Optional[RestartScheduler] = None,
                 config: Optional[VoiceConfig] = None,
                 extractor: Optional[IntentExtractor] = None,
                 on_state_change: Optional[Callable[[Dict[str, Any]], None]] = None):
        """
        Args:
            registry: commands and hooks of the current page
            recognition: speech-to-text source, None when the platform has none
            synthesis: text-to-speech sink, None when the platform has none
            permission: microphone permission owner; None means no permission gate
            scheduler: single-slot restart timer (asyncio based by default)
            config: voice configuration (environment based by default)
            extractor: login/password intent extractor (regex by default)
            on_state_change: called with ``snapshot()`` whenever it changes
        """
        self.config = config or get_voice_config()
        self.registry = registry
        self.recognition = recognition
        self.synthesis = synthesis
        self.permission = permission
        self.scheduler = scheduler or AsyncioRestartScheduler()
        self.on_state_change = on_state_change
        self.machine = VoiceStateMachine(
            CommandDispatcher(registry, extractor),
            wake_word=self.config.wake_word,
            restart_delay=self.config.restart_delay,
            listening_prompt=self.config.listening_prompt,
        )

        self._state = SessionState()
        self._events = deque()
        self._processing = False
        self._closed = False
        self._utterances = UtteranceTracker()
        self._unsupported_reported = set()
        self._permission_task: Optional[asyncio.Task] = None
        self._last_snapshot: Optional[Dict[str, Any]] = None
        self._unsubscribe_permission: Optional[Callable[[], None]] = None

        if permission is not None:
            self._permission_state = permission.query()
            self._unsubscribe_permission = permission.subscribe(self._on_permission_change)
        else:
            self._permission_state = PermissionState.GRANTED

        if recognition is not None:
            recognition.bind(self)
        if synthesis is not None:
            synthesis.bind(self)

        logger.info(f"[VoiceEngine] Initialized with {len(registry)} commands, "
                    f"wake word '{self.config.wake_word}', permission={self._permission_state.value}")

    # Caller-facing state

    @property
    def phase(self) -> Phase:
        return self._state.phase

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_listening(self) -> bool:
        return self._state.listening

    @property
    def is_waiting_for_wake_word(self) -> bool:
        return self._state.waiting_for_wake_word

    @property
    def is_speaking(self) -> bool:
        return self._utterances.speaking

    @property
    def transcript(self) -> str:
        return self._state.final_transcript

    @property
    def interim_transcript(self) -> str:
        return self._state.interim_transcript

    @property
    def permission_state(self) -> PermissionState:
        return self._permission_state

    @property
    def has_permission(self) -> bool:
        return self._permission_state == PermissionState.GRANTED

    @property
    def closed(self) -> bool:
        return self._closed

    def snapshot(self) -> Dict[str, Any]:
        return {
            "phase": self._state.phase.value,
            "is_listening": self.is_listening,
            "is_waiting_for_wake_word": self.is_waiting_for_wake_word,
            "is_speaking": self.is_speaking,
            "transcript": self.transcript,
            "interim_transcript": self.interim_transcript,
            "has_permission": self.has_permission,
            "permission_state": self._permission_state.value,
        }

    # Caller-facing operations

    async def start(self):
        """Start listening; requests microphone access first when needed."""
        if self._closed:
            return
        if self.recognition is None:
            self._report_unsupported("recognition", RECOGNITION_UNSUPPORTED)
            return

        self._handle(StartRequested(permission_granted=self.has_permission))

        task = self._permission_task
        if task is not None and not task.done():
            await task

    def stop(self):
        """Stop listening. Safe to call at any time, including when idle."""
        self._handle(StopRequested())

    async def toggle(self):
        if self._state.active or self._state.phase == Phase.REQUESTING_PERMISSION:
            self.stop()
        else:
            await self.start()

    def reset_wake_word_state(self):
        self._handle(WakeWordReset())

    def speak(self, text: str, rate: Optional[float] = None, pitch: Optional[float] = None):
        """Speak ``text``, cancelling whatever is currently being spoken."""
        if self._closed:
            return
        if self.synthesis is None:
            self._report_unsupported("synthesis", SYNTHESIS_UNSUPPORTED)
            return

        try:
            self.synthesis.cancel()
            self._utterances.cancelled()
            voice = select_voice(self.synthesis.voices(), self.config.language)
            request = self._utterances.next_request(
                text,
                rate if rate is not None else self.config.speech_rate,
                pitch if pitch is not None else self.config.speech_pitch,
                voice,
            )
            logger.info(f"[VoiceEngine] Speaking #{request.utterance_id}: {text[:50]}")
            self.synthesis.speak(request)
        except Exception as e:
            logger.error(f"[VoiceEngine] Speech synthesis error: {e}")
            self._utterances.cancelled()
        self._publish_state()

    def close(self):
        """Tear down: stop recognition, cancel speech and timers, drop subscriptions."""
        if self._closed:
            return
        logger.info("[VoiceEngine] Closing...")

        self.scheduler.cancel()

        if self._state.active and self.recognition is not None:
            try:
                self.recognition.stop()
            except Exception as e:
                logger.warning(f"[VoiceEngine] Error stopping recognition on close: {e}")

        if self.synthesis is not None and self._utterances.current_id is not None:
            try:
                self.synthesis.cancel()
            except Exception as e:
                logger.warning(f"[VoiceEngine] Error cancelling speech on close: {e}")
        self._utterances.cancelled()

        if self._unsubscribe_permission is not None:
            self._unsubscribe_permission()
            self._unsubscribe_permission = None

        if self._permission_task is not None and not self._permission_task.done():
            self._permission_task.cancel()

        self._events.clear()
        self._state = SessionState()
        self._closed = True
        logger.info("[VoiceEngine] Closed")

    # Recognition events

    def on_recognition_start(self):
        self._handle(RecognitionStarted())

    def on_recognition_result(self, interim: str, final: str):
        self._handle(RecognitionResult(interim=interim or "", final=final or ""))

    def on_recognition_error(self, code: str):
        if code == "no-speech":
            logger.info("[VoiceEngine] No speech detected, restarting recognition")
        else:
            logger.warning(f"[VoiceEngine] Speech recognition error: {code}")
        self._handle(RecognitionErrored(code))

    def on_recognition_end(self):
        self._handle(RecognitionEnded())

    # Synthesis events

    def on_speech_start(self, utterance_id: int):
        if self._closed:
            return
        if self._utterances.started(utterance_id):
            self._publish_state()

    def on_speech_end(self, utterance_id: int):
        if self._closed:
            return
        if self._utterances.finished(utterance_id):
            self._publish_state()

    def on_speech_error(self, utterance_id: int, error: str):
        if self._closed:
            return
        logger.error(f"[VoiceEngine] Speech synthesis error on #{utterance_id}: {error}")
        if self._utterances.finished(utterance_id):
            self._publish_state()

    # Permission events

    def _on_permission_change(self, state: PermissionState):
        logger.info(f"[VoiceEngine] Microphone permission changed: {state.value}")
        self._handle(PermissionChanged(state))

    async def _request_permission(self):
        try:
            granted = await self.permission.request_access()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[VoiceEngine] Microphone access request failed: {e}")
            granted = False
        logger.info(f"[VoiceEngine] Microphone access {'granted' if granted else 'denied'}")
        self._handle(PermissionResolved(bool(granted)))

    # Event processing

    def _handle(self, event):
        if self._closed:
            logger.debug(f"[VoiceEngine] Ignoring {type(event).__name__} after close")
            return

        self._events.append(event)
        if self._processing:
            return

        self._processing = True
        try:
            while self._events:
                current = self._events.popleft()
                previous = self._state
                self._state, effects = self.machine.transition(previous, current)
                if previous.phase != self._state.phase:
                    logger.info(f"[VoiceEngine] {previous.phase.name} → {self._state.phase.name} "
                                f"({type(current).__name__})")
                for effect in effects:
                    if self._closed:
                        break
                    self._execute(effect)
        finally:
            self._processing = False
        self._publish_state()

    def _execute(self, effect):
        if isinstance(effect, StartRecognition):
            try:
                self.recognition.start()
            except Exception as e:
                logger.error(f"[VoiceEngine] Could not {'restart' if effect.restart else 'start'} recognition: {e}")
                self._handle(RecognitionStartFailed(restart=effect.restart))
            else:
                if effect.announcement:
                    self.speak(effect.announcement)

        elif isinstance(effect, StopRecognition):
            try:
                self.recognition.stop()
            except Exception as e:
                logger.warning(f"[VoiceEngine] Error stopping recognition: {e}")

        elif isinstance(effect, ScheduleRestart):
            fresh = effect.fresh
            self.scheduler.schedule(effect.delay, lambda: self._handle(RestartDue(fresh=fresh)))

        elif isinstance(effect, CancelRestart):
            self.scheduler.cancel()

        elif isinstance(effect, RequestPermission):
            logger.info("[VoiceEngine] Requesting microphone access")
            self._permission_task = asyncio.get_running_loop().create_task(self._request_permission())

        elif isinstance(effect, RecordPermission):
            self._permission_state = effect.state

        elif isinstance(effect, Speak):
            self.speak(effect.text)

        elif isinstance(effect, NotifyListening):
            self._call_hook("on_listening")

        elif isinstance(effect, NotifyStopped):
            self._call_hook("on_stopped")

        elif isinstance(effect, NotifyWakeWord):
            self._call_hook("on_wake_word")

        elif isinstance(effect, NotifyResult):
            self._call_hook("on_result", effect.transcript)

        elif isinstance(effect, InvokeCommand):
            try:
                effect.command.handler()
            except Exception as e:
                logger.error(f"[VoiceEngine] Command '{effect.command.name}' failed: {e}")
            if effect.notify:
                self._call_hook("on_command_detected", effect.command.name, effect.transcript)

        elif isinstance(effect, InvokeLogin):
            self._call_hook("on_login", effect.email)

        elif isinstance(effect, InvokePassword):
            self._call_hook("on_password", effect.password)

        elif isinstance(effect, NotifyCommandDetected):
            self._call_hook("on_command_detected", effect.name, effect.transcript)

        elif isinstance(effect, ReportError):
            self._report(effect.error)

        else:
            raise TypeError(f"Unknown voice effect: {effect!r}")

    def _call_hook(self, name: str, *args):
        hook = getattr(self.registry, name)
        if hook is None:
            return
        try:
            hook(*args)
        except Exception as e:
            logger.error(f"[VoiceEngine] Hook {name} failed: {e}")

    def _report(self, error: VoiceError):
        logger.error(f"[VoiceEngine] {error.kind.value} error ({error.code}): {error.message}")
        self._call_hook("on_error", error)

    def _report_unsupported(self, capability: str, message: str):
        if capability in self._unsupported_reported:
            logger.debug(f"[VoiceEngine] {capability} unsupported (already reported)")
            return
        self._unsupported_reported.add(capability)
        self._report(VoiceError(message, f"{capability}-unsupported", ErrorKind.UNSUPPORTED))

    def _publish_state(self):
        if self.on_state_change is None or self._closed:
            return
        snapshot = self.snapshot()
        if snapshot == self._last_snapshot:
            return
        self._last_snapshot = snapshot
        try:
            self.on_state_change(snapshot)
        except Exception as e:
            logger.error(f"[VoiceEngine] State listener failed: {e}")
