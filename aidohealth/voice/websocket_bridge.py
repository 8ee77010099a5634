"""
Browser-backed voice capabilities over a WebSocket.

The browser page owns the microphone, the Web Speech recognizer and the
speech synthesizer. The adapters here forward engine calls to the page as
JSON messages, and ``VoiceBridgeSession.handle`` feeds the page's events
back into the engine. The session knows nothing about the socket itself:
outgoing messages are queued on ``outbox`` for the router to send.
"""

import asyncio
import logging
from typing import Callable, List, Optional

from pydantic import BaseModel

from aidohealth.ai.intent_llm import build_intent_extractor
from aidohealth.voice.assistant import VoiceAssistant
from aidohealth.voice.commands import Command
from aidohealth.voice.config import VoiceConfig, get_voice_config
from aidohealth.voice.dispatch import normalize_transcript
from aidohealth.voice.intents import IntentExtractor, spoken_email_to_address
from aidohealth.voice.interfaces import (
    PermissionAuthority,
    PermissionState,
    RecognitionListener,
    RecognitionSource,
    SynthesisListener,
    SynthesisSink,
    UtteranceRequest,
    Voice,
    VoiceError,
)
from aidohealth.voice.messages import (
    AssistantResponseMessage,
    CancelSpeech,
    CommandDetectedMessage,
    ErrorMessage,
    ExecuteMessage,
    GreetMessage,
    HelloMessage,
    HelpMessage,
    InvalidMessage,
    LoginMessage,
    PasswordMessage,
    PermissionMessage,
    PermissionResultMessage,
    RecognitionControl,
    RecognitionEndMessage,
    RecognitionErrorMessage,
    RecognitionResultMessage,
    RecognitionStartMessage,
    RequestPermissionCommand,
    ResetWakeWordMessage,
    SpeakCommand,
    SpeakMessage,
    SpeechErrorMessage,
    SpeechEventMessage,
    StartMessage,
    StateMessage,
    StopMessage,
    ToggleMessage,
    TranscriptMessage,
    VoicesMessage,
    WakeWordMessage,
    parse_client_message,
)
from aidohealth.voice.scheduler import RestartScheduler
from aidohealth.voice.state_machine import Phase

logger = logging.getLogger(__name__)


class Outbox:
    """Queue of serialized server messages waiting to be sent."""

    def __init__(self):
        self.queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def send(self, message: BaseModel):
        if self.closed:
            logger.debug(f"[VoiceBridge] Dropping {message.type} after close")
            return
        self.queue.put_nowait(message.model_dump(mode="json"))

    def close(self):
        self.closed = True
        self.queue.put_nowait(None)


class BrowserRecognitionSource(RecognitionSource):
    """Web Speech recognizer running in the page."""

    def __init__(self, outbox: Outbox, config: VoiceConfig):
        self.outbox = outbox
        self.config = config
        self.listener: Optional[RecognitionListener] = None

    def bind(self, listener: RecognitionListener) -> None:
        self.listener = listener

    def start(self) -> None:
        self.outbox.send(RecognitionControl(
            action="start",
            lang=self.config.language,
            continuous=self.config.continuous,
            interim_results=self.config.interim_results,
        ))

    def stop(self) -> None:
        self.outbox.send(RecognitionControl(action="stop", lang=self.config.language))


class BrowserSynthesisSink(SynthesisSink):
    """speechSynthesis in the page."""

    def __init__(self, outbox: Outbox, voices: Optional[List[Voice]] = None):
        self.outbox = outbox
        self.listener: Optional[SynthesisListener] = None
        self._voices = list(voices or [])

    def bind(self, listener: SynthesisListener) -> None:
        self.listener = listener

    def speak(self, request: UtteranceRequest) -> None:
        self.outbox.send(SpeakCommand(
            utterance_id=request.utterance_id,
            text=request.text,
            rate=request.rate,
            pitch=request.pitch,
            voice=request.voice.name if request.voice else None,
        ))

    def cancel(self) -> None:
        self.outbox.send(CancelSpeech())

    def voices(self) -> List[Voice]:
        return list(self._voices)

    def set_voices(self, voices: List[Voice]):
        self._voices = list(voices)


class BrowserPermissionAuthority(PermissionAuthority):
    """
    Microphone permission as seen by the page.

    ``request_access`` asks the page to open and immediately release a test
    stream, then waits for its ``permission_result``.
    """

    def __init__(self, outbox: Outbox, state: PermissionState = PermissionState.PROMPT):
        self.outbox = outbox
        self._state = state
        self._subscribers: List[Callable[[PermissionState], None]] = []
        self._pending: Optional[asyncio.Future] = None

    def query(self) -> PermissionState:
        return self._state

    def subscribe(self, callback: Callable[[PermissionState], None]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def request_access(self) -> bool:
        self._pending = asyncio.get_running_loop().create_future()
        self.outbox.send(RequestPermissionCommand())
        try:
            return await self._pending
        finally:
            self._pending = None

    def resolve(self, granted: bool):
        """Outcome of the page's permission check."""
        self._state = PermissionState.GRANTED if granted else PermissionState.DENIED
        if self._pending is not None and not self._pending.done():
            self._pending.set_result(granted)
        else:
            logger.warning("[VoiceBridge] permission_result without a pending request")

    def update(self, state: PermissionState):
        """Permission changed outside of a request."""
        if state == self._state:
            return
        self._state = state
        for callback in list(self._subscribers):
            callback(state)


class VoiceBridgeSession:
    """
    One page connection.

    The page must send ``hello`` first; a later ``hello`` (page navigation)
    replaces the assistant with one built for the new page's commands.
    """

    def __init__(self,
                 config: Optional[VoiceConfig] = None,
                 extractor: Optional[IntentExtractor] = None,
                 scheduler_factory: Optional[Callable[[], RestartScheduler]] = None):
        self.config = config or get_voice_config()
        self.extractor = extractor or build_intent_extractor(self.config)
        self.scheduler_factory = scheduler_factory
        self.outbox = Outbox()

        self.assistant: Optional[VoiceAssistant] = None
        self.recognition: Optional[BrowserRecognitionSource] = None
        self.synthesis: Optional[BrowserSynthesisSink] = None
        self.permission: Optional[BrowserPermissionAuthority] = None
        self._tasks = set()
        self.closed = False

    async def handle(self, data):
        """Process one decoded client message. Messages are handled one at a time, in order."""
        if self.closed:
            return
        try:
            message = parse_client_message(data)
        except InvalidMessage as e:
            logger.warning(f"[VoiceBridge] {e}")
            self.outbox.send(ErrorMessage(message=str(e)))
            return

        if isinstance(message, HelloMessage):
            self._on_hello(message)
            return

        if self.assistant is None:
            self.outbox.send(ErrorMessage(message="Send 'hello' before other messages", code="no-session"))
            return

        engine = self.assistant.engine

        if isinstance(message, StartMessage):
            self._spawn(engine.start())
        elif isinstance(message, StopMessage):
            engine.stop()
        elif isinstance(message, ToggleMessage):
            self._spawn(engine.toggle())
        elif isinstance(message, ResetWakeWordMessage):
            engine.reset_wake_word_state()
        elif isinstance(message, HelpMessage):
            self.assistant.show_help()
        elif isinstance(message, SpeakMessage):
            engine.speak(message.text, message.rate, message.pitch)
        elif isinstance(message, GreetMessage):
            self.assistant.greet_user(message.name, message.role)
        elif isinstance(message, VoicesMessage):
            if self.synthesis is not None:
                self.synthesis.set_voices([Voice(v.name, v.lang) for v in message.voices])
        elif isinstance(message, RecognitionStartMessage):
            engine.on_recognition_start()
        elif isinstance(message, RecognitionResultMessage):
            if message.final.strip() and engine.phase == Phase.LISTENING_FOR_COMMAND:
                # Slow intent lookups run off the event loop before dispatch
                await self.extractor.prepare(normalize_transcript(message.final))
                if self.closed or self.assistant is None:
                    return
            engine.on_recognition_result(message.interim, message.final)
        elif isinstance(message, RecognitionErrorMessage):
            engine.on_recognition_error(message.error)
        elif isinstance(message, RecognitionEndMessage):
            engine.on_recognition_end()
        elif isinstance(message, SpeechEventMessage):
            if message.type == "speech_start":
                engine.on_speech_start(message.utterance_id)
            else:
                engine.on_speech_end(message.utterance_id)
        elif isinstance(message, SpeechErrorMessage):
            engine.on_speech_error(message.utterance_id, message.error)
        elif isinstance(message, PermissionMessage):
            self.permission.update(message.state)
        elif isinstance(message, PermissionResultMessage):
            self.permission.resolve(message.granted)

    def _on_hello(self, hello: HelloMessage):
        if self.assistant is not None:
            logger.info("[VoiceBridge] New page, replacing voice assistant")
            self._close_assistant()

        self.recognition = BrowserRecognitionSource(self.outbox, self.config) if hello.recognition_supported else None
        self.synthesis = BrowserSynthesisSink(
            self.outbox, [Voice(v.name, v.lang) for v in hello.voices]) if hello.synthesis_supported else None
        self.permission = BrowserPermissionAuthority(self.outbox, hello.permission)

        commands = [
            Command(name=spec.command,
                    handler=self._executor(spec.command),
                    description=spec.description,
                    category=spec.category)
            for spec in hello.commands
        ]
        hooks = {
            "on_wake_word": lambda: self.outbox.send(WakeWordMessage()),
            "on_error": self._on_error,
            "on_result": lambda transcript: self.outbox.send(TranscriptMessage(transcript=transcript)),
            "on_login": lambda email: self.outbox.send(LoginMessage(email=spoken_email_to_address(email))),
            "on_password": lambda password: self.outbox.send(PasswordMessage(password=password)),
        }

        engine_kwargs = {}
        if self.scheduler_factory is not None:
            engine_kwargs["scheduler"] = self.scheduler_factory()

        self.assistant = VoiceAssistant(
            commands,
            on_response=lambda text: self.outbox.send(AssistantResponseMessage(text=text)),
            on_command_detected=lambda name, transcript: self.outbox.send(
                CommandDetectedMessage(command=name, transcript=transcript)),
            welcomed=hello.welcomed,
            hooks=hooks,
            recognition=self.recognition,
            synthesis=self.synthesis,
            permission=self.permission,
            config=self.config,
            extractor=self.extractor,
            on_state_change=lambda state: self.outbox.send(StateMessage(state=state)),
            **engine_kwargs,
        )
        logger.info(f"[VoiceBridge] Page session ready with {len(commands)} commands "
                    f"(recognition={hello.recognition_supported}, synthesis={hello.synthesis_supported}, "
                    f"auto_start={hello.auto_start})")

        self.outbox.send(StateMessage(state=self.assistant.engine.snapshot()))
        if not hello.welcomed:
            self._spawn(self.assistant.welcome())
        if hello.auto_start:
            self._spawn(self.assistant.engine.start())

    def _executor(self, name: str) -> Callable[[], None]:
        def execute():
            self.outbox.send(ExecuteMessage(command=name))
        return execute

    def _on_error(self, error: VoiceError):
        self.outbox.send(ErrorMessage(message=error.message, code=error.code, kind=error.kind.value))

    def _spawn(self, coro):
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"[VoiceBridge] Background task failed: {task.exception()}")

    def _close_assistant(self):
        for task in list(self._tasks):
            task.cancel()
        if self.assistant is not None:
            self.assistant.close()
            self.assistant = None

    def close(self):
        if self.closed:
            return
        self._close_assistant()
        self.outbox.close()
        self.closed = True
        logger.info("[VoiceBridge] Session closed")
