"""
Capability contracts consumed by the voice command engine.

The engine never looks up platform singletons. Speech recognition, speech
synthesis and microphone permission are handed to it at construction, so a
browser bridge, a local audio stack or an in-memory fake can stand behind
each one.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional


class PermissionState(Enum):
    """Microphone permission as reported by the host platform."""
    PROMPT = "prompt"
    GRANTED = "granted"
    DENIED = "denied"


class ErrorKind(Enum):
    PERMISSION = "permission"
    UNSUPPORTED = "unsupported"
    DEVICE = "device"
    START_FAILED = "start_failed"


@dataclass(frozen=True)
class VoiceError:
    """Failure reported to callers through the ``on_error`` hook."""
    message: str
    code: str
    kind: ErrorKind


@dataclass(frozen=True)
class Voice:
    """A synthesis voice offered by the platform."""
    name: str
    lang: str


@dataclass(frozen=True)
class UtteranceRequest:
    """One piece of text submitted to the synthesis sink."""
    text: str
    rate: float = 1.0
    pitch: float = 1.0
    voice: Optional[Voice] = None
    utterance_id: int = 0


class RecognitionListener(ABC):
    """Receiver of recognition backend events."""

    @abstractmethod
    def on_recognition_start(self) -> None: ...

    @abstractmethod
    def on_recognition_result(self, interim: str, final: str) -> None: ...

    @abstractmethod
    def on_recognition_error(self, code: str) -> None: ...

    @abstractmethod
    def on_recognition_end(self) -> None: ...


class SynthesisListener(ABC):
    """Receiver of speech synthesis events."""

    @abstractmethod
    def on_speech_start(self, utterance_id: int) -> None: ...

    @abstractmethod
    def on_speech_end(self, utterance_id: int) -> None: ...

    @abstractmethod
    def on_speech_error(self, utterance_id: int, error: str) -> None: ...


class RecognitionSource(ABC):
    """
    Continuous speech-to-text stream.

    Implementations run continuously with interim results enabled and a
    fixed language tag. ``start`` may raise when the backend refuses to
    start (already started, device gone); the engine handles that.
    """

    @abstractmethod
    def bind(self, listener: RecognitionListener) -> None:
        """Attach the listener that receives start/result/error/end events."""

    @abstractmethod
    def start(self) -> None: ...

    @abstractmethod
    def stop(self) -> None: ...


class SynthesisSink(ABC):
    """Text-to-speech engine. Only one utterance speaks at a time."""

    @abstractmethod
    def bind(self, listener: SynthesisListener) -> None: ...

    @abstractmethod
    def speak(self, request: UtteranceRequest) -> None: ...

    @abstractmethod
    def cancel(self) -> None:
        """Stop the utterance currently speaking, if any."""

    @abstractmethod
    def voices(self) -> List[Voice]: ...


class PermissionAuthority(ABC):
    """
    Owner of the microphone permission.

    ``request_access`` opens whatever stream the platform needs to trigger the
    permission prompt and must release that stream before returning.
    """

    @abstractmethod
    def query(self) -> PermissionState: ...

    @abstractmethod
    def subscribe(self, callback: Callable[[PermissionState], None]) -> Callable[[], None]:
        """Register for permission changes; returns an unsubscribe function."""

    @abstractmethod
    async def request_access(self) -> bool: ...
