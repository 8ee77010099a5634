"""
WebSocket wire messages between a browser page and the voice engine.

Every message is a JSON object with a ``type`` field. Client messages are
validated with pydantic before they reach the engine; server messages are
serialized from the models below.
"""

from typing import Any, Dict, List, Literal, Optional, Type

from pydantic import BaseModel, Field, ValidationError, field_validator

from aidohealth.voice.commands import CommandCategory
from aidohealth.voice.interfaces import PermissionState


class VoiceInfo(BaseModel):
    name: str
    lang: str = ""


class CommandSpec(BaseModel):
    """A page command as declared by the client."""
    command: str
    description: str = ""
    category: CommandCategory = CommandCategory.GENERAL

    @field_validator("command")
    @classmethod
    def validate_command(cls, v):
        if not v.strip():
            raise ValueError("command must not be empty")
        return v


# Client -> server

class HelloMessage(BaseModel):
    """First message of a page session: capabilities and page commands."""
    type: Literal["hello"]
    permission: PermissionState = PermissionState.PROMPT
    recognition_supported: bool = True
    synthesis_supported: bool = True
    voices: List[VoiceInfo] = Field(default_factory=list)
    commands: List[CommandSpec] = Field(default_factory=list)
    welcomed: bool = False
    auto_start: bool = False   # start listening as soon as the page is ready


class StartMessage(BaseModel):
    type: Literal["start"]


class StopMessage(BaseModel):
    type: Literal["stop"]


class ToggleMessage(BaseModel):
    type: Literal["toggle"]


class ResetWakeWordMessage(BaseModel):
    type: Literal["reset_wake_word"]


class HelpMessage(BaseModel):
    type: Literal["help"]


class SpeakMessage(BaseModel):
    type: Literal["speak"]
    text: str
    rate: Optional[float] = None
    pitch: Optional[float] = None


class GreetMessage(BaseModel):
    type: Literal["greet"]
    name: str
    role: str


class VoicesMessage(BaseModel):
    """Voice list update (browsers load voices asynchronously)."""
    type: Literal["voices"]
    voices: List[VoiceInfo] = Field(default_factory=list)


class RecognitionStartMessage(BaseModel):
    type: Literal["recognition_start"]


class RecognitionResultMessage(BaseModel):
    type: Literal["recognition_result"]
    interim: str = ""
    final: str = ""


class RecognitionErrorMessage(BaseModel):
    type: Literal["recognition_error"]
    error: str


class RecognitionEndMessage(BaseModel):
    type: Literal["recognition_end"]


class SpeechEventMessage(BaseModel):
    type: Literal["speech_start", "speech_end"]
    utterance_id: int


class SpeechErrorMessage(BaseModel):
    type: Literal["speech_error"]
    utterance_id: int
    error: str = ""


class PermissionMessage(BaseModel):
    """Permission state changed outside of a request (e.g. site settings)."""
    type: Literal["permission"]
    state: PermissionState


class PermissionResultMessage(BaseModel):
    """Outcome of a ``request_permission`` check."""
    type: Literal["permission_result"]
    granted: bool


CLIENT_MESSAGES: Dict[str, Type[BaseModel]] = {
    "hello": HelloMessage,
    "start": StartMessage,
    "stop": StopMessage,
    "toggle": ToggleMessage,
    "reset_wake_word": ResetWakeWordMessage,
    "help": HelpMessage,
    "speak": SpeakMessage,
    "greet": GreetMessage,
    "voices": VoicesMessage,
    "recognition_start": RecognitionStartMessage,
    "recognition_result": RecognitionResultMessage,
    "recognition_error": RecognitionErrorMessage,
    "recognition_end": RecognitionEndMessage,
    "speech_start": SpeechEventMessage,
    "speech_end": SpeechEventMessage,
    "speech_error": SpeechErrorMessage,
    "permission": PermissionMessage,
    "permission_result": PermissionResultMessage,
}


class InvalidMessage(ValueError):
    """Raised for client messages that cannot be parsed or validated."""


def parse_client_message(data: Any) -> BaseModel:
    if not isinstance(data, dict):
        raise InvalidMessage("Message must be a JSON object")
    message_type = data.get("type")
    model = CLIENT_MESSAGES.get(message_type)
    if model is None:
        raise InvalidMessage(f"Unknown message type: {message_type!r}")
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise InvalidMessage(f"Invalid '{message_type}' message: {e.errors()[0]['msg']}")


# Server -> client

class RecognitionControl(BaseModel):
    type: Literal["recognition"] = "recognition"
    action: Literal["start", "stop"]
    lang: str = "en-US"
    continuous: bool = True
    interim_results: bool = True


class SpeakCommand(BaseModel):
    type: Literal["speak"] = "speak"
    utterance_id: int
    text: str
    rate: float = 1.0
    pitch: float = 1.0
    voice: Optional[str] = None


class CancelSpeech(BaseModel):
    type: Literal["cancel_speech"] = "cancel_speech"


class RequestPermissionCommand(BaseModel):
    type: Literal["request_permission"] = "request_permission"


class StateMessage(BaseModel):
    type: Literal["state"] = "state"
    state: Dict[str, Any]


class ExecuteMessage(BaseModel):
    """Run the page action bound to ``command``."""
    type: Literal["execute"] = "execute"
    command: str


class CommandDetectedMessage(BaseModel):
    type: Literal["command_detected"] = "command_detected"
    command: str
    transcript: str


class WakeWordMessage(BaseModel):
    type: Literal["wake_word"] = "wake_word"


class LoginMessage(BaseModel):
    type: Literal["login"] = "login"
    email: str


class PasswordMessage(BaseModel):
    type: Literal["password"] = "password"
    password: str


class TranscriptMessage(BaseModel):
    type: Literal["transcript"] = "transcript"
    transcript: str


class AssistantResponseMessage(BaseModel):
    type: Literal["assistant_response"] = "assistant_response"
    text: str


class ErrorMessage(BaseModel):
    type: Literal["error"] = "error"
    message: str
    code: str = "invalid-message"
    kind: Optional[str] = None
