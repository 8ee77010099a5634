"""
Voice assistant configuration

Single place for the wake word, recognition language, restart timing and
speech defaults used by the voice command engine and the WebSocket bridge.
Values come from environment variables (or a .env file).
"""

import os
import logging
from enum import Enum
from typing import Optional
from dataclasses import dataclass

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)


class IntentExtractorKind(Enum):
    """Available login/password intent extraction strategies"""
    REGEX = "regex"
    LLM = "llm"


@dataclass
class VoiceConfig:
    """Voice assistant configuration with browser-matching defaults"""
    wake_word: str = "WAKE-UP"
    language: str = "en-US"           # Recognition language tag
    continuous: bool = True
    interim_results: bool = True

    # Auto-restart after no-speech / unexpected end
    restart_delay: float = 0.3        # seconds

    # Speech synthesis defaults
    speech_rate: float = 1.0
    speech_pitch: float = 1.0

    # Intent extraction
    intent_extractor: IntentExtractorKind = IntentExtractorKind.REGEX
    openai_api_key: str = ""          # Use environment variable
    openai_model: str = "gpt-4o-mini"

    # Bridge server
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    @property
    def listening_prompt(self) -> str:
        return f"Voice assistant is now listening. Say '{self.wake_word}' to activate."

    @classmethod
    def from_env(cls) -> 'VoiceConfig':
        """Create configuration from environment variables"""
        delay_ms = _env_float("VOICE_RESTART_DELAY_MS", cls.restart_delay * 1000)
        if delay_ms < 0:
            raise ValueError(f"VOICE_RESTART_DELAY_MS must be >= 0, got {delay_ms}")

        extractor_name = os.getenv("VOICE_INTENT_EXTRACTOR", cls.intent_extractor.value).lower()
        try:
            extractor = IntentExtractorKind(extractor_name)
        except ValueError:
            raise ValueError(f"Unknown VOICE_INTENT_EXTRACTOR: {extractor_name}")

        return cls(
            wake_word=os.getenv("VOICE_WAKE_WORD", cls.wake_word),
            language=os.getenv("VOICE_LANGUAGE", cls.language),
            restart_delay=delay_ms / 1000.0,
            speech_rate=_env_float("VOICE_SPEECH_RATE", cls.speech_rate),
            speech_pitch=_env_float("VOICE_SPEECH_PITCH", cls.speech_pitch),
            intent_extractor=extractor,
            openai_api_key=os.getenv("OPENAI_API_KEY", cls.openai_api_key),
            openai_model=os.getenv("OPENAI_MODEL", cls.openai_model),
            host=os.getenv("VOICE_HOST", cls.host),
            port=int(_env_float("VOICE_PORT", cls.port)),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
        )


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return float(default)
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


# Global config instance
_voice_config: Optional[VoiceConfig] = None


def get_voice_config() -> VoiceConfig:
    """Get or create the global voice configuration"""
    global _voice_config
    if _voice_config is None:
        _voice_config = VoiceConfig.from_env()
        logger.info(f"[VoiceConfig] Loaded: wake_word={_voice_config.wake_word!r}, "
                    f"language={_voice_config.language}, "
                    f"extractor={_voice_config.intent_extractor.value}")
    return _voice_config


def reset_voice_config():
    """Drop the cached configuration so the next lookup re-reads the environment."""
    global _voice_config
    _voice_config = None
