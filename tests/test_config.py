"""Environment-driven voice configuration."""

import pytest

from aidohealth.voice.config import (
    IntentExtractorKind,
    VoiceConfig,
    get_voice_config,
    reset_voice_config,
)

ENV_VARS = (
    "VOICE_WAKE_WORD", "VOICE_LANGUAGE", "VOICE_RESTART_DELAY_MS", "VOICE_SPEECH_RATE",
    "VOICE_SPEECH_PITCH", "VOICE_INTENT_EXTRACTOR", "OPENAI_API_KEY", "OPENAI_MODEL",
    "VOICE_HOST", "VOICE_PORT", "LOG_LEVEL",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_voice_config()
    yield monkeypatch
    reset_voice_config()


class TestVoiceConfig:

    def test_defaults(self, clean_env):
        config = VoiceConfig.from_env()

        assert config.wake_word == "WAKE-UP"
        assert config.language == "en-US"
        assert config.restart_delay == pytest.approx(0.3)
        assert config.speech_rate == 1.0
        assert config.intent_extractor == IntentExtractorKind.REGEX
        assert config.port == 8000
        assert config.listening_prompt == "Voice assistant is now listening. Say 'WAKE-UP' to activate."

    def test_overrides(self, clean_env):
        clean_env.setenv("VOICE_WAKE_WORD", "JARVIS")
        clean_env.setenv("VOICE_RESTART_DELAY_MS", "500")
        clean_env.setenv("VOICE_SPEECH_RATE", "1.25")
        clean_env.setenv("VOICE_INTENT_EXTRACTOR", "LLM")
        clean_env.setenv("VOICE_PORT", "9001")
        clean_env.setenv("LOG_LEVEL", "debug")

        config = VoiceConfig.from_env()

        assert config.wake_word == "JARVIS"
        assert config.restart_delay == pytest.approx(0.5)
        assert config.speech_rate == 1.25
        assert config.intent_extractor == IntentExtractorKind.LLM
        assert config.port == 9001
        assert config.log_level == "DEBUG"

    @pytest.mark.parametrize("name,value", [
        ("VOICE_RESTART_DELAY_MS", "-1"),
        ("VOICE_RESTART_DELAY_MS", "soon"),
        ("VOICE_SPEECH_PITCH", "high"),
        ("VOICE_INTENT_EXTRACTOR", "grammar"),
    ])
    def test_invalid_values(self, clean_env, name, value):
        clean_env.setenv(name, value)

        with pytest.raises(ValueError):
            VoiceConfig.from_env()

    def test_global_config_cached_until_reset(self, clean_env):
        first = get_voice_config()
        clean_env.setenv("VOICE_WAKE_WORD", "COMPUTER")

        assert get_voice_config() is first

        reset_voice_config()
        assert get_voice_config().wake_word == "COMPUTER"
