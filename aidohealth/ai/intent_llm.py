import json
import asyncio
import logging
from typing import Optional, Tuple

from openai import OpenAI

from aidohealth.voice.config import IntentExtractorKind, VoiceConfig, get_voice_config
from aidohealth.voice.intents import LOGIN_PREFIX, IntentExtractor, RegexIntentExtractor

logger = logging.getLogger(__name__)

EMAIL_EXTRACTION_PROMPT = (
    "You extract the login identifier from speech-recognized text for a healthcare portal. "
    "The text starts with 'login with' followed by an email address or username. "
    "Convert spoken symbols to characters ('jane at example dot com' -> 'jane@example.com'). "
    "Reply with a JSON object: {\"email\": <string or null>}. Never invent a value."
)


class LLMIntentExtractor(IntentExtractor):
    """
    Login intent extraction backed by an OpenAI chat model.

    Only the login identifier is sent to the model. Passwords are always
    extracted locally by the regex extractor. Any API or parse failure falls
    back to the regex extractor.

    The chat completion call blocks, so callers on an event loop should
    await ``prepare`` with the segment first; it runs the call in a worker
    thread and ``login_email`` then returns the prepared answer.
    """

    def __init__(self, api_key: Optional[str] = None, model: str = "gpt-4o-mini",
                 client=None, fallback: Optional[IntentExtractor] = None):
        self.client = client or OpenAI(api_key=api_key)
        self.model = model
        self.fallback = fallback or RegexIntentExtractor()
        # Deterministic, short JSON replies
        self.params = {
            "temperature": 0.0,
            "max_tokens": 60,
        }
        self._prepared: Optional[Tuple[str, Optional[str]]] = None

    def _ask(self, text: str) -> dict:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": EMAIL_EXTRACTION_PROMPT},
                {"role": "user", "content": text},
            ],
            response_format={"type": "json_object"},
            **self.params,
        )
        content = response.choices[0].message.content or ""
        data = json.loads(content)
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
        return data

    async def prepare(self, text: str) -> None:
        self._prepared = None
        if not text.startswith(LOGIN_PREFIX):
            return
        email = await asyncio.to_thread(self._resolve_email, text)
        self._prepared = (text, email)

    def login_email(self, text: str) -> Optional[str]:
        prepared, self._prepared = self._prepared, None
        if prepared is not None and prepared[0] == text:
            return prepared[1]
        return self._resolve_email(text)

    def _resolve_email(self, text: str) -> Optional[str]:
        try:
            email = self._ask(text).get("email")
        except Exception as e:
            logger.error(f"[IntentLLM] Email extraction failed, using regex: {e}")
            return self.fallback.login_email(text)

        if not isinstance(email, str) or not email.strip():
            logger.info("[IntentLLM] Model found no email, trying regex")
            return self.fallback.login_email(text)
        logger.info(f"[IntentLLM] Extracted email: {email.strip()}")
        return email.strip()

    def password(self, text: str) -> Optional[str]:
        return self.fallback.password(text)


def build_intent_extractor(config: Optional[VoiceConfig] = None) -> IntentExtractor:
    """Extractor selected by ``VOICE_INTENT_EXTRACTOR``."""
    config = config or get_voice_config()
    if config.intent_extractor == IntentExtractorKind.LLM:
        if not config.openai_api_key:
            logger.warning("[IntentLLM] OPENAI_API_KEY not set, falling back to regex intent extraction")
            return RegexIntentExtractor()
        logger.info(f"[IntentLLM] Using {config.openai_model} for intent extraction")
        return LLMIntentExtractor(api_key=config.openai_api_key, model=config.openai_model)
    return RegexIntentExtractor()
