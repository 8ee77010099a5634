"""
Command dispatch for final transcript segments.

Rules are tried in a fixed order and exactly one action is taken per
segment:

    1. "login with <email>"        -> login callback + password prompt
    2. "my password is" / "password" -> password callback + confirmation
    3. "login" / "log in" / "sign in" -> ask for email or username
    4. "register" / "sign up" / "create account" -> ask for a name
    5. "go back" / "back" (if a "go back" command exists) -> run it
    6. registered commands, insertion order, equality or substring
    7. "what can i do here" / "help me" / "help" -> help text
    8. anything else -> "unknown" detection
"""

import logging
from typing import List, Optional

from aidohealth.voice.commands import CommandRegistry, UNKNOWN_COMMAND
from aidohealth.voice.effects import (
    Effect,
    InvokeCommand,
    InvokeLogin,
    InvokePassword,
    NotifyCommandDetected,
    Speak,
)
from aidohealth.voice.intents import (
    IntentExtractor,
    LOGIN_PREFIX,
    PASSWORD_PREFIXES,
    RegexIntentExtractor,
)

logger = logging.getLogger(__name__)

LOGIN_PHRASES = ("login", "log in", "sign in")
REGISTER_PHRASES = ("register", "sign up", "create account")
BACK_PHRASES = ("go back", "back")
HELP_PHRASES = ("what can i do here", "help me", "help")
GO_BACK_COMMAND = "go back"

PASSWORD_PROMPT = "Got it. Now please say your password."
EMAIL_CLARIFICATION = "I didn't catch your email. Please say 'login with' followed by your email."
PASSWORD_CONFIRMATION = "Password received."
PASSWORD_CLARIFICATION = "I didn't catch your password. Please say 'my password is' followed by your password."
LOGIN_PROMPT = "What is your email or username?"
REGISTER_PROMPT = "Let's create an account. What is your name?"
GOING_BACK = "Going back"
HELP_TEXT = ("You can navigate the app, login, register, or ask me for help. "
             "Try saying commands like 'go back' or 'open profile'.")


def normalize_transcript(text: str) -> str:
    return text.lower().strip()


class CommandDispatcher:
    """Maps one normalized final segment to the effects it should cause."""

    def __init__(self, registry: CommandRegistry, extractor: Optional[IntentExtractor] = None):
        self.registry = registry
        self.extractor = extractor or RegexIntentExtractor()

    def dispatch(self, text: str) -> List[Effect]:
        text = normalize_transcript(text)
        if not text:
            return []

        if text.startswith(LOGIN_PREFIX):
            email = self._extract(self.extractor.login_email, text)
            if email:
                logger.info(f"[Dispatch] Login intent: {email}")
                return [InvokeLogin(email), Speak(PASSWORD_PROMPT)]
            logger.info("[Dispatch] Login intent without email")
            return [Speak(EMAIL_CLARIFICATION)]

        if text.startswith(PASSWORD_PREFIXES):
            password = self._extract(self.extractor.password, text)
            if password:
                logger.info("[Dispatch] Password intent")
                return [InvokePassword(password), Speak(PASSWORD_CONFIRMATION)]
            return [Speak(PASSWORD_CLARIFICATION)]

        if text in LOGIN_PHRASES:
            return [Speak(LOGIN_PROMPT)]

        if text in REGISTER_PHRASES:
            return [Speak(REGISTER_PROMPT)]

        if text in BACK_PHRASES:
            go_back = self.registry.get(GO_BACK_COMMAND)
            if go_back is not None:
                logger.info("[Dispatch] Go back")
                return [InvokeCommand(go_back, text, notify=False), Speak(GOING_BACK)]

        command = self.registry.find_match(text)
        if command is not None:
            logger.info(f"[Dispatch] Command matched: '{command.name}' <- '{text}'")
            return [InvokeCommand(command, text)]

        if text in HELP_PHRASES:
            return [Speak(HELP_TEXT)]

        logger.info(f"[Dispatch] Unknown command: '{text}'")
        return [NotifyCommandDetected(UNKNOWN_COMMAND, text)]

    def _extract(self, extract, text: str) -> Optional[str]:
        try:
            return extract(text)
        except Exception as e:
            logger.error(f"[Dispatch] Intent extractor failed: {e}")
            return None
