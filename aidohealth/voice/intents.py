"""
Intent extraction for the two-turn voice login flow.

The dispatcher decides *when* an utterance is a login or password turn; an
IntentExtractor decides *what* value it carries. Swapping the extractor
(regex, LLM, grammar) does not touch the state machine.
"""

import re
import logging
from abc import ABC, abstractmethod
from typing import Optional

logger = logging.getLogger(__name__)

LOGIN_PREFIX = "login with"
PASSWORD_PREFIXES = ("my password is", "password")

# "login with <email>" optionally followed by a "password ..." clause
LOGIN_EMAIL_PATTERN = re.compile(r"login with (.+?)(?: password .*|$)")

_SPOKEN_SYMBOLS = [
    (re.compile(r"\s+at\s+"), "@"),
    (re.compile(r"\s+dot\s+"), "."),
    (re.compile(r"\s+underscore\s+"), "_"),
    (re.compile(r"\s+(?:dash|hyphen)\s+"), "-"),
]


class IntentExtractor(ABC):
    """Pulls structured values out of normalized (lower-cased, trimmed) speech."""

    @abstractmethod
    def login_email(self, text: str) -> Optional[str]:
        """Email/username from a "login with ..." utterance, or None."""

    @abstractmethod
    def password(self, text: str) -> Optional[str]:
        """Password from a "password ..." / "my password is ..." utterance, or None."""

    async def prepare(self, text: str) -> None:
        """Resolve slow lookups for an upcoming final segment before it is dispatched."""
        return None


class RegexIntentExtractor(IntentExtractor):
    """Default pattern-based extractor."""

    def login_email(self, text: str) -> Optional[str]:
        match = LOGIN_EMAIL_PATTERN.match(text)
        if not match:
            return None
        email = match.group(1).strip()
        return email or None

    def password(self, text: str) -> Optional[str]:
        for prefix in PASSWORD_PREFIXES:
            if text.startswith(prefix):
                remainder = text[len(prefix):].strip()
                return remainder or None
        return None


def spoken_email_to_address(spoken: str) -> str:
    """
    Turn recognized speech into an email-looking string.

    "Jane at Example dot com" -> "jane@example.com". Whitespace left over
    after the symbol words is removed, as the login page expects.
    """
    text = f" {spoken.lower().strip()} "
    for pattern, symbol in _SPOKEN_SYMBOLS:
        text = pattern.sub(symbol, text)
    return re.sub(r"\s+", "", text)
