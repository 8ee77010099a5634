"""
Page-level voice assistant.

Wraps a VoiceCommandEngine with the presentation behaviour of the floating
assistant widget: spoken replies to recognized commands, a one-time welcome,
the personalized dashboard greeting and the help hint.
"""

import asyncio
import random
import logging
from typing import Callable, Iterable, Optional

from aidohealth.voice.commands import Command, CommandRegistry, UNKNOWN_COMMAND
from aidohealth.voice.engine import VoiceCommandEngine

logger = logging.getLogger(__name__)

WELCOME_MESSAGE = ("Welcome to AidoHealth Nexus. I'm your voice assistant. "
                   "Say 'Help' or click the microphone to get started.")
HELP_HINT = ("Here are some commands you can try: Help, Login, Register, "
             "Tell me about AidoHealth, or What can you do?")
REPLY_TEMPLATES = (
    "Executing {}",
    "I'll {} for you",
    "{} right away",
)
WELCOME_DELAY = 1.0  # seconds, lets the client finish loading voices


def user_greeting(name: str, role: str) -> str:
    return f"Hello {name}. Welcome to your {role} dashboard. How can I help you today?"


class VoiceAssistant:
    """
    Voice assistant for one page.

    Extra keyword arguments are forwarded to the engine (recognition,
    synthesis, permission, scheduler, config, extractor, on_state_change).
    Registry hooks other than ``on_command_detected`` may be passed through
    ``hooks``; the assistant observes command detections itself and forwards
    them to ``on_command_detected`` when given.
    """

    def __init__(self,
                 commands: Iterable[Command] = (),
                 on_response: Optional[Callable[[str], None]] = None,
                 on_command_detected: Optional[Callable[[str, str], None]] = None,
                 welcomed: bool = False,
                 choose: Callable = random.choice,
                 hooks: Optional[dict] = None,
                 **engine_kwargs):
        self.commands = tuple(commands)
        self.on_response = on_response
        self._forward_detected = on_command_detected
        self._choose = choose

        self.last_command: Optional[str] = None
        self.assistant_response: Optional[str] = None
        self.welcomed = welcomed

        registry = CommandRegistry(
            commands=self.commands,
            on_command_detected=self._on_command_detected,
            **(hooks or {}),
        )
        self.engine = VoiceCommandEngine(registry, **engine_kwargs)

    def _on_command_detected(self, name: str, transcript: str):
        self.last_command = name
        if name != UNKNOWN_COMMAND:
            command = next((c for c in self.commands if c.name == name), None)
            if command is not None:
                description = command.description or command.name
                self.respond(self._choose(REPLY_TEMPLATES).format(description))
        if self._forward_detected is not None:
            self._forward_detected(name, transcript)

    def respond(self, text: str):
        """Show and speak an assistant reply."""
        self.assistant_response = text
        logger.info(f"[VoiceAssistant] Response: {text}")
        if self.on_response is not None:
            try:
                self.on_response(text)
            except Exception as e:
                logger.error(f"[VoiceAssistant] Response listener failed: {e}")
        self.engine.speak(text)

    async def welcome(self, delay: float = WELCOME_DELAY) -> bool:
        """Speak the welcome message once per browser session."""
        if self.welcomed:
            return False
        self.assistant_response = WELCOME_MESSAGE
        if delay > 0:
            await asyncio.sleep(delay)
        self.respond(WELCOME_MESSAGE)
        self.welcomed = True
        return True

    def greet_user(self, name: str, role: str):
        self.respond(user_greeting(name, role))

    def show_help(self):
        self.respond(HELP_HINT)

    # Engine passthrough

    @property
    def is_listening(self) -> bool:
        return self.engine.is_listening

    @property
    def is_speaking(self) -> bool:
        return self.engine.is_speaking

    async def start(self):
        await self.engine.start()

    def stop(self):
        self.engine.stop()

    async def toggle(self):
        await self.engine.toggle()

    def speak(self, text: str):
        self.engine.speak(text)

    def close(self):
        self.engine.close()
