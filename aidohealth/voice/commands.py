"""
Voice command registry.

Each page hands the engine an ordered set of commands plus optional hooks.
The registry is built once per page and never changes afterwards.
"""

import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from aidohealth.voice.interfaces import VoiceError

logger = logging.getLogger(__name__)

UNKNOWN_COMMAND = "unknown"


class CommandCategory(Enum):
    NAVIGATION = "navigation"
    AUTHENTICATION = "authentication"
    GENERAL = "general"
    HELP = "help"
    ACCESSIBILITY = "accessibility"
    DETECTION = "detection"
    DATA = "data"
    BIOINFORMATICS = "bioinformatics"


def _noop():
    pass


@dataclass(frozen=True)
class Command:
    """A voice-triggerable action for the current page."""
    name: str
    handler: Callable[[], None] = _noop
    description: str = ""
    category: CommandCategory = CommandCategory.GENERAL

    @property
    def pattern(self) -> str:
        return self.name.lower().strip()

    def matches(self, text: str) -> bool:
        """Equality or substring match against an already normalized transcript."""
        pattern = self.pattern
        if not pattern:
            return False
        return text == pattern or pattern in text


@dataclass(frozen=True)
class CommandRegistry:
    """
    Ordered commands and the caller's notification hooks.

    Hooks:
        on_wake_word: wake word recognized
        on_command_detected: (name, transcript) after a command ran, or
            name == "unknown" when nothing matched
        on_error: VoiceError for permission/unsupported/device failures
        on_listening / on_stopped: recognition session started / stopped
        on_result: accumulated final transcript after each final segment
        on_login / on_password: values pulled out of login voice turns
    """
    commands: Tuple[Command, ...] = ()
    on_wake_word: Optional[Callable[[], None]] = None
    on_command_detected: Optional[Callable[[str, str], None]] = None
    on_error: Optional[Callable[[VoiceError], None]] = None
    on_listening: Optional[Callable[[], None]] = None
    on_stopped: Optional[Callable[[], None]] = None
    on_result: Optional[Callable[[str], None]] = None
    on_login: Optional[Callable[[str], None]] = None
    on_password: Optional[Callable[[str], None]] = None

    def __post_init__(self):
        # Accept any iterable but store an immutable tuple
        object.__setattr__(self, "commands", tuple(self.commands))

    def __len__(self) -> int:
        return len(self.commands)

    def __iter__(self):
        return iter(self.commands)

    def get(self, name: str) -> Optional[Command]:
        """Look up a command by exact (case-insensitive) name."""
        wanted = name.lower().strip()
        for command in self.commands:
            if command.pattern == wanted:
                return command
        return None

    def find_match(self, text: str) -> Optional[Command]:
        """
        First registered command whose name equals or is contained in ``text``.

        Overlapping names are not disambiguated: the earliest registration wins.
        """
        for command in self.commands:
            if command.matches(text):
                return command
        return None

    def overlapping_names(self) -> List[Tuple[str, str]]:
        """Pairs (earlier, later) where the earlier name would shadow the later one."""
        pairs = []
        for i, earlier in enumerate(self.commands):
            for later in self.commands[i + 1:]:
                if earlier.pattern and earlier.pattern in later.pattern:
                    pairs.append((earlier.name, later.name))
        return pairs

    @classmethod
    def from_dicts(cls, entries: Iterable[Mapping], handlers: Optional[Dict[str, Callable[[], None]]] = None,
                   **hooks) -> 'CommandRegistry':
        """
        Build a registry from page-style command dicts.

        Args:
            entries: mappings with "command" (or "name"), "description", "category"
            handlers: optional name -> handler map; missing handlers are no-ops
            **hooks: any of the registry hook fields
        """
        handlers = handlers or {}
        commands = []
        for entry in entries:
            name = entry.get("command") or entry.get("name")
            if not name:
                raise ValueError(f"Command entry without a name: {dict(entry)}")
            category = entry.get("category", CommandCategory.GENERAL.value)
            commands.append(Command(
                name=name,
                handler=entry.get("action") or handlers.get(name, _noop),
                description=entry.get("description", ""),
                category=CommandCategory(category) if not isinstance(category, CommandCategory) else category,
            ))

        registry = cls(commands=tuple(commands), **hooks)
        for earlier, later in registry.overlapping_names():
            logger.warning(f"[CommandRegistry] '{earlier}' shadows '{later}' (substring match, first wins)")
        return registry
