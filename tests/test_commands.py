"""Command registry tests."""

import logging
from dataclasses import FrozenInstanceError

import pytest

from aidohealth.voice.commands import Command, CommandCategory, CommandRegistry


class TestCommand:

    def test_matches_equality_and_substring(self):
        command = Command("Open Profile")

        assert command.matches("open profile") is True
        assert command.matches("please open profile") is True
        assert command.matches("open") is False

    def test_empty_name_never_matches(self):
        assert Command("  ").matches("anything") is False

    def test_commands_are_immutable(self):
        with pytest.raises(FrozenInstanceError):
            Command("home").name = "away"


class TestCommandRegistry:

    def test_lookup_and_order(self):
        first, second = Command("dashboard"), Command("open dashboard")
        registry = CommandRegistry(commands=[first, second])

        assert len(registry) == 2
        assert list(registry) == [first, second]
        assert registry.get("DASHBOARD") is first
        assert registry.get("missing") is None
        assert registry.find_match("open dashboard") is first
        assert isinstance(registry.commands, tuple)

    def test_overlapping_names(self):
        registry = CommandRegistry(commands=[Command("open"), Command("open profile"), Command("help")])

        assert registry.overlapping_names() == [("open", "open profile")]

    def test_from_dicts(self, caplog):
        calls = []
        entries = [
            {"name": "go", "description": "go", "action": lambda: calls.append("go")},
            {"command": "go home", "description": "go to the home page", "category": "navigation"},
            {"command": "help", "category": CommandCategory.HELP},
        ]

        with caplog.at_level(logging.WARNING):
            registry = CommandRegistry.from_dicts(entries, handlers={"go home": lambda: calls.append("home")})

        go, home, help_command = registry.commands
        assert home.category == CommandCategory.NAVIGATION
        assert home.description == "go to the home page"
        assert help_command.category == CommandCategory.HELP
        assert go.category == CommandCategory.GENERAL
        home.handler()
        go.handler()
        help_command.handler()
        assert calls == ["home", "go"]
        assert "shadows" in caplog.text

    def test_from_dicts_passes_hooks(self):
        hook = lambda: None  # noqa: E731

        registry = CommandRegistry.from_dicts([], on_wake_word=hook)

        assert registry.on_wake_word is hook

    def test_from_dicts_requires_name(self):
        with pytest.raises(ValueError):
            CommandRegistry.from_dicts([{"description": "nameless"}])

    def test_unknown_category_rejected(self):
        with pytest.raises(ValueError):
            CommandRegistry.from_dicts([{"command": "x", "category": "teleport"}])
