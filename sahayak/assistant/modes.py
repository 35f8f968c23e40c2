"""Conversation modes and their welcome text."""

from __future__ import annotations

from enum import Enum

from sahayak.utils import capitalize_first

from .errors import ConfigError


class Mode(str, Enum):
    INFORMATION = "information"
    RELIGIOUS = "religious"
    WELLNESS = "wellness"
    ORDERING = "ordering"

    @property
    def display_name(self) -> str:
        return capitalize_first(self.value)

    @property
    def welcome_message(self) -> str:
        return WELCOME_MESSAGES.get(self, f"Welcome to {self.display_name} Mode. How may I help you?")


WELCOME_MESSAGES: dict[Mode, str] = {
    Mode.INFORMATION: (
        "Welcome to Information Mode. Ask me any general questions, and I'll provide clear and helpful answers."
    ),
    Mode.RELIGIOUS: (
        "Welcome to Religious Mode. I can discuss spiritual topics, share stories from various traditions, "
        "or answer questions about religious practices."
    ),
    Mode.WELLNESS: (
        "Welcome to Wellness Mode. I can provide tips on staying healthy, suggest simple exercises, "
        "or discuss general wellbeing topics."
    ),
    Mode.ORDERING: (
        "Welcome to Ordering Mode. I can help you place orders online. I'll guide you through the process "
        "of ordering food, groceries, or other items."
    ),
}

DEFAULT_MODE = Mode.INFORMATION


def parse_mode(value: str | Mode | None) -> Mode:
    """Resolve a mode name, raising ConfigError when it is not one of the four modes."""
    if isinstance(value, Mode):
        return value
    normalized = (value or "").strip().lower()
    try:
        return Mode(normalized)
    except ValueError as exc:
        raise ConfigError(f"Unknown conversation mode: {value!r}") from exc


def try_parse_mode(value: str | None) -> Mode | None:
    try:
        return parse_mode(value)
    except ConfigError:
        return None
