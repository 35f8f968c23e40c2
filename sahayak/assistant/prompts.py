"""
Mode-specific prompt composition

Every outbound completion request starts with a fixed instructional prefix
for the active mode, followed by the user's text verbatim. Ordering mode
adds one extra rule: when the user has not mentioned an address or location,
a reminder is appended so the model asks where to deliver.

Prefixes can be overridden per mode through configuration
(SAHAYAK_PROMPT_<MODE>); the defaults below are used otherwise.
"""

from __future__ import annotations

from collections.abc import Mapping

from .errors import ConfigError
from .modes import Mode, parse_mode

DEFAULT_PROMPT_PREFIXES: dict[Mode, str] = {
    Mode.INFORMATION: (
        "You are Sahayak, a helpful AI assistant for senior citizens. Provide clear, concise, and informative "
        "answers to the following question. Use simple language and avoid technical jargon: "
    ),
    Mode.RELIGIOUS: (
        "You are Sahayak, a compassionate AI companion for senior citizens interested in religious and spiritual "
        "topics. Respond to the following query about religious topics, focusing on stories and teachings, in a "
        "way that is engaging and easy for a senior citizen to understand. Be respectful of all faiths and "
        "provide balanced information: "
    ),
    Mode.WELLNESS: (
        "You are Sahayak, a supportive AI wellness companion for senior citizens. Respond to the following query "
        "about health and wellness, offering gentle, supportive, and informative advice suitable for a senior "
        "citizen. Focus on general wellbeing rather than specific medical advice, and always suggest consulting "
        "healthcare professionals for medical concerns: "
    ),
    Mode.ORDERING: (
        "You are Sahayak, a helpful AI shopping assistant for senior citizens. Help the user understand how to "
        "order products online. Explain the process step by step, in a clear and easy to follow manner. If they "
        "mention specific items or services, guide them on how to find and order these items on platforms like "
        "Amazon or food delivery services. Ask for their address if delivery information is needed: "
    ),
}

ORDERING_LOCATION_REMINDER = " Note: Remember to ask for the user's address or location if needed for delivery."
_LOCATION_KEYWORDS = ("address", "location")


def needs_location_reminder(mode: Mode, user_text: str) -> bool:
    if mode is not Mode.ORDERING:
        return False
    lowered = user_text.lower()
    return not any(keyword in lowered for keyword in _LOCATION_KEYWORDS)


class PromptComposer:
    """Map (mode, user text) to the outbound prompt string."""

    def __init__(self, prefixes: Mapping[Mode, str] | None = None) -> None:
        self._prefixes: dict[Mode, str] = dict(DEFAULT_PROMPT_PREFIXES)
        if prefixes:
            self._prefixes.update(prefixes)

    def prefix_for(self, mode: Mode | str) -> str:
        resolved = parse_mode(mode)
        prefix = self._prefixes.get(resolved)
        if prefix is None:
            raise ConfigError(f"No prompt prefix configured for mode '{resolved.value}'")
        return prefix

    def compose(self, mode: Mode | str, user_text: str) -> str:
        resolved = parse_mode(mode)
        prompt = f"{self.prefix_for(resolved)}{user_text}"
        if needs_location_reminder(resolved, user_text):
            prompt += ORDERING_LOCATION_REMINDER
        return prompt


_DEFAULT_COMPOSER = PromptComposer()


def compose_prompt(mode: Mode | str, user_text: str) -> str:
    """Compose a prompt with the default prefixes."""
    return _DEFAULT_COMPOSER.compose(mode, user_text)
