"""
Render sinks for the conversation

The orchestrator never touches a display directly. After each state
transition it calls one method on a ConversationView:

- ConsoleView: prints the transcript and indicators to a terminal
- MqttConversationView: publishes JSON so a kiosk display can mirror the
  transcript, indicators, accessibility settings and emergency dialog
- CompositeView: fans every call out to several views

The base class implements every method as a no-op, so a view only overrides
what it can show.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Callable, Sequence
from typing import Any, TextIO

from .dispatch import DispatchChannel
from .emergency import EmergencyAlert, EmergencyPrompt
from .messages import Message, Sender
from .modes import Mode
from .mqtt import AssistantMqtt
from .preference_manager import AccessibilityPreferences

LOGGER = logging.getLogger(__name__)


class ConversationView:
    """Observer interface for conversation rendering."""

    def show_message(self, message: Message) -> None:
        pass

    def reset_transcript(self, mode: Mode, welcome: Message) -> None:
        pass

    def show_typing(self) -> None:
        pass

    def hide_typing(self) -> None:
        pass

    def set_controls_enabled(self, enabled: bool) -> None:
        pass

    def show_recording(self, active: bool) -> None:
        pass

    def show_speaking(self, active: bool) -> None:
        pass

    def show_mode_selection(self) -> None:
        pass

    def apply_accessibility(self, preferences: AccessibilityPreferences) -> None:
        pass

    def show_notice(self, text: str, level: str = "info") -> None:
        pass

    def show_emergency_contacts(self, prompt: EmergencyPrompt) -> None:
        pass

    def show_dispatch_options(self, alert: EmergencyAlert) -> None:
        pass


class CompositeView(ConversationView):
    """Forward every render call to each child view.

    A failing child is logged and skipped so the others still render.
    """

    def __init__(self, views: Sequence[ConversationView], logger: logging.Logger | None = None) -> None:
        self.views = list(views)
        self._logger = logger or LOGGER

    def _each(self, name: str, *args: Any) -> None:
        for view in self.views:
            try:
                getattr(view, name)(*args)
            except Exception:
                self._logger.exception("[view] %s.%s failed", type(view).__name__, name)

    def show_message(self, message: Message) -> None:
        self._each("show_message", message)

    def reset_transcript(self, mode: Mode, welcome: Message) -> None:
        self._each("reset_transcript", mode, welcome)

    def show_typing(self) -> None:
        self._each("show_typing")

    def hide_typing(self) -> None:
        self._each("hide_typing")

    def set_controls_enabled(self, enabled: bool) -> None:
        self._each("set_controls_enabled", enabled)

    def show_recording(self, active: bool) -> None:
        self._each("show_recording", active)

    def show_speaking(self, active: bool) -> None:
        self._each("show_speaking", active)

    def show_mode_selection(self) -> None:
        self._each("show_mode_selection")

    def apply_accessibility(self, preferences: AccessibilityPreferences) -> None:
        self._each("apply_accessibility", preferences)

    def show_notice(self, text: str, level: str = "info") -> None:
        self._each("show_notice", text, level)

    def show_emergency_contacts(self, prompt: EmergencyPrompt) -> None:
        self._each("show_emergency_contacts", prompt)

    def show_dispatch_options(self, alert: EmergencyAlert) -> None:
        self._each("show_dispatch_options", alert)


class ConsoleView(ConversationView):
    """Plain-text transcript for a terminal session."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self.stream = stream or sys.stdout
        self._typing = False

    def _write(self, text: str) -> None:
        print(text, file=self.stream, flush=True)

    def show_message(self, message: Message) -> None:
        if message.sender is Sender.USER:
            self._write(f"[{message.timestamp}] {message.sender.label}: {message.text}")
        else:
            self._write(f"[{message.timestamp}] {message.sender.label}:\n  {message.text}")

    def reset_transcript(self, mode: Mode, welcome: Message) -> None:
        self._write("")
        self._write(f"=== Mode: {mode.display_name} ===")
        self.show_message(welcome)

    def show_typing(self) -> None:
        self._typing = True
        self._write("  Sahayak is typing...")

    def hide_typing(self) -> None:
        self._typing = False

    def show_recording(self, active: bool) -> None:
        if active:
            self._write("  Listening... (/stop to cancel)")

    def show_speaking(self, active: bool) -> None:
        if active:
            self._write("  Speaking... (/stop to interrupt)")

    def show_mode_selection(self) -> None:
        self._write("")
        self._write("Choose a mode:")
        for mode in Mode:
            self._write(f"  /mode {mode.value:<12} {mode.display_name}")

    def apply_accessibility(self, preferences: AccessibilityPreferences) -> None:
        contrast = "on" if preferences.high_contrast else "off"
        self._write(f"  Font size {preferences.font_size}px, high contrast {contrast}")

    def show_notice(self, text: str, level: str = "info") -> None:
        prefix = "!" if level in {"error", "warning"} else "*"
        self._write(f"{prefix} {text}")

    def show_emergency_contacts(self, prompt: EmergencyPrompt) -> None:
        self._write("")
        self._write("=== EMERGENCY CONTACTS ===")
        if prompt.location is not None:
            self._write(f"  Location: {prompt.location.latitude}, {prompt.location.longitude}")
        for index, contact in enumerate(prompt.contacts, start=1):
            self._write(f"  {index}. {contact.name} ({contact.relationship}) {contact.phone}")
        self._write("Type the contact number to alert, or /cancel.")

    def show_dispatch_options(self, alert: EmergencyAlert) -> None:
        self._write("")
        self._write(f"Contact {alert.contact.name} via:")
        for index, channel in enumerate(alert.channels, start=1):
            self._write(f"  {index}. {channel.label}")
        self._write("Message preview:")
        for line in alert.message.splitlines():
            self._write(f"  {line}")


class MqttConversationView(ConversationView):
    """Publish conversation events as JSON under the assistant topic base."""

    def __init__(self, mqtt: AssistantMqtt, logger: logging.Logger | None = None) -> None:
        self.mqtt = mqtt
        self.logger = logger or LOGGER
        self._message_topic = mqtt.topic("message")
        self._state_topic = mqtt.topic("state")
        self._reset_topic = mqtt.topic("transcript/reset")
        self._accessibility_topic = mqtt.topic("accessibility")
        self._emergency_topic = mqtt.topic("emergency")
        self._notice_topic = mqtt.topic("notice")
        self._input_topic = mqtt.topic("input")
        self._state: dict[str, Any] = {
            "view": "modes",
            "mode": None,
            "typing": False,
            "recording": False,
            "speaking": False,
            "controls_enabled": True,
        }

    def _update_state(self, **changes: Any) -> None:
        self._state.update(changes)
        self.mqtt.publish_json(self._state_topic, dict(self._state), retain=True)

    def show_message(self, message: Message) -> None:
        payload = message.to_dict()
        payload["mode"] = self._state["mode"]
        self.mqtt.publish_json(self._message_topic, payload)

    def reset_transcript(self, mode: Mode, welcome: Message) -> None:
        self.mqtt.publish_json(self._reset_topic, {"mode": mode.value, "welcome": welcome.to_dict()})
        self._update_state(view="conversation", mode=mode.value)

    def show_typing(self) -> None:
        self._update_state(typing=True)

    def hide_typing(self) -> None:
        self._update_state(typing=False)

    def set_controls_enabled(self, enabled: bool) -> None:
        self._update_state(controls_enabled=enabled)

    def show_recording(self, active: bool) -> None:
        self._update_state(recording=active)

    def show_speaking(self, active: bool) -> None:
        self._update_state(speaking=active)

    def show_mode_selection(self) -> None:
        self._update_state(view="modes")

    def apply_accessibility(self, preferences: AccessibilityPreferences) -> None:
        self.mqtt.publish_json(
            self._accessibility_topic,
            {
                "font_size": preferences.font_size,
                "high_contrast": preferences.high_contrast,
                "last_mode": preferences.last_mode.value,
            },
            retain=True,
        )

    def show_notice(self, text: str, level: str = "info") -> None:
        self.mqtt.publish_json(self._notice_topic, {"text": text, "level": level})

    def show_emergency_contacts(self, prompt: EmergencyPrompt) -> None:
        location = None
        if prompt.location is not None:
            location = {
                "latitude": prompt.location.latitude,
                "longitude": prompt.location.longitude,
                "accuracy": prompt.location.accuracy,
                "maps_url": prompt.location.maps_url,
            }
        self.mqtt.publish_json(
            self._emergency_topic,
            {
                "stage": "contacts",
                "contacts": [
                    {
                        "name": contact.name,
                        "phone": contact.phone,
                        "relationship": contact.relationship,
                        "kind": contact.kind,
                    }
                    for contact in prompt.contacts
                ],
                "location": location,
                "notice": prompt.notice,
            },
        )

    def show_dispatch_options(self, alert: EmergencyAlert) -> None:
        self.mqtt.publish_json(
            self._emergency_topic,
            {
                "stage": "dispatch",
                "contact": {"name": alert.contact.name, "phone": alert.contact.phone},
                "message": alert.message,
                "options": [_dispatch_option(alert, channel) for channel in alert.channels],
            },
        )

    def subscribe_input(self, on_text: Callable[[str], Any], loop: asyncio.AbstractEventLoop) -> None:
        """Forward text posted to ``<base>/input`` to ``on_text`` on the event loop."""

        def _handle(payload: str) -> None:
            text = payload.strip()
            if text:
                loop.call_soon_threadsafe(on_text, text)

        try:
            self.mqtt.subscribe(self._input_topic, _handle)
        except RuntimeError:
            self.logger.debug("[view] MQTT client not ready for input subscription")


def _dispatch_option(alert: EmergencyAlert, channel: DispatchChannel) -> dict[str, str]:
    return {"channel": channel.value, "label": channel.label, "uri": alert.uri_for(channel)}
