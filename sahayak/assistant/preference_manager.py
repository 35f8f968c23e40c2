"""Preference management for the Sahayak assistant.

This module owns the persisted accessibility preferences and the MQTT
commands that change them remotely.

Preferences managed:
- Font size (bounded, changed in fixed steps)
- High contrast (on/off)
- Last-used conversation mode
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any

from sahayak.preference_store import PreferenceStore
from sahayak.utils import parse_bool, parse_int

from .config import AppSettings
from .modes import DEFAULT_MODE, Mode, try_parse_mode
from .mqtt import AssistantMqtt

LOGGER = logging.getLogger(__name__)

FONT_SIZE_KEY = "font_size"
HIGH_CONTRAST_KEY = "high_contrast"
LAST_MODE_KEY = "last_mode"


@dataclass(frozen=True)
class AccessibilityPreferences:
    font_size: int
    high_contrast: bool
    last_mode: Mode


class PreferenceManager:
    """Keeps accessibility preferences in memory and persists every change.

    Font-size changes that would leave ``[min_font_size, max_font_size]`` are
    rejected. Values read back from disk are clamped instead, so a hand-edited
    file cannot wedge the display.
    """

    def __init__(
        self,
        store: PreferenceStore,
        settings: AppSettings,
        *,
        default_mode: Mode = DEFAULT_MODE,
        mqtt: AssistantMqtt | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.store = store
        self.settings = settings
        self.mqtt = mqtt
        self.logger = logger or LOGGER
        self.preferences = AccessibilityPreferences(
            font_size=settings.default_font_size,
            high_contrast=False,
            last_mode=default_mode,
        )
        self._loop: asyncio.AbstractEventLoop | None = None

        # Callbacks for external components
        self._on_accessibility_changed: Callable[[AccessibilityPreferences], None] | None = None
        self._on_mode_requested: Callable[[Mode], Any] | None = None

    # ========================================================================
    # Callbacks
    # ========================================================================

    def set_accessibility_callback(self, callback: Callable[[AccessibilityPreferences], None]) -> None:
        """Set callback to invoke when font size or contrast changes."""
        self._on_accessibility_changed = callback

    def set_mode_callback(self, callback: Callable[[Mode], Any]) -> None:
        """Set callback to invoke when a mode change is requested over MQTT."""
        self._on_mode_requested = callback

    # ========================================================================
    # Loading
    # ========================================================================

    def load(self) -> AccessibilityPreferences:
        """Read stored preferences, falling back to defaults for missing or invalid values."""
        stored = self.store.load()
        font_size = parse_int(stored.get(FONT_SIZE_KEY), self.settings.default_font_size)
        font_size = self._clamp_font_size(font_size)
        high_contrast = parse_bool(stored.get(HIGH_CONTRAST_KEY), False)
        last_mode = self.preferences.last_mode
        raw_mode = stored.get(LAST_MODE_KEY)
        if raw_mode:
            parsed = try_parse_mode(raw_mode)
            if parsed is None:
                self.logger.warning("[preferences] Ignoring invalid stored mode: %s", raw_mode)
            else:
                last_mode = parsed
        self.preferences = AccessibilityPreferences(
            font_size=font_size,
            high_contrast=high_contrast,
            last_mode=last_mode,
        )
        self.logger.debug("[preferences] Loaded %s", self.preferences)
        return self.preferences

    def _clamp_font_size(self, value: int) -> int:
        return max(self.settings.min_font_size, min(self.settings.max_font_size, value))

    # ========================================================================
    # Changes
    # ========================================================================

    def change_font_size(self, steps: int) -> bool:
        """Move the font size by ``steps`` increments; returns False when out of bounds."""
        return self.set_font_size(self.preferences.font_size + steps * self.settings.font_size_step)

    def increase_font_size(self) -> bool:
        return self.change_font_size(1)

    def decrease_font_size(self) -> bool:
        return self.change_font_size(-1)

    def set_font_size(self, value: int) -> bool:
        if value < self.settings.min_font_size or value > self.settings.max_font_size:
            self.logger.debug(
                "[preferences] Font size %s outside %s-%s; ignoring",
                value,
                self.settings.min_font_size,
                self.settings.max_font_size,
            )
            return False
        if value == self.preferences.font_size:
            return True
        self.preferences = replace(self.preferences, font_size=value)
        self.store.update(FONT_SIZE_KEY, str(value))
        self._publish_state(FONT_SIZE_KEY, str(value))
        self._notify_accessibility()
        return True

    def toggle_high_contrast(self) -> bool:
        return self.set_high_contrast(not self.preferences.high_contrast)

    def set_high_contrast(self, enabled: bool) -> bool:
        if enabled != self.preferences.high_contrast:
            self.preferences = replace(self.preferences, high_contrast=enabled)
            state = "true" if enabled else "false"
            self.store.update(HIGH_CONTRAST_KEY, state)
            self._publish_state(HIGH_CONTRAST_KEY, "on" if enabled else "off")
            self._notify_accessibility()
        return self.preferences.high_contrast

    def record_mode(self, mode: Mode) -> None:
        """Persist the last-used mode."""
        self.preferences = replace(self.preferences, last_mode=mode)
        self.store.update(LAST_MODE_KEY, mode.value)
        self._publish_state("mode", mode.value)

    def flush(self) -> None:
        self.store.flush_sync()

    def _notify_accessibility(self) -> None:
        if self._on_accessibility_changed:
            self._on_accessibility_changed(self.preferences)

    # ========================================================================
    # MQTT Subscriptions
    # ========================================================================

    def subscribe_preference_topics(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Subscribe to all preference MQTT topics.

        Commands arrive on the MQTT network thread; when ``loop`` is given they
        are handed to it so that state changes happen on the event loop.
        """
        mqtt = self.mqtt
        if mqtt is None:
            return
        self._loop = loop
        try:
            mqtt.subscribe(mqtt.topic("preferences/font_size/set"), self._handle_font_size_command)
            mqtt.subscribe(mqtt.topic("preferences/high_contrast/set"), self._handle_high_contrast_command)
            mqtt.subscribe(mqtt.topic("preferences/mode/set"), self._handle_mode_command)
        except RuntimeError:
            self.logger.debug("[preferences] MQTT client not ready for preference subscriptions")
            return
        self._publish_state(FONT_SIZE_KEY, str(self.preferences.font_size))
        self._publish_state(HIGH_CONTRAST_KEY, "on" if self.preferences.high_contrast else "off")
        self._publish_state("mode", self.preferences.last_mode.value)

    def _publish_state(self, key: str, value: str) -> None:
        mqtt = self.mqtt
        if mqtt is None:
            return
        mqtt.publish(mqtt.topic(f"preferences/{key}/state"), value, retain=True)

    def _call_on_loop(self, callback: Callable[..., Any], *args: Any) -> None:
        if self._loop is None:
            callback(*args)
        else:
            self._loop.call_soon_threadsafe(callback, *args)

    # ========================================================================
    # Preference Command Handlers
    # ========================================================================

    def _handle_font_size_command(self, payload: str) -> None:
        """Handle an absolute size ("22") or a step ("+" / "-") command."""
        value = payload.strip().lower()
        if value in {"+", "up", "increase"}:
            self._call_on_loop(self.increase_font_size)
            return
        if value in {"-", "down", "decrease"}:
            self._call_on_loop(self.decrease_font_size)
            return
        try:
            size = int(value)
        except ValueError:
            self.logger.debug("[preferences] Ignoring invalid font size: %s", payload)
            return
        self._call_on_loop(self.set_font_size, size)

    def _handle_high_contrast_command(self, payload: str) -> None:
        value = payload.strip().lower()
        if value == "toggle":
            self._call_on_loop(self.toggle_high_contrast)
            return
        self._call_on_loop(self.set_high_contrast, value in {"on", "true", "1", "yes"})

    def _handle_mode_command(self, payload: str) -> None:
        mode = try_parse_mode(payload)
        if mode is None:
            self.logger.debug("[preferences] Ignoring invalid mode: %s", payload)
            return
        if self._on_mode_requested is None:
            self.logger.debug("[preferences] No mode handler registered; ignoring %s", mode.value)
            return
        self._call_on_loop(self._on_mode_requested, mode)
