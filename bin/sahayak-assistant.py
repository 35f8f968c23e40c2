#!/usr/bin/env python3
"""Sahayak voice assistant (console front-end)."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from typing import TextIO

from sahayak.assistant.config import AssistantConfig
from sahayak.assistant.conversation import ConversationOrchestrator
from sahayak.assistant.dispatch import PlatformLauncher
from sahayak.assistant.emergency import EmergencyAlert, EmergencyPrompt, EmergencyService
from sahayak.assistant.errors import ConfigError
from sahayak.assistant.llm import build_llm_provider
from sahayak.assistant.modes import Mode
from sahayak.assistant.mqtt import AssistantMqtt
from sahayak.assistant.preference_manager import PreferenceManager
from sahayak.assistant.prompts import PromptComposer
from sahayak.assistant.speech import build_speech_bridge
from sahayak.assistant.view import CompositeView, ConsoleView, ConversationView, MqttConversationView
from sahayak.location import build_geolocator
from sahayak.preference_store import PreferenceStore

LOGGER = logging.getLogger("sahayak-assistant")

HELP_TEXT = """Commands:
  /mode <name>     open a conversation ({modes})
  /back            return to the mode picker
  /mic             start or stop voice input
  /stop            stop listening and speaking
  /font + | -      change the font size
  /contrast        toggle high contrast
  /emergency       show emergency contacts
  /help            show this help
  /quit            exit
Anything else is sent to Sahayak."""


class SahayakAssistant:
    def __init__(self, config: AssistantConfig, stream: TextIO | None = None) -> None:
        self.config = config
        self.mqtt = AssistantMqtt(config.mqtt, logger=LOGGER)
        self.console = ConsoleView(stream)
        self.mqtt_view: MqttConversationView | None = None
        view: ConversationView = self.console
        if self.mqtt.enabled:
            self.mqtt_view = MqttConversationView(self.mqtt, logger=LOGGER)
            view = CompositeView([self.console, self.mqtt_view], logger=LOGGER)
        self.preferences = PreferenceManager(
            PreferenceStore(config.preferences_path, logger=LOGGER),
            config.app,
            default_mode=config.default_mode,
            mqtt=self.mqtt if self.mqtt.enabled else None,
            logger=LOGGER,
        )
        self.emergency = EmergencyService(
            config.emergency,
            build_geolocator(config.emergency.static_location, config.emergency.geolocation_url, logger=LOGGER),
            PlatformLauncher(config.launcher_command, logger=LOGGER),
            logger=LOGGER,
        )
        self.orchestrator = ConversationOrchestrator(
            composer=PromptComposer(config.prompt_prefixes),
            provider=build_llm_provider(config.llm, logger=LOGGER),
            bridge=build_speech_bridge(config.speech, logger=LOGGER),
            view=view,
            preferences=self.preferences,
            emergency=self.emergency,
            initial_mode=config.default_mode,
            log_transcripts=config.log_transcripts,
            logger=LOGGER,
        )
        self._emergency_prompt: EmergencyPrompt | None = None
        self._emergency_alert: EmergencyAlert | None = None
        self._shutdown = asyncio.Event()
        self._remote_tasks: set[asyncio.Task] = set()

    @property
    def view(self) -> ConversationView:
        return self.orchestrator.view

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        self.mqtt.connect()
        if self.mqtt_view is not None:
            self.mqtt_view.subscribe_input(self._handle_remote_input, loop)
        self.preferences.subscribe_preference_topics(loop)
        self.orchestrator.startup()
        self.console.show_notice("Type /help for commands.")
        reader = await self._open_stdin()
        while not self._shutdown.is_set():
            raw = await reader.readline()
            if not raw:
                LOGGER.info("Input closed; exiting")
                break
            await self.handle_line(raw.decode("utf-8", errors="ignore"))

    async def _open_stdin(self) -> asyncio.StreamReader:
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader()
        await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
        return reader

    def _handle_remote_input(self, text: str) -> None:
        task = asyncio.get_running_loop().create_task(self.handle_line(text))
        self._remote_tasks.add(task)
        task.add_done_callback(self._remote_tasks.discard)

    async def handle_line(self, line: str) -> None:
        text = line.strip()
        if not text:
            return
        if self._emergency_alert is not None or self._emergency_prompt is not None:
            if await self._handle_emergency_input(text):
                return
        if text.startswith("/"):
            await self._handle_command(text)
            return
        if not self.orchestrator.state.conversation_visible:
            self.orchestrator.select_mode(self.orchestrator.state.active_mode)
        self.orchestrator.on_user_typing()
        self.orchestrator.submit(text)

    async def _handle_command(self, text: str) -> None:
        command, _, argument = text[1:].partition(" ")
        command = command.lower()
        argument = argument.strip()
        if command == "mode":
            try:
                self.orchestrator.select_mode(argument)
            except ConfigError as exc:
                self.view.show_notice(str(exc), "error")
        elif command in {"back", "modes"}:
            self.orchestrator.show_mode_selection()
        elif command == "mic":
            self.orchestrator.toggle_voice_input()
        elif command == "stop":
            if self.orchestrator.state.is_capturing:
                self.orchestrator.stop_voice_input()
            self.orchestrator.stop_speaking()
        elif command == "font":
            if argument in {"+", "up", "bigger"}:
                changed = self.orchestrator.increase_font_size()
            elif argument in {"-", "down", "smaller"}:
                changed = self.orchestrator.decrease_font_size()
            else:
                self.view.show_notice("Usage: /font + or /font -", "error")
                return
            if not changed:
                self.view.show_notice("Font size is already at its limit.")
        elif command == "contrast":
            self.orchestrator.toggle_high_contrast()
        elif command == "emergency":
            self._emergency_alert = None
            self._emergency_prompt = await self.orchestrator.trigger_emergency()
        elif command == "help":
            self.console.show_notice(HELP_TEXT.format(modes=", ".join(mode.value for mode in Mode)))
        elif command in {"quit", "exit"}:
            self._shutdown.set()
        else:
            self.view.show_notice(f"Unknown command: /{command}. Type /help for commands.", "error")

    async def _handle_emergency_input(self, text: str) -> bool:
        """Handle a numbered choice in the emergency dialog; returns True when consumed."""
        if text.lower() in {"/cancel", "cancel"}:
            self._emergency_prompt = None
            self._emergency_alert = None
            self.view.show_notice("Emergency dialog closed.")
            return True
        if not text.isdigit():
            return False
        index = int(text) - 1
        if self._emergency_alert is not None:
            alert = self._emergency_alert
            if not 0 <= index < len(alert.channels):
                self.view.show_notice("Please choose one of the listed options.", "error")
                return True
            self._emergency_alert = None
            self._emergency_prompt = None
            await self.orchestrator.dispatch_emergency(alert, alert.channels[index])
            return True
        prompt = self._emergency_prompt
        if prompt is None:
            return False
        contacts = prompt.contacts
        if not 0 <= index < len(contacts):
            self.view.show_notice("Please choose one of the listed contacts.", "error")
            return True
        self._emergency_alert = self.orchestrator.select_emergency_contact(contacts[index])
        return True

    async def shutdown(self) -> None:
        self._shutdown.set()
        if self._remote_tasks:
            await asyncio.gather(*self._remote_tasks, return_exceptions=True)
        await self.orchestrator.drain()
        await self.orchestrator.bridge.close()
        await self.orchestrator.provider.close()
        self.preferences.flush()
        self.mqtt.disconnect()


async def main() -> None:
    parser = argparse.ArgumentParser(description="Sahayak voice assistant")
    parser.add_argument("--log-level", default="WARNING")
    args = parser.parse_args()
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.WARNING))

    config = AssistantConfig.from_env()
    assistant = SahayakAssistant(config)

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _handle_signal(signum: int) -> None:
        LOGGER.info("Received signal %s, shutting down", signum)
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _handle_signal, sig)

    run_task = asyncio.create_task(assistant.run())
    run_task.add_done_callback(lambda _task: stop_event.set())
    await stop_event.wait()
    await assistant.shutdown()
    run_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await run_task


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
