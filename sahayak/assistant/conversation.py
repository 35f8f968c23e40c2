"""
Conversation orchestration

ConversationOrchestrator owns the ConversationState and drives one turn at a
time:

1. submit() rejects empty text or a submission while a turn is in flight
2. the user message is stored and rendered, and the controls are disabled
3. the prompt is composed for the active mode and sent to the LLM provider
   while the typing indicator is shown
4. the reply is stored, rendered and spoken; a failure becomes one or two
   system messages instead
5. the processing flag is cleared and the controls are re-enabled

Everything else here (mode switching, voice input, accessibility and the
emergency dialog) is wiring between the user's controls, the state object and
the collaborators. All of it runs on one asyncio event loop, so the flags are
checked synchronously before any awaitable is scheduled.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from .config import EmergencyContact
from .dispatch import DispatchChannel
from .emergency import EmergencyAlert, EmergencyPrompt, EmergencyService
from .errors import CompletionError
from .llm import LLMProvider
from .messages import Message, MessageTag, Sender
from .modes import DEFAULT_MODE, Mode, parse_mode
from .preference_manager import AccessibilityPreferences, PreferenceManager
from .prompts import PromptComposer
from .speech import SpeechBridge
from .view import ConversationView

LOGGER = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "Sorry, I encountered an error while processing your request. Please try again."
AUTH_FAILURE_MESSAGE = "There seems to be an issue with the API key. Please check your configuration."
TRANSCRIPT_SUBMIT_DELAY = 0.5


def speech_error_message(reason: str) -> str:
    return f"Speech recognition error: {reason}. Please try again or type your message."


def capability_warning(missing: list[str]) -> str:
    return f"Warning: this device doesn't support {', '.join(missing)}. Some features may not work properly."


@dataclass
class ConversationState:
    active_mode: Mode = DEFAULT_MODE
    history_by_mode: dict[Mode, list[Message]] = field(default_factory=lambda: {mode: [] for mode in Mode})
    is_processing: bool = False
    is_speaking: bool = False
    is_capturing: bool = False
    conversation_visible: bool = False

    def history(self, mode: Mode | None = None) -> list[Message]:
        return self.history_by_mode.setdefault(mode or self.active_mode, [])


@dataclass
class TurnTracker:
    mode: Mode
    start: float = field(default_factory=time.monotonic)
    stage_start: float = field(default_factory=time.monotonic)
    current_stage: str | None = None
    stage_durations: dict[str, int] = field(default_factory=dict)

    def begin_stage(self, stage: str) -> None:
        now = time.monotonic()
        if self.current_stage:
            self.stage_durations[self.current_stage] = int((now - self.stage_start) * 1000)
        self.current_stage = stage
        self.stage_start = now

    def finalize(self, status: str) -> dict[str, object]:
        now = time.monotonic()
        if self.current_stage:
            self.stage_durations[self.current_stage] = int((now - self.stage_start) * 1000)
        return {
            "mode": self.mode.value,
            "status": status,
            "total_ms": int((now - self.start) * 1000),
            "stages": self.stage_durations,
        }


def is_auth_failure(exc: BaseException) -> bool:
    if isinstance(exc, CompletionError):
        return exc.is_auth_error
    return "api key" in str(exc).lower()


class ConversationOrchestrator:
    """Drives conversation turns, mode switches, voice input and the emergency dialog."""

    def __init__(
        self,
        *,
        composer: PromptComposer,
        provider: LLMProvider,
        bridge: SpeechBridge,
        view: ConversationView,
        preferences: PreferenceManager | None = None,
        emergency: EmergencyService | None = None,
        initial_mode: Mode = DEFAULT_MODE,
        transcript_delay: float = TRANSCRIPT_SUBMIT_DELAY,
        clock: Callable[[], datetime] = datetime.now,
        log_transcripts: bool = False,
        logger: logging.Logger | None = None,
    ) -> None:
        self.composer = composer
        self.provider = provider
        self.bridge = bridge
        self.view = view
        self.preferences = preferences
        self.emergency = emergency
        self.transcript_delay = transcript_delay
        self.clock = clock
        self.log_transcripts = log_transcripts
        self.logger = logger or LOGGER
        self.state = ConversationState(active_mode=initial_mode)
        self._turn_task: asyncio.Task | None = None
        self._voice_submit_task: asyncio.Task | None = None

        self.bridge.set_speech_callbacks(self._handle_speech_started, self._handle_speech_ended)
        if self.preferences is not None:
            self.preferences.set_accessibility_callback(self._handle_accessibility_changed)
            self.preferences.set_mode_callback(self.select_mode)

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    def startup(self) -> list[str]:
        """Restore preferences, report missing capabilities and show the mode picker.

        Returns the list of missing capabilities.
        """
        if self.preferences is not None:
            prefs = self.preferences.load()
            self.state.active_mode = prefs.last_mode
            self.view.apply_accessibility(prefs)
        missing: list[str] = []
        if not self.bridge.capture_supported:
            missing.append("Speech Recognition")
        if not self.bridge.synthesis_supported:
            missing.append("Speech Synthesis")
        if missing:
            warning = capability_warning(missing)
            self.logger.warning("[conversation] %s", warning)
            self.view.show_notice(warning, "warning")
        self.state.conversation_visible = False
        self.view.show_mode_selection()
        self.logger.info("[conversation] Sahayak ready (mode=%s)", self.state.active_mode.value)
        return missing

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    def submit(self, user_text: str | None) -> asyncio.Task | None:
        """Start a turn; returns the running turn task, or None when the input is rejected."""
        text = (user_text or "").strip()
        if not text:
            self.logger.debug("[conversation] Ignoring empty submission")
            return None
        if self.state.is_processing:
            self.logger.info("[conversation] Ignoring submission while a request is in flight")
            return None
        self.state.is_processing = True
        self.view.set_controls_enabled(False)
        mode = self.state.active_mode
        self._record(mode, Message.create(Sender.USER, text, self.clock()))
        if self.log_transcripts:
            self.logger.info("[conversation] User [%s]: %s", mode.value, text)
        self._turn_task = asyncio.get_running_loop().create_task(self._run_turn(mode, text))
        return self._turn_task

    async def _run_turn(self, mode: Mode, text: str) -> None:
        tracker = TurnTracker(mode)
        status = "success"
        try:
            tracker.begin_stage("compose")
            prompt = self.composer.compose(mode, text)
            tracker.begin_stage("thinking")
            self.view.show_typing()
            try:
                reply = await self.provider.generate(prompt)
            finally:
                self.view.hide_typing()
            tracker.begin_stage("speaking")
            self._record(mode, Message.create(Sender.ASSISTANT, reply, self.clock()))
            if self.log_transcripts:
                self.logger.info("[conversation] Assistant [%s]: %s", mode.value, reply)
            if self._is_showing(mode):
                self.bridge.speak(reply, on_done=self._handle_utterance_done)
        except Exception as exc:
            status = "error"
            self.logger.error("[conversation] Error processing input: %s", exc, exc_info=True)
            self._record(
                mode,
                Message.create(Sender.SYSTEM, GENERIC_FAILURE_MESSAGE, self.clock(), MessageTag.ERROR),
            )
            if is_auth_failure(exc):
                self._record(
                    mode,
                    Message.create(Sender.SYSTEM, AUTH_FAILURE_MESSAGE, self.clock(), MessageTag.ERROR),
                )
        finally:
            self.state.is_processing = False
            self.view.set_controls_enabled(True)
            self.logger.debug("[conversation] Turn finished: %s", tracker.finalize(status))

    def _record(self, mode: Mode, message: Message) -> None:
        self.state.history(mode).append(message)
        if self._is_showing(mode):
            self.view.show_message(message)

    def _is_showing(self, mode: Mode) -> bool:
        return self.state.conversation_visible and self.state.active_mode == mode

    def _handle_utterance_done(self) -> None:
        self.logger.debug("[conversation] Finished speaking response")

    async def drain(self) -> None:
        """Wait for a pending voice submission and the current turn to finish."""
        if self._voice_submit_task is not None:
            await asyncio.gather(self._voice_submit_task, return_exceptions=True)
        if self._turn_task is not None:
            await asyncio.gather(self._turn_task, return_exceptions=True)

    def history(self, mode: Mode | None = None) -> list[Message]:
        return list(self.state.history(mode))

    # ------------------------------------------------------------------
    # Modes
    # ------------------------------------------------------------------

    def select_mode(self, mode: Mode | str) -> bool:
        """Switch to ``mode`` and replay its stored history; returns False for a no-op."""
        mode = parse_mode(mode)
        if mode == self.state.active_mode and self.state.conversation_visible:
            return False
        self.state.active_mode = mode
        if self.preferences is not None:
            self.preferences.record_mode(mode)
        self.stop_speaking()
        self.state.conversation_visible = True
        welcome = Message.create(Sender.ASSISTANT, mode.welcome_message, self.clock())
        self.view.reset_transcript(mode, welcome)
        for message in self.state.history(mode):
            self.view.show_message(message)
        self.logger.info("[conversation] Mode selected: %s", mode.value)
        return True

    def show_mode_selection(self) -> None:
        self.state.conversation_visible = False
        self.view.show_mode_selection()
        self.stop_speaking()

    # ------------------------------------------------------------------
    # Voice input
    # ------------------------------------------------------------------

    def start_voice_input(self) -> bool:
        if self.state.is_processing:
            self.logger.debug("[conversation] Not starting capture while a request is in flight")
            return False
        if self.state.is_capturing:
            self.logger.warning("[conversation] Voice input already active")
            return False
        self.stop_speaking()
        self.state.is_capturing = True
        self.view.show_recording(True)
        self.bridge.start_capture(self._handle_transcript, self._handle_capture_error)
        # An unsupported bridge reports its error before start_capture returns.
        return self.state.is_capturing

    def stop_voice_input(self) -> None:
        self.state.is_capturing = False
        self.view.show_recording(False)
        self.bridge.stop_capture()

    def toggle_voice_input(self) -> bool:
        """Start capture when idle, otherwise stop it; returns whether capture is now active."""
        if self.state.is_capturing:
            self.stop_voice_input()
            return False
        return self.start_voice_input()

    def _handle_transcript(self, transcript: str) -> None:
        self.stop_voice_input()
        self._voice_submit_task = asyncio.get_running_loop().create_task(self._submit_after_delay(transcript))

    async def _submit_after_delay(self, transcript: str) -> None:
        # Leave the transcript on screen briefly before it is sent.
        await asyncio.sleep(self.transcript_delay)
        task = self.submit(transcript)
        if task is not None:
            await task

    def _handle_capture_error(self, reason: str) -> None:
        self.logger.warning("[conversation] Speech recognition error: %s", reason)
        self.view.show_message(
            Message.create(Sender.SYSTEM, speech_error_message(reason), self.clock(), MessageTag.ERROR)
        )
        self.stop_voice_input()

    # ------------------------------------------------------------------
    # Speech output
    # ------------------------------------------------------------------

    def stop_speaking(self) -> None:
        if not self.state.is_speaking and not self.bridge.is_speaking:
            return
        self.bridge.stop_speaking()
        self.state.is_speaking = False
        self.view.show_speaking(False)

    def on_user_typing(self) -> None:
        if self.state.is_speaking:
            self.stop_speaking()

    def _handle_speech_started(self) -> None:
        self.state.is_speaking = True
        self.view.show_speaking(True)

    def _handle_speech_ended(self) -> None:
        self.state.is_speaking = False
        self.view.show_speaking(False)

    # ------------------------------------------------------------------
    # Accessibility
    # ------------------------------------------------------------------

    def increase_font_size(self) -> bool:
        if self.preferences is None:
            return False
        return self.preferences.increase_font_size()

    def decrease_font_size(self) -> bool:
        if self.preferences is None:
            return False
        return self.preferences.decrease_font_size()

    def toggle_high_contrast(self) -> bool:
        if self.preferences is None:
            return False
        return self.preferences.toggle_high_contrast()

    def _handle_accessibility_changed(self, preferences: AccessibilityPreferences) -> None:
        self.view.apply_accessibility(preferences)

    # ------------------------------------------------------------------
    # Emergency
    # ------------------------------------------------------------------

    async def trigger_emergency(self) -> EmergencyPrompt | None:
        if self.emergency is None:
            self.logger.error("[conversation] Emergency flow is not configured")
            self.view.show_notice("Emergency contacts are not configured.", "error")
            return None
        self.stop_speaking()
        prompt = await self.emergency.trigger()
        if prompt.notice:
            self.view.show_notice(prompt.notice, "warning")
        self.view.show_emergency_contacts(prompt)
        return prompt

    def select_emergency_contact(self, contact: EmergencyContact) -> EmergencyAlert | None:
        if self.emergency is None:
            return None
        alert = self.emergency.select_contact(contact)
        self.view.show_dispatch_options(alert)
        return alert

    async def dispatch_emergency(self, alert: EmergencyAlert, channel: DispatchChannel) -> bool:
        if self.emergency is None:
            return False
        if await self.emergency.dispatch(alert, channel):
            self.view.show_notice(f"{channel.label} to {alert.contact.name} started.")
            return True
        self.view.show_notice(
            f"Could not start {channel.label} to {alert.contact.name}. Please dial {alert.contact.phone} directly.",
            "error",
        )
        return False
