"""Shared test fixtures and configuration for the Sahayak test suite.

This module provides reusable fixtures and test doubles for:
- Speech (a bridge whose engines are scripted per test)
- Rendering (a view that records every call)
- LLM providers (canned replies or errors)
- Emergency collaborators (launcher and geolocator)
- Configuration objects
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Any
from unittest.mock import Mock

import pytest
from sahayak.assistant.config import (
    AppSettings,
    EmergencyConfig,
    EmergencyContact,
    GenerationConfig,
    LLMConfig,
    MicConfig,
    MqttConfig,
    PhraseConfig,
    SpeechConfig,
)
from sahayak.assistant.errors import DispatchError, GeolocationError
from sahayak.assistant.llm import LLMProvider
from sahayak.assistant.messages import Message
from sahayak.assistant.speech import SpeechBridge
from sahayak.assistant.view import ConversationView
from sahayak.location import Geolocator, LocationFix

# ============================================================================
# Pytest Configuration
# ============================================================================


@pytest.fixture(scope="session")
def anyio_backend():
    """Configure anyio backend for async tests."""
    return "asyncio"


# ============================================================================
# Logging Fixtures
# ============================================================================


@pytest.fixture
def mock_logger():
    """Create a mock logger for testing."""
    return Mock(spec=logging.Logger)


# ============================================================================
# Test Doubles
# ============================================================================


class FakeSpeechBridge(SpeechBridge):
    """SpeechBridge whose engines are scripted.

    ``transcripts`` is consumed one entry per capture: a string is returned,
    an exception is raised and ``None`` means silence. With ``hold_speech``
    set, utterances keep playing until ``finish_speaking()`` is called.
    """

    def __init__(self, *, capture: bool = True, synthesis: bool = True) -> None:
        super().__init__()
        self.capture_ok = capture
        self.synthesis_ok = synthesis
        self.transcripts: list[Any] = []
        self.spoken: list[str] = []
        self.hold_speech = False
        self.hold_capture = False
        self._speech_gate: asyncio.Event | None = None
        self._capture_gate: asyncio.Event | None = None

    @property
    def capture_supported(self) -> bool:
        return self.capture_ok

    @property
    def synthesis_supported(self) -> bool:
        return self.synthesis_ok

    async def _capture_transcript(self) -> str | None:
        if self.hold_capture:
            self._capture_gate = asyncio.Event()
            await self._capture_gate.wait()
        result = self.transcripts.pop(0) if self.transcripts else None
        if isinstance(result, BaseException):
            raise result
        return result

    async def _synthesize(self, text: str) -> None:
        self.spoken.append(text)
        if self.hold_speech:
            self._speech_gate = asyncio.Event()
            await self._speech_gate.wait()

    def finish_speaking(self) -> None:
        if self._speech_gate is not None:
            self._speech_gate.set()

    def finish_capture(self) -> None:
        if self._capture_gate is not None:
            self._capture_gate.set()


class RecordingView(ConversationView):
    """View that records every render call as ``(name, args)``."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))

    def calls_named(self, name: str) -> list[tuple[Any, ...]]:
        return [args for call, args in self.calls if call == name]

    @property
    def messages(self) -> list[Message]:
        return [args[0] for args in self.calls_named("show_message")]

    @property
    def notices(self) -> list[str]:
        return [args[0] for args in self.calls_named("show_notice")]

    def show_message(self, message):
        self._record("show_message", message)

    def reset_transcript(self, mode, welcome):
        self._record("reset_transcript", mode, welcome)

    def show_typing(self):
        self._record("show_typing")

    def hide_typing(self):
        self._record("hide_typing")

    def set_controls_enabled(self, enabled):
        self._record("set_controls_enabled", enabled)

    def show_recording(self, active):
        self._record("show_recording", active)

    def show_speaking(self, active):
        self._record("show_speaking", active)

    def show_mode_selection(self):
        self._record("show_mode_selection")

    def apply_accessibility(self, preferences):
        self._record("apply_accessibility", preferences)

    def show_notice(self, text, level="info"):
        self._record("show_notice", text, level)

    def show_emergency_contacts(self, prompt):
        self._record("show_emergency_contacts", prompt)

    def show_dispatch_options(self, alert):
        self._record("show_dispatch_options", alert)


class StubProvider(LLMProvider):
    """Returns a canned reply or raises a canned error; records prompts."""

    name = "stub"

    def __init__(self, reply: str = "Hello from Sahayak", error: Exception | None = None) -> None:
        self.reply = reply
        self.error = error
        self.prompts: list[str] = []
        self.gate: asyncio.Event | None = None

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.reply


class FakeLauncher:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.launched: list[str] = []

    async def launch(self, uri: str) -> None:
        if self.fail:
            raise DispatchError("xdg-open exited with status 3")
        self.launched.append(uri)


class FakeGeolocator(Geolocator):
    def __init__(self, fix: LocationFix | None = None, error: GeolocationError | None = None) -> None:
        self.fix = fix
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def locate(self, *, timeout: float, high_accuracy: bool = True) -> LocationFix:
        self.calls.append({"timeout": timeout, "high_accuracy": high_accuracy})
        if self.error is not None:
            raise self.error
        assert self.fix is not None
        return self.fix


@pytest.fixture
def fake_bridge():
    return FakeSpeechBridge()


@pytest.fixture
def recording_view():
    return RecordingView()


@pytest.fixture
def stub_provider():
    return StubProvider()


@pytest.fixture
def fake_launcher():
    return FakeLauncher()


@pytest.fixture
def location_fix():
    return LocationFix(
        latitude=28.6139,
        longitude=77.209,
        accuracy=12.0,
        timestamp=datetime(2024, 5, 1, 9, 5, 30),
    )


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def app_settings():
    return AppSettings(default_font_size=18, min_font_size=16, max_font_size=28, font_size_step=2)


@pytest.fixture
def llm_config():
    return LLMConfig(
        provider="gemini",
        gemini_model="gemini-2.0-flash",
        gemini_api_key="test-key",
        gemini_base_url="https://generativelanguage.googleapis.com/v1beta",
        gemini_timeout=None,
        openai_model="gpt-4o-mini",
        openai_api_key="sk-test",
        openai_base_url="https://api.openai.com/v1",
        openai_timeout=None,
        generation=GenerationConfig(),
    )


@pytest.fixture
def mic_config():
    return MicConfig(command=["arecord"], rate=16000, width=2, channels=1, chunk_ms=30)


@pytest.fixture
def speech_config(mic_config):
    return SpeechConfig(
        rate=0.9,
        pitch=1.0,
        volume=1.0,
        language="en-US",
        stt_endpoint=None,
        tts_endpoint=None,
        tts_voice=None,
        mic=mic_config,
        phrase=PhraseConfig(min_seconds=0.06, max_seconds=0.3, silence_ms=60, rms_floor=100),
    )


@pytest.fixture
def mqtt_config():
    return MqttConfig(
        host="localhost",
        port=1883,
        username=None,
        password=None,
        tls_enabled=False,
        cert=None,
        key=None,
        ca_cert=None,
        topic_base="sahayak/test-device",
    )


@pytest.fixture
def emergency_config():
    return EmergencyConfig(
        primary_contact=EmergencyContact("Priya", "+91 98765-43210", "Daughter", "primary"),
        secondary_contacts=(EmergencyContact("Dr. Rao", "9123456780", "Doctor", "secondary"),),
        services=(
            EmergencyContact("Ambulance", "108", "Emergency Medical Service", "service"),
            EmergencyContact("Police", "100", "Police", "service"),
            EmergencyContact("Emergency Helpline", "112", "General Emergency", "service"),
        ),
        message_template=(
            "EMERGENCY: [NAME] needs immediate assistance at [LOCATION]. "
            "This is an automated alert from Sahayak app."
        ),
        attempt_geolocation=True,
        geolocation_timeout=10.0,
        static_location=None,
        geolocation_url=None,
    )


@pytest.fixture
def preferences_path(tmp_path: Path) -> Path:
    return tmp_path / "sahayak" / "preferences.conf"
