"""Tests for the console front-end (bin/sahayak-assistant.py)."""

from __future__ import annotations

import asyncio
import importlib.util
import io
import sys
from pathlib import Path

import pytest
from sahayak.assistant.config import AssistantConfig
from sahayak.assistant.errors import GeolocationError
from sahayak.assistant.modes import Mode
from sahayak.preference_store import parse_preferences

from tests.conftest import FakeGeolocator, FakeLauncher, StubProvider

_ROOT = Path(__file__).resolve().parents[1]
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

_MODULE_SPEC = importlib.util.spec_from_file_location(
    "sahayak_assistant_module", _ROOT / "bin" / "sahayak-assistant.py"
)
assert _MODULE_SPEC and _MODULE_SPEC.loader
_MODULE = importlib.util.module_from_spec(_MODULE_SPEC)
sys.modules[_MODULE_SPEC.name] = _MODULE
_MODULE_SPEC.loader.exec_module(_MODULE)  # type: ignore[attr-defined]
SahayakAssistant = _MODULE.SahayakAssistant  # type: ignore[attr-defined]

pytestmark = pytest.mark.anyio


@pytest.fixture
def stream():
    return io.StringIO()


@pytest.fixture
def config(preferences_path):
    return AssistantConfig.from_env(
        {
            "SAHAYAK_HOSTNAME": "test-device",
            "SAHAYAK_PREFERENCES_FILE": str(preferences_path),
            "SAHAYAK_EMERGENCY_PRIMARY": "Priya|+91 98765-43210|Daughter",
        }
    )


@pytest.fixture
async def assistant(config, stream):
    app = SahayakAssistant(config, stream=stream)
    await app.orchestrator.provider.close()
    app.orchestrator.provider = StubProvider(reply="Yoga is gentle exercise.")
    app.emergency.geolocator = FakeGeolocator(error=GeolocationError(GeolocationError.TIMEOUT))
    app.emergency.launcher = FakeLauncher()
    yield app
    app.preferences.flush()


class TestPlainText:
    async def test_text_opens_active_mode_and_submits(self, assistant):
        await assistant.handle_line("What is yoga?\n")
        await assistant.orchestrator.drain()

        state = assistant.orchestrator.state
        assert state.conversation_visible
        assert [message.text for message in assistant.orchestrator.history(Mode.INFORMATION)] == [
            "What is yoga?",
            "Yoga is gentle exercise.",
        ]

    async def test_blank_lines_ignored(self, assistant):
        await assistant.handle_line("   \n")
        assert assistant.orchestrator.history() == []


class TestCommands:
    async def test_mode_command(self, assistant, stream):
        await assistant.handle_line("/mode religious")
        assert assistant.orchestrator.state.active_mode is Mode.RELIGIOUS
        assert "=== Mode: Religious ===" in stream.getvalue()

    async def test_unknown_mode_reports_error(self, assistant, stream):
        await assistant.handle_line("/mode gardening")
        assert "! Unknown conversation mode: 'gardening'" in stream.getvalue()

    async def test_back_shows_mode_picker(self, assistant):
        await assistant.handle_line("/mode wellness")
        await assistant.handle_line("/back")
        assert not assistant.orchestrator.state.conversation_visible

    async def test_font_commands(self, assistant, stream):
        await assistant.handle_line("/font +")
        assert assistant.preferences.preferences.font_size == 20

        await assistant.handle_line("/font -")
        await assistant.handle_line("/font -")
        await assistant.handle_line("/font -")

        assert assistant.preferences.preferences.font_size == 16
        assert "Font size is already at its limit." in stream.getvalue()

    async def test_font_usage(self, assistant, stream):
        await assistant.handle_line("/font huge")
        assert "Usage: /font + or /font -" in stream.getvalue()

    async def test_contrast_toggle(self, assistant):
        await assistant.handle_line("/contrast")
        assert assistant.preferences.preferences.high_contrast

    async def test_help_lists_modes(self, assistant, stream):
        await assistant.handle_line("/help")
        assert "information, religious, wellness, ordering" in stream.getvalue()

    async def test_unknown_command(self, assistant, stream):
        await assistant.handle_line("/dance")
        assert "Unknown command: /dance" in stream.getvalue()

    async def test_mic_without_speech_service(self, assistant, stream):
        await assistant.handle_line("/mode information")
        await assistant.handle_line("/mic")
        assert "Speech recognition not supported" in stream.getvalue()
        assert not assistant.orchestrator.state.is_capturing

    async def test_quit(self, assistant):
        await assistant.handle_line("/quit")
        assert assistant._shutdown.is_set()


class TestEmergencyDialog:
    async def test_pick_contact_then_channel(self, assistant, stream):
        await assistant.handle_line("/emergency")
        output = stream.getvalue()
        assert "Location request timed out." in output
        assert "1. Priya (Daughter) +91 98765-43210" in output

        await assistant.handle_line("1")
        assert "Contact Priya via:" in stream.getvalue()

        await assistant.handle_line("1")
        assert assistant.emergency.launcher.launched == ["tel:+91 98765-43210"]
        assert "Phone Call to Priya started." in stream.getvalue()

        await assistant.handle_line("1")
        await assistant.orchestrator.drain()
        assert assistant.orchestrator.history()[0].text == "1"

    async def test_failed_dispatch_suggests_dialing(self, assistant, stream):
        assistant.emergency.launcher.fail = True
        await assistant.handle_line("/emergency")
        await assistant.handle_line("2")
        await assistant.handle_line("3")
        assert "Could not start SMS Message to Ambulance. Please dial 108 directly." in stream.getvalue()

    async def test_invalid_choice(self, assistant, stream):
        await assistant.handle_line("/emergency")
        await assistant.handle_line("9")
        assert "Please choose one of the listed contacts." in stream.getvalue()

    async def test_cancel(self, assistant, stream):
        await assistant.handle_line("/emergency")
        await assistant.handle_line("/cancel")
        assert "Emergency dialog closed." in stream.getvalue()
        assert assistant._emergency_prompt is None


async def test_shutdown_flushes_preferences(assistant, preferences_path):
    await assistant.handle_line("/contrast")
    await assistant.shutdown()
    assert parse_preferences(preferences_path.read_text())["high_contrast"] == "true"


async def test_shutdown_waits_for_remote_turn(assistant):
    provider = assistant.orchestrator.provider
    provider.gate = asyncio.Event()
    await assistant.handle_line("/mode wellness")

    assistant._handle_remote_input("How do I sleep better?")
    await asyncio.sleep(0)
    assert assistant._remote_tasks
    asyncio.get_running_loop().call_later(0.01, provider.gate.set)
    await assistant.shutdown()

    assert [message.text for message in assistant.orchestrator.history(Mode.WELLNESS)] == [
        "How do I sleep better?",
        "Yoga is gentle exercise.",
    ]
    assert not assistant._remote_tasks
