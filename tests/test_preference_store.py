"""Tests for debounced preference persistence (sahayak/preference_store.py)."""

from __future__ import annotations

import time

import pytest
from sahayak.preference_store import PreferenceStore, parse_preferences


@pytest.fixture
def store(preferences_path):
    store = PreferenceStore(preferences_path, debounce_seconds=60)
    yield store
    store.flush_sync()


def test_parse_preferences_skips_comments_and_quotes():
    content = '# Sahayak\nfont_size="22"\n\nhigh_contrast=true\nlast_mode=\'wellness\'\nnot a line\n'
    assert parse_preferences(content) == {
        "font_size": "22",
        "high_contrast": "true",
        "last_mode": "wellness",
    }


def test_parse_preferences_unescapes_double_quotes():
    assert parse_preferences('name="say \\"hi\\""') == {"name": 'say "hi"'}


def test_load_missing_file_returns_empty(store):
    assert store.load() == {}


def test_load_includes_pending_changes(store, preferences_path):
    preferences_path.parent.mkdir(parents=True)
    preferences_path.write_text('font_size="20"\nlast_mode="ordering"\n')

    store.update("font_size", "24")

    assert store.load() == {"font_size": "24", "last_mode": "ordering"}
    assert 'font_size="20"' in preferences_path.read_text()


def test_flush_creates_file(store, preferences_path):
    store.update("font_size", "22")
    store.update("high_contrast", "true")

    store.flush_sync()

    assert preferences_path.read_text() == 'font_size="22"\nhigh_contrast="true"\n'


def test_flush_preserves_comments_and_order(store, preferences_path):
    preferences_path.parent.mkdir(parents=True)
    preferences_path.write_text('# Sahayak preferences\nlast_mode="information"\nfont_size="18"\n')

    store.update("font_size", "26")
    store.update("last_mode", "religious")
    store.flush_sync()

    assert preferences_path.read_text() == ('# Sahayak preferences\nlast_mode="religious"\nfont_size="26"\n')


def test_flush_appends_after_unterminated_last_line(store, preferences_path):
    preferences_path.parent.mkdir(parents=True)
    preferences_path.write_text('font_size="18"')

    store.update("high_contrast", "false")
    store.flush_sync()

    assert preferences_path.read_text() == 'font_size="18"\nhigh_contrast="false"\n'


def test_flush_without_changes_does_not_write(store, preferences_path):
    store.flush_sync()
    assert not preferences_path.exists()


def test_rapid_updates_coalesce(store, preferences_path):
    for size in ("20", "22", "24"):
        store.update("font_size", size)
    store.flush_sync()
    assert preferences_path.read_text() == 'font_size="24"\n'


def test_debounced_write_happens_after_delay(preferences_path):
    store = PreferenceStore(preferences_path, debounce_seconds=0.05)
    store.update("last_mode", "wellness")

    stored: dict[str, str] = {}
    deadline = time.monotonic() + 2.0
    while not stored and time.monotonic() < deadline:
        time.sleep(0.02)
        if preferences_path.exists():
            stored = parse_preferences(preferences_path.read_text())

    assert stored == {"last_mode": "wellness"}
    store.flush_sync()


def test_values_are_escaped(store, preferences_path):
    store.update("name", 'Ravi "RK" Kumar')
    store.flush_sync()
    assert parse_preferences(preferences_path.read_text()) == {"name": 'Ravi "RK" Kumar'}
