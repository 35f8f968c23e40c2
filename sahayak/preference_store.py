"""Persist user preferences to a small ``KEY="value"`` file.

Preference changes are batched and written after a short delay so that
rapid adjustments (several font-size taps in a row) produce one disk write.
Existing lines and comments are preserved; unknown keys are appended.
"""

from __future__ import annotations

import fcntl
import logging
import re
import threading
from pathlib import Path

LOGGER = logging.getLogger(__name__)

# Debounce delay in seconds - wait this long after last change before writing
DEBOUNCE_DELAY_SECONDS = 2.0

LOCK_FILE_SUFFIX = ".lock"

_ASSIGNMENT_RE = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)\s*=\s*(.*)$")


def _strip_quotes(value: str) -> str:
    """Remove matching single or double quotes from a value."""
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
        inner = value[1:-1]
        if value[0] == '"':
            inner = inner.replace('\\"', '"').replace("\\\\", "\\")
        return inner
    return value


def _quote_value(value: str) -> str:
    """Wrap a value in double quotes, escaping as needed."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def parse_preferences(content: str) -> dict[str, str]:
    values: dict[str, str] = {}
    for line in content.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        match = _ASSIGNMENT_RE.match(stripped)
        if match:
            values[match.group(1)] = _strip_quotes(match.group(2))
    return values


class PreferenceStore:
    """Reads preferences at startup and writes changes with a debounce."""

    def __init__(
        self,
        path: Path,
        debounce_seconds: float = DEBOUNCE_DELAY_SECONDS,
        logger: logging.Logger | None = None,
    ) -> None:
        self._path = path
        self._debounce_seconds = debounce_seconds
        self._logger = logger or LOGGER
        self._pending_changes: dict[str, str] = {}
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._write_lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> dict[str, str]:
        """Return stored values, including any changes not yet flushed."""
        values: dict[str, str] = {}
        try:
            values = parse_preferences(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            self._logger.debug("Preference file '%s' does not exist yet", self._path)
        except OSError as exc:
            self._logger.warning("Failed to read preferences from '%s': %s", self._path, exc)
        with self._lock:
            values.update(self._pending_changes)
        return values

    def update(self, key: str, value: str) -> None:
        """Queue a preference update. The write will be debounced."""
        with self._lock:
            self._pending_changes[key] = value
            self._schedule_write()

    def _schedule_write(self) -> None:
        """Schedule a debounced write. Must be called with self._lock held."""
        if self._timer is not None:
            self._timer.cancel()
        self._timer = threading.Timer(self._debounce_seconds, self._flush)
        self._timer.daemon = True
        self._timer.start()

    def _flush(self) -> None:
        with self._lock:
            if not self._pending_changes:
                return
            changes = self._pending_changes.copy()
            self._pending_changes.clear()
            self._timer = None
        try:
            self._write_changes(changes)
        except Exception as exc:
            self._logger.error("Failed to persist preferences: %s", exc)

    def flush_sync(self) -> None:
        """Immediately flush any pending changes (blocking)."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            if not self._pending_changes:
                return
            changes = self._pending_changes.copy()
            self._pending_changes.clear()
        try:
            self._write_changes(changes)
        except Exception as exc:
            self._logger.error("Failed to persist preferences: %s", exc)

    def _write_changes(self, changes: dict[str, str]) -> None:
        with self._write_lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            lock_path = Path(str(self._path) + LOCK_FILE_SUFFIX)
            with open(lock_path, "w") as lock_fd:
                try:
                    fcntl.flock(lock_fd.fileno(), fcntl.LOCK_EX)
                except OSError as exc:
                    self._logger.warning("Could not acquire preference lock: %s", exc)
                try:
                    content = self._path.read_text(encoding="utf-8") if self._path.exists() else ""
                    self._path.write_text(self._apply_changes(content, changes), encoding="utf-8")
                finally:
                    try:
                        fcntl.flock(lock_fd.fileno(), fcntl.LOCK_UN)
                    except OSError:
                        pass
        self._logger.info(
            "Persisted %d preference change(s) to '%s': %s",
            len(changes),
            self._path,
            ", ".join(f"{k}={v!r}" for k, v in changes.items()),
        )

    @staticmethod
    def _apply_changes(content: str, changes: dict[str, str]) -> str:
        remaining = dict(changes)
        result: list[str] = []
        for line in content.splitlines(keepends=True):
            match = _ASSIGNMENT_RE.match(line.rstrip("\n\r").strip())
            if match and match.group(1) in remaining:
                new_line = f"{match.group(1)}={_quote_value(remaining.pop(match.group(1)))}"
                if line.endswith("\n"):
                    new_line += "\n"
                result.append(new_line)
                continue
            result.append(line)
        if remaining and result and not result[-1].endswith("\n"):
            result.append("\n")
        for key, value in remaining.items():
            result.append(f"{key}={_quote_value(value)}\n")
        return "".join(result)
