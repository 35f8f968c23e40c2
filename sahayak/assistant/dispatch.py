"""Platform dispatch actions for emergency alerts (call, chat message, SMS)."""

from __future__ import annotations

import asyncio
import logging
import re
import shutil
import subprocess
from collections.abc import Sequence
from enum import Enum
from urllib.parse import quote

from .errors import DispatchError

LOGGER = logging.getLogger(__name__)

_PHONE_SEPARATORS = re.compile(r"[\s+\-]")


class DispatchChannel(str, Enum):
    CALL = "call"
    WHATSAPP = "whatsapp"
    SMS = "sms"

    @property
    def label(self) -> str:
        return {
            DispatchChannel.CALL: "Phone Call",
            DispatchChannel.WHATSAPP: "WhatsApp Message",
            DispatchChannel.SMS: "SMS Message",
        }[self]


def call_uri(phone: str) -> str:
    return f"tel:{phone}"


def sms_uri(phone: str, body: str) -> str:
    return f"sms:{phone}?body={quote(body, safe='')}"


def whatsapp_uri(phone: str, body: str) -> str:
    cleaned = _PHONE_SEPARATORS.sub("", phone)
    return f"https://wa.me/{cleaned}?text={quote(body, safe='')}"


def build_dispatch_uri(channel: DispatchChannel, phone: str, message: str) -> str:
    if channel is DispatchChannel.CALL:
        return call_uri(phone)
    if channel is DispatchChannel.SMS:
        return sms_uri(phone, message)
    return whatsapp_uri(phone, message)


class PlatformLauncher:
    """Hand a URI to the platform handler (``xdg-open`` by default)."""

    def __init__(self, command: Sequence[str] = ("xdg-open",), logger: logging.Logger | None = None) -> None:
        self.command = tuple(command)
        self._logger = logger or LOGGER

    async def launch(self, uri: str) -> None:
        if not self.command or shutil.which(self.command[0]) is None:
            raise DispatchError(f"No URI handler available ({' '.join(self.command) or 'unset'})")
        self._logger.info("[dispatch] Launching %s", uri.split("?", 1)[0])
        try:
            result = await asyncio.to_thread(
                subprocess.run,
                [*self.command, uri],
                check=False,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                timeout=15,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            raise DispatchError(f"Failed to launch {self.command[0]}: {exc}") from exc
        if result.returncode != 0:
            stderr = (result.stderr or b"").decode("utf-8", errors="ignore").strip()
            detail = f": {stderr}" if stderr else ""
            raise DispatchError(f"{self.command[0]} exited with status {result.returncode}{detail}")
