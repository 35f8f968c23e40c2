"""Transcript message records."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

ASSISTANT_NAME = "Sahayak"


class Sender(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"

    @property
    def label(self) -> str:
        return {
            Sender.USER: "You",
            Sender.ASSISTANT: ASSISTANT_NAME,
            Sender.SYSTEM: "System",
        }[self]


class MessageTag(str, Enum):
    NORMAL = "normal"
    ERROR = "error"


def format_timestamp(moment: datetime) -> str:
    """Render ``H:MM`` (hour unpadded, minutes zero-padded)."""
    return f"{moment.hour}:{moment.minute:02d}"


@dataclass(frozen=True)
class Message:
    sender: Sender
    text: str
    tag: MessageTag
    timestamp: str

    @classmethod
    def create(
        cls,
        sender: Sender,
        text: str,
        moment: datetime,
        tag: MessageTag = MessageTag.NORMAL,
    ) -> Message:
        return cls(sender=sender, text=text, tag=tag, timestamp=format_timestamp(moment))

    def to_dict(self) -> dict[str, str]:
        return {
            "sender": self.sender.value,
            "label": self.sender.label,
            "text": self.text,
            "tag": self.tag.value,
            "timestamp": self.timestamp,
        }
