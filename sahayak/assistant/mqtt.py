"""
MQTT link between the assistant and a kiosk display

The display mirrors the transcript from retained JSON topics under
``<topic_base>/`` and posts text input and preference changes back. Every
publish is best effort: a missing broker never interrupts a conversation.
"""

from __future__ import annotations

import json
import logging
import ssl
import threading
from collections.abc import Callable
from typing import Any

import paho.mqtt.client as mqtt

from .config import MqttConfig

LOGGER = logging.getLogger(__name__)

TextHandler = Callable[[str], None]


def _tls_options(config: MqttConfig) -> dict[str, Any]:
    options: dict[str, Any] = {"tls_version": ssl.PROTOCOL_TLS_CLIENT}
    for option, value in (("ca_certs", config.ca_cert), ("certfile", config.cert), ("keyfile", config.key)):
        if value:
            options[option] = value
    return options


class AssistantMqtt:
    """Kiosk-facing MQTT client scoped to one topic base."""

    def __init__(self, config: MqttConfig, logger: logging.Logger | None = None) -> None:
        self.config = config
        self._logger = logger or LOGGER
        self._client: mqtt.Client | None = None
        self._lock = threading.Lock()
        self._handlers: dict[str, TextHandler] = {}

    @property
    def enabled(self) -> bool:
        return bool(self.config.host)

    @property
    def client_id(self) -> str:
        return "sahayak-" + self.config.topic_base.replace("/", "-")

    def topic(self, suffix: str) -> str:
        return f"{self.config.topic_base}/{suffix.lstrip('/')}"

    def connect(self) -> None:
        if not self.enabled:
            self._logger.debug("[mqtt] No broker configured; kiosk mirroring disabled")
            return
        with self._lock:
            if self._client is not None:
                return
            client = mqtt.Client(
                callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
                client_id=self.client_id,
                clean_session=True,
            )
            if self.config.username:
                client.username_pw_set(self.config.username, self.config.password or "")
            if self.config.tls_enabled:
                client.tls_set(**_tls_options(self.config))
            try:
                client.connect(self.config.host, self.config.port, keepalive=30)
            except (OSError, ValueError) as exc:
                self._logger.warning("[mqtt] Kiosk broker %s:%s unreachable: %s", self.config.host, self.config.port, exc)
                return
            client.loop_start()
            self._client = client
        self._logger.info("[mqtt] Mirroring conversation to %s on %s", self.config.topic_base, self.config.host)

    def disconnect(self) -> None:
        with self._lock:
            client, self._client = self._client, None
            self._handlers.clear()
        if client is None:
            return
        client.loop_stop()
        client.disconnect()

    @property
    def connected(self) -> bool:
        return self._client is not None

    def publish(self, topic: str, payload: str, retain: bool = False) -> None:
        client = self._client
        if client is None:
            return
        try:
            info = client.publish(topic, payload=payload, qos=0, retain=retain)
        except ValueError as exc:
            self._logger.debug("[mqtt] Rejected update for %s: %s", topic, exc)
            return
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            self._logger.debug("[mqtt] Dropped update for %s (rc=%s)", topic, info.rc)

    def publish_json(self, topic: str, data: Any, retain: bool = False) -> None:
        """Publish ``data`` as UTF-8 JSON; Devanagari and other scripts stay readable."""
        self.publish(topic, json.dumps(data, ensure_ascii=False), retain=retain)

    def subscribe(self, topic: str, handler: TextHandler) -> None:
        """Deliver decoded text posted to ``topic``; runs on paho's network thread."""
        client = self._client
        if client is None:
            raise RuntimeError("MQTT client is not connected")
        self._handlers[topic] = handler
        result, _mid = client.subscribe(topic)
        if result != mqtt.MQTT_ERR_SUCCESS:
            self._logger.warning("[mqtt] Kiosk subscription to %s refused (rc=%s)", topic, result)
        client.message_callback_add(topic, self._deliver)

    def _deliver(self, _client: Any, _userdata: Any, message: Any) -> None:
        handler = self._handlers.get(message.topic)
        if handler is None:
            return
        text = message.payload.decode("utf-8", errors="ignore")
        try:
            handler(text)
        except Exception:
            self._logger.exception("[mqtt] Handler for %s failed on %r", message.topic, text)
