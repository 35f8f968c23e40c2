"""Configuration helpers for the Sahayak voice assistant."""

from __future__ import annotations

import os
import shlex
import socket
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from sahayak.utils import (
    parse_bool,
    parse_float,
    parse_int,
    parse_optional_float,
    split_csv,
)

from .modes import DEFAULT_MODE, Mode
from .prompts import DEFAULT_PROMPT_PREFIXES


def _strip_or_none(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


DEFAULT_PREFERENCES_PATH = Path("~/.config/sahayak/preferences.conf")
DEFAULT_MESSAGE_TEMPLATE = (
    "EMERGENCY: [NAME] needs immediate assistance at [LOCATION]. This is an automated alert from Sahayak app."
)


@dataclass(frozen=True)
class WyomingEndpoint:
    host: str
    port: int
    model: str | None = None


@dataclass(frozen=True)
class MicConfig:
    command: list[str]
    rate: int
    width: int
    channels: int
    chunk_ms: int

    @property
    def bytes_per_chunk(self) -> int:
        samples = int(self.rate * (self.chunk_ms / 1000))
        return samples * self.width * self.channels


@dataclass(frozen=True)
class PhraseConfig:
    min_seconds: float
    max_seconds: float
    silence_ms: int
    rms_floor: int


@dataclass(frozen=True)
class GenerationConfig:
    temperature: float = 0.7
    top_k: int = 40
    top_p: float = 0.95
    max_output_tokens: int = 1024


@dataclass(frozen=True)
class LLMConfig:
    provider: str
    gemini_model: str
    gemini_api_key: str | None
    gemini_base_url: str
    gemini_timeout: float | None
    openai_model: str
    openai_api_key: str | None
    openai_base_url: str
    openai_timeout: float | None
    generation: GenerationConfig = field(default_factory=GenerationConfig)


@dataclass(frozen=True)
class SpeechConfig:
    rate: float
    pitch: float
    volume: float
    language: str
    stt_endpoint: WyomingEndpoint | None
    tts_endpoint: WyomingEndpoint | None
    tts_voice: str | None
    mic: MicConfig
    phrase: PhraseConfig
    player: str | None = None


@dataclass(frozen=True)
class AppSettings:
    default_font_size: int = 18
    min_font_size: int = 16
    max_font_size: int = 28
    font_size_step: int = 2


@dataclass(frozen=True)
class EmergencyContact:
    name: str
    phone: str
    relationship: str
    kind: Literal["primary", "secondary", "service"] = "secondary"


@dataclass(frozen=True)
class EmergencyConfig:
    primary_contact: EmergencyContact
    secondary_contacts: tuple[EmergencyContact, ...]
    services: tuple[EmergencyContact, ...]
    message_template: str
    attempt_geolocation: bool
    geolocation_timeout: float
    static_location: str | None
    geolocation_url: str | None


@dataclass(frozen=True)
class MqttConfig:
    host: str | None
    port: int
    username: str | None
    password: str | None
    tls_enabled: bool
    cert: str | None
    key: str | None
    ca_cert: str | None
    topic_base: str


@dataclass(frozen=True)
class AssistantConfig:
    hostname: str
    llm: LLMConfig
    speech: SpeechConfig
    app: AppSettings
    emergency: EmergencyConfig
    mqtt: MqttConfig
    prompt_prefixes: dict[Mode, str]
    preferences_path: Path
    default_mode: Mode = DEFAULT_MODE
    launcher_command: tuple[str, ...] = ("xdg-open",)
    log_transcripts: bool = False

    @staticmethod
    def from_env(env: dict[str, str] | None = None) -> AssistantConfig:
        source = env if env is not None else os.environ
        hostname = source.get("SAHAYAK_HOSTNAME") or socket.gethostname()

        provider = (source.get("SAHAYAK_PROVIDER") or "gemini").strip().lower()
        generation = GenerationConfig(
            temperature=parse_float(source.get("SAHAYAK_TEMPERATURE"), 0.7),
            top_k=parse_int(source.get("SAHAYAK_TOP_K"), 40),
            top_p=parse_float(source.get("SAHAYAK_TOP_P"), 0.95),
            max_output_tokens=parse_int(source.get("SAHAYAK_MAX_OUTPUT_TOKENS"), 1024),
        )
        llm = LLMConfig(
            provider=provider,
            gemini_model=(source.get("GEMINI_MODEL") or "gemini-2.0-flash").strip(),
            gemini_api_key=_strip_or_none(source.get("GEMINI_API_KEY")),
            gemini_base_url=source.get("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"),
            gemini_timeout=parse_optional_float(source.get("GEMINI_TIMEOUT_SECONDS")),
            openai_model=source.get("OPENAI_MODEL", "gpt-4o-mini"),
            openai_api_key=_strip_or_none(source.get("OPENAI_API_KEY")),
            openai_base_url=source.get("OPENAI_BASE_URL", "https://api.openai.com/v1"),
            openai_timeout=parse_optional_float(source.get("OPENAI_TIMEOUT_SECONDS")),
            generation=generation,
        )

        mic_cmd = shlex.split(
            source.get(
                "SAHAYAK_MIC_CMD",
                "arecord -q -t raw -f S16_LE -c 1 -r 16000 -",
            )
        )
        mic = MicConfig(
            command=mic_cmd,
            rate=parse_int(source.get("SAHAYAK_MIC_RATE"), 16000),
            width=parse_int(source.get("SAHAYAK_MIC_WIDTH"), 2),
            channels=parse_int(source.get("SAHAYAK_MIC_CHANNELS"), 1),
            chunk_ms=parse_int(source.get("SAHAYAK_MIC_CHUNK_MS"), 30),
        )
        phrase = PhraseConfig(
            min_seconds=parse_float(source.get("SAHAYAK_MIN_PHRASE_SECONDS"), 1.0),
            max_seconds=parse_float(source.get("SAHAYAK_MAX_PHRASE_SECONDS"), 12.0),
            silence_ms=parse_int(source.get("SAHAYAK_SILENCE_MS"), 1500),
            rms_floor=parse_int(source.get("SAHAYAK_RMS_THRESHOLD"), 120),
        )
        speech = SpeechConfig(
            rate=parse_float(source.get("SAHAYAK_SPEECH_RATE"), 0.9),
            pitch=parse_float(source.get("SAHAYAK_SPEECH_PITCH"), 1.0),
            volume=max(0.0, min(1.0, parse_float(source.get("SAHAYAK_SPEECH_VOLUME"), 1.0))),
            language=(source.get("SAHAYAK_LANGUAGE") or "en-US").strip(),
            stt_endpoint=_optional_wyoming_endpoint(
                source,
                host_key="WYOMING_WHISPER_HOST",
                port_key="WYOMING_WHISPER_PORT",
                default_port=10300,
                model_key="SAHAYAK_STT_MODEL",
            ),
            tts_endpoint=_optional_wyoming_endpoint(
                source,
                host_key="WYOMING_PIPER_HOST",
                port_key="WYOMING_PIPER_PORT",
                default_port=10200,
            ),
            tts_voice=_strip_or_none(source.get("SAHAYAK_TTS_VOICE")),
            mic=mic,
            phrase=phrase,
            player=_strip_or_none(source.get("SAHAYAK_AUDIO_PLAYER")),
        )

        min_font = parse_int(source.get("SAHAYAK_MIN_FONT_SIZE"), 16)
        max_font = max(min_font, parse_int(source.get("SAHAYAK_MAX_FONT_SIZE"), 28))
        app = AppSettings(
            default_font_size=max(min_font, min(max_font, parse_int(source.get("SAHAYAK_FONT_SIZE"), 18))),
            min_font_size=min_font,
            max_font_size=max_font,
            font_size_step=max(1, parse_int(source.get("SAHAYAK_FONT_SIZE_STEP"), 2)),
        )

        emergency = EmergencyConfig(
            primary_contact=_parse_contact(
                source.get("SAHAYAK_EMERGENCY_PRIMARY"),
                kind="primary",
                fallback=EmergencyContact("Son/Daughter", "", "Primary caregiver", "primary"),
            ),
            secondary_contacts=tuple(
                contact
                for contact in (
                    _parse_contact(raw, kind="secondary")
                    for raw in split_csv(source.get("SAHAYAK_EMERGENCY_SECONDARY"), ";")
                )
                if contact is not None
            ),
            services=_emergency_services(source),
            message_template=source.get("SAHAYAK_EMERGENCY_TEMPLATE") or DEFAULT_MESSAGE_TEMPLATE,
            attempt_geolocation=parse_bool(source.get("SAHAYAK_ATTEMPT_GEOLOCATION"), True),
            geolocation_timeout=parse_float(source.get("SAHAYAK_GEOLOCATION_TIMEOUT_SECONDS"), 10.0),
            static_location=_strip_or_none(source.get("SAHAYAK_LOCATION")),
            geolocation_url=_strip_or_none(source.get("SAHAYAK_GEOLOCATION_URL", "http://ip-api.com/json")),
        )

        topic_base = source.get("SAHAYAK_TOPIC_BASE") or f"sahayak/{hostname}"
        mqtt = MqttConfig(
            host=_strip_or_none(source.get("MQTT_HOST")),
            port=parse_int(source.get("MQTT_PORT"), 1883),
            username=_strip_or_none(source.get("MQTT_USER") or source.get("MQTT_USERNAME")),
            password=_strip_or_none(source.get("MQTT_PASS") or source.get("MQTT_PASSWORD")),
            tls_enabled=parse_bool(source.get("MQTT_TLS_ENABLED"), False),
            cert=_strip_or_none(source.get("MQTT_CERT")),
            key=_strip_or_none(source.get("MQTT_KEY")),
            ca_cert=_strip_or_none(source.get("MQTT_CA_CERT")),
            topic_base=topic_base.rstrip("/"),
        )

        prompt_prefixes = dict(DEFAULT_PROMPT_PREFIXES)
        for mode in Mode:
            override = source.get(f"SAHAYAK_PROMPT_{mode.name}")
            if override and override.strip():
                prompt_prefixes[mode] = override.rstrip() + " "

        default_mode = DEFAULT_MODE
        raw_mode = (source.get("SAHAYAK_DEFAULT_MODE") or "").strip().lower()
        if raw_mode in {mode.value for mode in Mode}:
            default_mode = Mode(raw_mode)

        preferences_path = Path(source.get("SAHAYAK_PREFERENCES_FILE") or DEFAULT_PREFERENCES_PATH).expanduser()
        launcher_command = tuple(shlex.split(source.get("SAHAYAK_LAUNCHER_CMD") or "xdg-open")) or ("xdg-open",)

        return AssistantConfig(
            hostname=hostname,
            llm=llm,
            speech=speech,
            app=app,
            emergency=emergency,
            mqtt=mqtt,
            prompt_prefixes=prompt_prefixes,
            preferences_path=preferences_path,
            default_mode=default_mode,
            launcher_command=launcher_command,
            log_transcripts=parse_bool(source.get("SAHAYAK_LOG_TRANSCRIPTS"), False),
        )


def _optional_wyoming_endpoint(
    source: dict[str, str],
    *,
    host_key: str,
    port_key: str,
    default_port: int,
    model_key: str | None = None,
) -> WyomingEndpoint | None:
    host = _strip_or_none(source.get(host_key))
    if not host:
        return None
    port = parse_int(source.get(port_key), default_port)
    if not port:
        return None
    model = source.get(model_key) if model_key else None
    return WyomingEndpoint(host=host, port=port, model=model)


def _parse_contact(
    raw: str | None,
    *,
    kind: Literal["primary", "secondary", "service"],
    fallback: EmergencyContact | None = None,
) -> EmergencyContact | None:
    """Parse ``name|phone|relationship`` into a contact."""
    if not raw or not raw.strip():
        return fallback
    parts = [part.strip() for part in raw.split("|")]
    if len(parts) < 2 or not parts[0] or not parts[1]:
        return fallback
    relationship = parts[2] if len(parts) > 2 and parts[2] else kind.title()
    return EmergencyContact(name=parts[0], phone=parts[1], relationship=relationship, kind=kind)


def _emergency_services(source: dict[str, str]) -> tuple[EmergencyContact, ...]:
    entries = (
        ("SAHAYAK_EMERGENCY_AMBULANCE", "108", "Ambulance", "Emergency Medical Service"),
        ("SAHAYAK_EMERGENCY_POLICE", "100", "Police", "Police"),
        ("SAHAYAK_EMERGENCY_HELPLINE", "112", "Emergency Helpline", "General Emergency"),
    )
    services: list[EmergencyContact] = []
    for key, default, name, relationship in entries:
        number = (source.get(key, default) or "").strip()
        if number:
            services.append(EmergencyContact(name=name, phone=number, relationship=relationship, kind="service"))
    return tuple(services)
