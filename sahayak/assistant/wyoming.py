"""Helpers for talking to Wyoming STT (Whisper) and TTS (Piper) services."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator

from wyoming.asr import Transcribe, Transcript
from wyoming.audio import AudioChunk, AudioStart, AudioStop
from wyoming.client import AsyncTcpClient
from wyoming.event import Event
from wyoming.tts import Synthesize, SynthesizeVoice

from sahayak.utils import await_with_timeout, chunk_bytes

from .audio import AplaySink, playback_rate, scale_volume
from .config import MicConfig, WyomingEndpoint

LoggerLike = logging.Logger | None


def stt_language(code: str | None) -> str | None:
    """Whisper expects bare language codes ("en-US" -> "en")."""
    if not code:
        return None
    return code.split("-")[0].split("_")[0].lower() or None


async def transcribe_audio(
    audio_bytes: bytes,
    *,
    endpoint: WyomingEndpoint,
    mic: MicConfig,
    language: str | None = None,
    timeout: float | None = None,
    logger: LoggerLike = None,
) -> str | None:
    """Send PCM audio to a Wyoming STT endpoint and return the transcript text."""

    client = AsyncTcpClient(endpoint.host, endpoint.port)
    await await_with_timeout(client.connect(), timeout)
    try:
        await await_with_timeout(
            client.write_event(Transcribe(name=endpoint.model, language=stt_language(language)).event()),
            timeout,
        )
        await await_with_timeout(
            client.write_event(AudioStart(rate=mic.rate, width=mic.width, channels=mic.channels).event()),
            timeout,
        )
        for chunk in chunk_bytes(audio_bytes, mic.bytes_per_chunk):
            await await_with_timeout(
                client.write_event(
                    AudioChunk(rate=mic.rate, width=mic.width, channels=mic.channels, audio=chunk).event()
                ),
                timeout,
            )
        await await_with_timeout(client.write_event(AudioStop().event()), timeout)
        while True:
            event = await await_with_timeout(client.read_event(), timeout)
            if event is None:
                if logger:
                    logger.debug("[speech] Wyoming STT connection closed before transcript returned")
                return None
            if Transcript.is_type(event.type):
                return Transcript.from_event(event).text
    finally:
        await client.disconnect()


async def play_tts_stream(
    text: str,
    *,
    endpoint: WyomingEndpoint,
    sink: AplaySink,
    voice_name: str | None = None,
    rate: float = 1.0,
    pitch: float = 1.0,
    volume: float = 1.0,
    timeout: float | None = None,
) -> None:
    """Synthesize speech via Wyoming TTS and stream it to the sink.

    ``volume`` scales samples; ``rate * pitch`` scales the playback sample rate.
    """

    started = False
    width = 2
    try:
        async for event in _tts_event_stream(text, endpoint=endpoint, voice_name=voice_name, timeout=timeout):
            if AudioStart.is_type(event.type):
                audio_start = AudioStart.from_event(event)
                width = audio_start.width
                await sink.start(
                    playback_rate(audio_start.rate, rate, pitch),
                    audio_start.width,
                    audio_start.channels,
                )
                started = True
            elif AudioChunk.is_type(event.type):
                chunk = AudioChunk.from_event(event)
                if not started:
                    await sink.start(playback_rate(chunk.rate, rate, pitch), chunk.width, chunk.channels)
                    width = chunk.width
                    started = True
                await sink.write(scale_volume(chunk.audio, width, volume))
            elif AudioStop.is_type(event.type):
                break
    finally:
        if started:
            await sink.stop()


async def _tts_event_stream(
    text: str,
    *,
    endpoint: WyomingEndpoint,
    voice_name: str | None = None,
    timeout: float | None = None,
) -> AsyncIterator[Event]:
    client = AsyncTcpClient(endpoint.host, endpoint.port)
    await await_with_timeout(client.connect(), timeout)
    voice = SynthesizeVoice(name=voice_name) if voice_name else None
    try:
        await await_with_timeout(client.write_event(Synthesize(text=text, voice=voice).event()), timeout)
        while True:
            event = await await_with_timeout(client.read_event(), timeout)
            if event is None:
                break
            yield event
            if AudioStop.is_type(event.type):
                break
    finally:
        await client.disconnect()
