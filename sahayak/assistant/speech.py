"""
Speech capture and playback bridge

SpeechBridge adapts a speech-to-text engine and a text-to-speech engine into
four callback-style operations used by the conversation orchestrator:

- start_capture(on_result, on_error): single-shot recognition; exactly one
  callback fires per session unless the session is stopped first
- stop_capture(): cancel an in-progress capture (idempotent)
- speak(text, on_done): preempt any current utterance, then synthesize
- stop_speaking(): cancel the current utterance (idempotent)

The bridge tracks Idle/Capturing/Speaking state and emits a start
notification when an utterance begins and exactly one end notification when
it finishes, fails or is stopped. It does not keep capture and playback
apart; the orchestrator stops speech before it starts capturing.

Engines plug in by overriding ``_capture_transcript`` and ``_synthesize``.
WyomingSpeechBridge records with arecord and talks to Wyoming Whisper/Piper
servers; UnsupportedSpeechBridge is used when neither is configured.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from .audio import AplaySink, ArecordStream, compute_rms
from .config import SpeechConfig
from .errors import SpeechRuntimeError, SpeechUnsupportedError
from .wyoming import play_tts_stream, transcribe_audio

LOGGER = logging.getLogger(__name__)

RECOGNITION_UNSUPPORTED_MESSAGE = "Speech recognition not supported"

ResultCallback = Callable[[str], None]
ErrorCallback = Callable[[str], None]
DoneCallback = Callable[[], None]


class SpeechState(str, Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    SPEAKING = "speaking"


@dataclass(eq=False)
class _CaptureSession:
    on_result: ResultCallback
    on_error: ErrorCallback
    task: asyncio.Task | None = field(default=None, repr=False)


@dataclass(eq=False)
class _Utterance:
    text: str
    on_done: DoneCallback | None
    task: asyncio.Task | None = field(default=None, repr=False)


class SpeechBridge:
    """Callback-based wrapper over speech capture and synthesis engines."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or LOGGER
        self._capture: _CaptureSession | None = None
        self._utterance: _Utterance | None = None
        self._on_speech_started: Callable[[], None] | None = None
        self._on_speech_ended: Callable[[], None] | None = None
        self.language = "en-US"

    # ------------------------------------------------------------------
    # Capabilities and state
    # ------------------------------------------------------------------

    @property
    def capture_supported(self) -> bool:
        return False

    @property
    def synthesis_supported(self) -> bool:
        return False

    @property
    def is_capturing(self) -> bool:
        return self._capture is not None

    @property
    def is_speaking(self) -> bool:
        return self._utterance is not None

    @property
    def state(self) -> SpeechState:
        if self._capture is not None:
            return SpeechState.CAPTURING
        if self._utterance is not None:
            return SpeechState.SPEAKING
        return SpeechState.IDLE

    def set_language(self, language_code: str) -> None:
        self.language = language_code
        self._logger.debug("[speech] Recognition language set to %s", language_code)

    def set_speech_callbacks(
        self,
        on_started: Callable[[], None] | None,
        on_ended: Callable[[], None] | None,
    ) -> None:
        """Register the utterance start/end notifications."""
        self._on_speech_started = on_started
        self._on_speech_ended = on_ended

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------

    def start_capture(self, on_result: ResultCallback, on_error: ErrorCallback) -> None:
        if not self.capture_supported:
            self._logger.error("[speech] %s", RECOGNITION_UNSUPPORTED_MESSAGE)
            self._invoke(on_error, RECOGNITION_UNSUPPORTED_MESSAGE)
            return
        if self._capture is not None:
            self._logger.warning("[speech] Capture requested while already capturing; ignoring")
            return
        session = _CaptureSession(on_result=on_result, on_error=on_error)
        self._capture = session
        session.task = asyncio.get_running_loop().create_task(self._run_capture(session))

    def stop_capture(self) -> None:
        session = self._capture
        if session is None:
            return
        self._capture = None
        if session.task is not None:
            session.task.cancel()
        self._logger.debug("[speech] Capture stopped")

    async def _run_capture(self, session: _CaptureSession) -> None:
        try:
            transcript = await self._capture_transcript()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if self._capture is not session:
                return
            self._capture = None
            self._logger.error("[speech] Speech recognition error: %s", exc, exc_info=True)
            self._invoke(session.on_error, f"Error: {exc}")
            return
        if self._capture is not session:
            return
        self._capture = None
        transcript = (transcript or "").strip()
        if not transcript:
            self._logger.info("[speech] Speech recognition returned no transcript")
            self._invoke(session.on_error, "Error: no-speech")
            return
        self._logger.info("[speech] Recognized speech: %s", transcript)
        self._invoke(session.on_result, transcript)

    async def _capture_transcript(self) -> str | None:
        raise SpeechUnsupportedError(RECOGNITION_UNSUPPORTED_MESSAGE)

    # ------------------------------------------------------------------
    # Synthesis
    # ------------------------------------------------------------------

    def speak(self, text: str, on_done: DoneCallback | None = None) -> bool:
        self.stop_speaking()
        if not self.synthesis_supported:
            self._logger.error("[speech] Speech synthesis not supported")
            if on_done:
                self._invoke(on_done)
            return False
        utterance = _Utterance(text=text, on_done=on_done)
        self._utterance = utterance
        self._emit(self._on_speech_started)
        utterance.task = asyncio.get_running_loop().create_task(self._run_utterance(utterance))
        return True

    def stop_speaking(self) -> bool:
        utterance = self._utterance
        if utterance is None:
            return False
        self._utterance = None
        if utterance.task is not None:
            utterance.task.cancel()
        self._logger.debug("[speech] Utterance stopped")
        self._finish(utterance)
        return True

    async def _run_utterance(self, utterance: _Utterance) -> None:
        try:
            await self._synthesize(utterance.text)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._logger.error("[speech] Speech synthesis error: %s", exc, exc_info=True)
        if self._utterance is not utterance:
            return
        self._utterance = None
        self._finish(utterance)

    async def _synthesize(self, text: str) -> None:
        raise SpeechUnsupportedError("Speech synthesis not supported")

    def _finish(self, utterance: _Utterance) -> None:
        self._emit(self._on_speech_ended)
        if utterance.on_done:
            self._invoke(utterance.on_done)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _emit(self, callback: Callable[[], None] | None) -> None:
        if callback is not None:
            self._invoke(callback)

    def _invoke(self, callback: Callable[..., None], *args: object) -> None:
        try:
            callback(*args)
        except Exception:
            self._logger.exception("[speech] Speech callback failed")

    async def close(self) -> None:
        self.stop_capture()
        self.stop_speaking()


class UnsupportedSpeechBridge(SpeechBridge):
    """Bridge for hosts without speech services; capture fails and speech is skipped."""


class WyomingSpeechBridge(SpeechBridge):
    """Capture with arecord + Wyoming Whisper; speak with Wyoming Piper + a PCM player."""

    def __init__(
        self,
        config: SpeechConfig,
        *,
        mic: ArecordStream | None = None,
        sink: AplaySink | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(logger)
        self.config = config
        self.language = config.language
        self.mic = mic or ArecordStream(config.mic.command, config.mic.bytes_per_chunk, logger=self._logger)
        self.sink = sink or AplaySink(config.player, logger=self._logger)

    @property
    def capture_supported(self) -> bool:
        return self.config.stt_endpoint is not None and self.mic.available

    @property
    def synthesis_supported(self) -> bool:
        return self.config.tts_endpoint is not None and self.sink.available

    async def _capture_transcript(self) -> str | None:
        endpoint = self.config.stt_endpoint
        if endpoint is None:
            raise SpeechUnsupportedError(RECOGNITION_UNSUPPORTED_MESSAGE)
        await self.mic.start()
        try:
            audio = await self.record_phrase()
        except RuntimeError as exc:
            raise SpeechRuntimeError(str(exc)) from exc
        finally:
            await self.mic.stop()
        if not audio:
            return None
        try:
            return await transcribe_audio(
                audio,
                endpoint=endpoint,
                mic=self.config.mic,
                language=self.language,
                logger=self._logger,
            )
        except OSError as exc:
            raise SpeechRuntimeError(f"network: {exc}") from exc

    async def record_phrase(self) -> bytes | None:
        """Record one phrase, stopping after a run of quiet chunks."""
        mic_config = self.config.mic
        phrase = self.config.phrase
        chunk_ms = mic_config.chunk_ms
        min_chunks = int(max(1, (phrase.min_seconds * 1000) / chunk_ms))
        max_chunks = int(max(1, (phrase.max_seconds * 1000) / chunk_ms))
        silence_chunks = int(max(1, phrase.silence_ms / chunk_ms))
        buffer = bytearray()
        heard_speech = False
        silence_run = 0
        chunks = 0
        while chunks < max_chunks:
            chunk = await self.mic.read_chunk()
            buffer.extend(chunk)
            rms = compute_rms(chunk, mic_config.width)
            if rms >= phrase.rms_floor:
                heard_speech = True
                silence_run = 0
            elif chunks >= min_chunks:
                silence_run += 1
                if silence_run >= silence_chunks:
                    break
            chunks += 1
        if not heard_speech:
            return None
        return bytes(buffer)

    async def _synthesize(self, text: str) -> None:
        endpoint = self.config.tts_endpoint
        if endpoint is None:
            raise SpeechUnsupportedError("Speech synthesis not supported")
        try:
            await play_tts_stream(
                text,
                endpoint=endpoint,
                sink=self.sink,
                voice_name=self.config.tts_voice,
                rate=self.config.rate,
                pitch=self.config.pitch,
                volume=self.config.volume,
            )
        except asyncio.CancelledError:
            await self.sink.abort()
            raise
        except (OSError, RuntimeError) as exc:
            raise SpeechRuntimeError(str(exc)) from exc


def build_speech_bridge(config: SpeechConfig, logger: logging.Logger | None = None) -> SpeechBridge:
    if config.stt_endpoint is None and config.tts_endpoint is None:
        return UnsupportedSpeechBridge(logger)
    return WyomingSpeechBridge(config, logger=logger)
