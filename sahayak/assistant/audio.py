"""Audio capture/playback helpers and PCM utilities for speech."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
import os
import shutil
import sys
from array import array
from asyncio.subprocess import Process

LOGGER = logging.getLogger(__name__)

_TYPECODES = {1: "b", 2: "h", 4: "i"}


class ArecordStream:
    """Capture PCM audio by shelling out to ``arecord`` (ALSA)."""

    def __init__(
        self,
        command: list[str],
        bytes_per_chunk: int,
        logger: logging.Logger | None = None,
    ) -> None:
        self.command = command
        self.bytes_per_chunk = bytes_per_chunk
        self._proc: Process | None = None
        self._logger = logger or LOGGER

    @property
    def available(self) -> bool:
        return bool(self.command) and _supported_binary(self.command[0])

    async def start(self) -> None:
        if self._proc:
            return
        self._logger.debug("[audio] Starting microphone capture: %s", " ".join(self.command))
        self._proc = await asyncio.create_subprocess_exec(
            *self.command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

    async def read_chunk(self) -> bytes:
        if not self._proc or not self._proc.stdout:
            raise RuntimeError("Microphone stream is not running")
        try:
            return await self._proc.stdout.readexactly(self.bytes_per_chunk)
        except asyncio.IncompleteReadError as exc:
            message = "Microphone stream ended unexpectedly"
            stderr = await _read_stderr(self._proc)
            if stderr:
                message = f"{message} ({stderr})"
            raise RuntimeError(message) from exc

    async def stop(self) -> None:
        if not self._proc:
            return
        proc = self._proc
        self._proc = None
        self._logger.debug("[audio] Stopping microphone capture")
        if proc.returncode is None:
            proc.terminate()
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(proc.wait(), timeout=2)


class AplaySink:
    """Play PCM audio via ``pw-play``/``paplay``/``aplay``."""

    def __init__(self, binary: str | None = None, logger: logging.Logger | None = None) -> None:
        self.binary = binary or "auto"
        self._proc: Process | None = None
        self._logger = logger or LOGGER

    @property
    def available(self) -> bool:
        return any(_supported_binary(candidate) for candidate in self._candidates())

    async def start(self, rate: int, width: int, channels: int) -> None:
        await self.stop()
        player = self._resolve_player()
        cmd = build_player_command(player, rate, width, channels)
        self._logger.debug("[audio] Starting playback (%s): %s", player, " ".join(cmd))
        self._proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )

    async def write(self, chunk: bytes) -> None:
        if not self._proc or not self._proc.stdin:
            raise RuntimeError("Playback is not active")
        try:
            self._proc.stdin.write(chunk)
            await self._proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            stderr = await _read_stderr(self._proc)
            await self.stop()
            detail = f" ({stderr})" if stderr else ""
            raise RuntimeError(f"Playback process exited unexpectedly{detail}") from exc

    async def stop(self) -> None:
        if not self._proc:
            return
        proc = self._proc
        self._proc = None
        self._logger.debug("[audio] Stopping playback")
        if proc.stdin:
            proc.stdin.close()
            with contextlib.suppress(BrokenPipeError, ConnectionResetError):
                await proc.stdin.wait_closed()
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(proc.wait(), timeout=2)

    async def abort(self) -> None:
        """Kill playback immediately (used when an utterance is interrupted)."""
        if not self._proc:
            return
        proc = self._proc
        self._proc = None
        if proc.returncode is None:
            proc.kill()
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(proc.wait(), timeout=2)

    def _candidates(self) -> list[str]:
        if self.binary != "auto":
            return [self.binary]
        return ["pw-play", "paplay", "aplay"]

    def _resolve_player(self) -> str:
        if self.binary != "auto":
            if _supported_binary(self.binary):
                return self.binary
            self._logger.warning("[audio] Requested audio player '%s' not found; auto-detecting", self.binary)
        for candidate in ("pw-play", "paplay", "aplay"):
            if _supported_binary(candidate):
                return candidate
        return "aplay"


def build_player_command(player: str, rate: int, width: int, channels: int) -> list[str]:
    name = os.path.basename(player)
    if name == "pw-play" and width in (1, 2, 4):
        fmt = {1: "s8", 2: "s16", 4: "s32"}[width]
        return [player, "--raw", "--rate", str(rate), "--channels", str(channels), "--format", fmt, "-"]
    if name == "paplay":
        fmt = {1: "s8", 2: "s16le", 3: "s24le", 4: "s32le"}.get(width, "s16le")
        return [player, "--raw", "--rate", str(rate), "--channels", str(channels), f"--format={fmt}", "-"]
    fmt = {1: "U8", 2: "S16_LE", 3: "S24_LE", 4: "S32_LE"}.get(width, "S16_LE")
    aplay = player if name == "aplay" else "aplay"
    return [aplay, "-q", "-t", "raw", "-f", fmt, "-c", str(channels), "-r", str(rate), "-"]


def compute_rms(chunk: bytes, sample_width: int) -> int:
    """Compute RMS (Root Mean Square) for an audio chunk."""
    samples = _samples(chunk, sample_width)
    if samples is None or not len(samples):
        return 0
    total = math.fsum(value * value for value in samples)
    return int(math.sqrt(total / len(samples)))


def scale_volume(chunk: bytes, sample_width: int, volume: float) -> bytes:
    """Scale PCM samples by ``volume`` (0.0-1.0); unsupported widths pass through."""
    if volume >= 1.0:
        return chunk
    samples = _samples(chunk, sample_width)
    if samples is None:
        return chunk
    factor = max(0.0, volume)
    scaled = array(samples.typecode, (int(value * factor) for value in samples))
    if sample_width > 1 and sys.byteorder != "little":
        scaled.byteswap()
    return scaled.tobytes()


def playback_rate(source_rate: int, rate: float, pitch: float) -> int:
    """Sample rate to play synthesized audio at so it sounds ``rate * pitch`` as fast."""
    factor = rate * pitch
    if factor <= 0:
        return source_rate
    return max(1, int(round(source_rate * factor)))


def _samples(chunk: bytes, sample_width: int) -> array | None:
    typecode = _TYPECODES.get(sample_width)
    if not chunk or typecode is None:
        return None
    frames = len(chunk) // sample_width
    samples = array(typecode)
    samples.frombytes(chunk[: frames * sample_width])
    if sample_width > 1 and sys.byteorder != "little":
        samples.byteswap()
    return samples


def _supported_binary(binary: str) -> bool:
    if os.path.isabs(binary):
        return os.access(binary, os.X_OK)
    return shutil.which(binary) is not None


async def _read_stderr(proc: Process) -> str:
    if not proc.stderr:
        return ""
    try:
        data = await asyncio.wait_for(proc.stderr.read(), timeout=0.05)
    except (asyncio.TimeoutError, RuntimeError):
        return ""
    return data.decode("utf-8", errors="ignore").strip()
