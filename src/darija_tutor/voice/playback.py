"""PCM speech playback.

Synthesized speech arrives as base64 raw PCM (signed 16-bit little-endian,
24 kHz mono). It is decoded to float32 frames and written to one shared
output stream owned by an ``OutputDevice`` handle. Recorded WAV messages are
resampled to the device rate for replay.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import io
import logging
import wave
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import numpy as np

from darija_tutor.orchestrator.schemas import AudioInput

logger = logging.getLogger(__name__)


class PlaybackError(RuntimeError):
    """Raised when speech cannot be decoded or played."""


@dataclass(frozen=True)
class PlaybackConfig:
    sample_rate: int = 24000
    channels: int = 1


def decode_pcm(base64_data: str, channels: int = 1) -> np.ndarray:
    """
    Decode base64 int16 PCM into normalized float32 frames.

    Args:
        base64_data: Base64 string of raw little-endian int16 samples.
        channels: Interleaved channel count.

    Returns:
        Array of shape [frames, channels] with values in [-1.0, 1.0).

    Raises:
        PlaybackError: If the payload is not valid base64 16-bit PCM.
    """
    try:
        raw = base64.b64decode(base64_data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise PlaybackError("Audio payload is not valid base64") from e

    frame_bytes = 2 * channels
    if len(raw) % frame_bytes:
        raise PlaybackError(
            f"PCM payload of {len(raw)} bytes is not a whole number of {channels}-channel 16-bit frames"
        )

    samples = np.frombuffer(raw, dtype="<i2")
    return (samples.astype(np.float32) / 32768.0).reshape(-1, channels)


WAV_MIME_TYPES = frozenset({"audio/wav", "audio/x-wav", "audio/wave", "audio/vnd.wave"})


def decode_wav(base64_data: str) -> tuple[np.ndarray, int]:
    """
    Decode a base64 16-bit WAV recording.

    Returns:
        Float32 frames of shape [frames, channels] and the sample rate.

    Raises:
        PlaybackError: If the payload is not a 16-bit PCM WAV file.
    """
    try:
        blob = base64.b64decode(base64_data, validate=True)
        with wave.open(io.BytesIO(blob), "rb") as wf:
            channels = wf.getnchannels()
            sample_rate = wf.getframerate()
            sample_width = wf.getsampwidth()
            raw = wf.readframes(wf.getnframes())
    except (binascii.Error, ValueError, EOFError, wave.Error) as e:
        raise PlaybackError("Recording is not a readable WAV file") from e

    if sample_width != 2:
        raise PlaybackError(f"Unsupported WAV sample width: {sample_width * 8} bits")
    samples = np.frombuffer(raw, dtype="<i2")
    return (samples.astype(np.float32) / 32768.0).reshape(-1, channels), sample_rate


def fit_frames(frames: np.ndarray, src_rate: int, config: PlaybackConfig) -> np.ndarray:
    """Linearly resample frames and match the device channel count."""
    if frames.shape[1] != config.channels:
        mono = frames.mean(axis=1, keepdims=True)
        frames = np.repeat(mono, config.channels, axis=1)
    if src_rate == config.sample_rate or len(frames) == 0:
        return frames.astype(np.float32)

    n_out = max(1, round(len(frames) * config.sample_rate / src_rate))
    src_t = np.arange(len(frames)) / src_rate
    dst_t = np.arange(n_out) / config.sample_rate
    out = np.stack([np.interp(dst_t, src_t, frames[:, c]) for c in range(frames.shape[1])], axis=1)
    return out.astype(np.float32)


class OutputDevice:
    """
    Process-wide output stream handle.

    The stream is opened on first use and kept for the life of the process.
    A stream found stopped (e.g. after a device hiccup) is started again
    rather than replaced.
    """

    def __init__(
        self,
        config: PlaybackConfig | None = None,
        stream_factory: Callable[..., Any] | None = None,
    ) -> None:
        self._config = config or PlaybackConfig()
        self._stream_factory = stream_factory
        self._stream: Any = None

    @property
    def config(self) -> PlaybackConfig:
        return self._config

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    def _require_stream_factory(self) -> Callable[..., Any]:
        if self._stream_factory is not None:
            return self._stream_factory
        try:
            import sounddevice as sd  # type: ignore
        except Exception as e:  # pragma: no cover
            raise PlaybackError(
                "sounddevice is required for playback. Install with: pip install -e '.[voice]'."
            ) from e
        return sd.OutputStream

    def acquire(self) -> Any:
        """Get the running output stream, opening or resuming it as needed."""
        try:
            if self._stream is None:
                factory = self._require_stream_factory()
                self._stream = factory(
                    samplerate=self._config.sample_rate,
                    channels=self._config.channels,
                    dtype="float32",
                )
                logger.info(
                    "[AUDIO] output stream opened sr=%d channels=%d",
                    self._config.sample_rate,
                    self._config.channels,
                )
            if not self._stream.active:
                self._stream.start()
        except PlaybackError:
            raise
        except Exception as e:
            raise PlaybackError(f"Audio output device unavailable: {e}") from e
        return self._stream

    def close(self) -> None:
        """Close the stream at process shutdown."""
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.close()


class PCMPlayer:
    """Plays synthesized speech and recorded messages through an ``OutputDevice``."""

    def __init__(self, device: OutputDevice) -> None:
        self._device = device

    @property
    def device(self) -> OutputDevice:
        return self._device

    async def play(self, base64_data: str) -> None:
        """
        Decode and play speech; returns once playback has finished.

        Raises:
            PlaybackError: On decode or device failure. Nothing is retried.
        """
        config = self._device.config
        frames = decode_pcm(base64_data, channels=config.channels)
        await self._write(frames)

    async def play_recording(self, audio: AudioInput) -> None:
        """
        Replay a recorded WAV message at the device rate.

        Raises:
            PlaybackError: If the recording is not WAV or the device fails.
        """
        if audio.mime_type not in WAV_MIME_TYPES:
            raise PlaybackError(f"Cannot replay {audio.mime_type} recordings; only WAV is supported.")
        frames, sample_rate = decode_wav(audio.base64_data)
        await self._write(fit_frames(frames, sample_rate, self._device.config))

    async def _write(self, frames: np.ndarray) -> None:
        config = self._device.config
        stream = self._device.acquire()

        duration_s = len(frames) / config.sample_rate
        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            await asyncio.to_thread(stream.write, frames)
        except Exception as e:
            raise PlaybackError(f"Audio playback failed: {e}") from e

        # write() returns once frames are queued; wait out the remainder.
        remaining = duration_s - (loop.time() - started) + float(getattr(stream, "latency", 0.0) or 0.0)
        if remaining > 0:
            await asyncio.sleep(remaining)
        logger.debug(f"[AUDIO] played {len(frames)} frames ({duration_s:.2f}s)")
