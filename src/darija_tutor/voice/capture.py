"""Audio capture (microphone and file upload).

Both paths end in the same transport-safe shape: an ``AudioInput`` holding a
base64 payload and its mime type. Live capture records 16-bit PCM from the
default input device and wraps it in a WAV container.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import io
import logging
import mimetypes
import wave
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np

from darija_tutor.orchestrator.schemas import AudioInput

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 20 * 1024 * 1024
CAPTURE_MIME_TYPE = "audio/wav"
MICROPHONE_ERROR = "Could not access microphone. Please ensure permissions are granted."


class AudioValidationError(ValueError):
    """Raised when an upload is rejected; the message is shown to the user."""


class CaptureError(RuntimeError):
    """Raised when the microphone cannot be opened or read."""


@dataclass(frozen=True)
class CaptureConfig:
    sample_rate: int = 16000
    channels: int = 1
    dtype: str = "int16"
    max_upload_bytes: int = MAX_UPLOAD_BYTES


def encode_blob(blob: bytes, mime_type: str) -> AudioInput:
    """Base64-encode an audio container."""
    return AudioInput(base64_data=base64.b64encode(blob).decode("ascii"), mime_type=mime_type)


def decode_audio_input(audio: AudioInput) -> bytes:
    """Recover the container bytes of an ``AudioInput``."""
    return base64.b64decode(audio.base64_data, validate=True)


def from_data_uri(uri: str, mime_type: str | None = None) -> AudioInput:
    """
    Build an ``AudioInput`` from a data URI or a bare base64 string.

    A ``data:<mime>;base64,`` prefix is stripped; its mime type is used unless
    one is given explicitly.
    """
    data = uri.strip()
    detected = None
    if data.startswith("data:") and "," in data:
        header, data = data.split(",", 1)
        detected = header[len("data:") :].split(";", 1)[0] or None

    mime = mime_type or detected
    if not mime or not mime.startswith("audio/"):
        raise AudioValidationError("Please select a valid audio file.")
    try:
        base64.b64decode(data, validate=True)
    except binascii.Error as e:
        raise AudioValidationError("Failed to read file.") from e
    return AudioInput(base64_data=data, mime_type=mime)


def pcm_to_wav_bytes(audio: np.ndarray, sample_rate: int, channels: int) -> bytes:
    """Wrap int16 PCM frames in a WAV container."""
    if audio.ndim == 1:
        audio = audio[:, None]
    audio_i16 = audio.astype(np.int16, copy=False)

    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(2)  # int16
        wf.setframerate(sample_rate)
        wf.writeframes(audio_i16.tobytes())
    return buf.getvalue()


class AudioCapture:
    """Push-to-talk microphone capture plus file upload validation."""

    def __init__(
        self,
        config: CaptureConfig | None = None,
        stream_factory: Callable[..., Any] | None = None,
    ) -> None:
        """
        Args:
            config: Capture parameters.
            stream_factory: Builds the input stream; defaults to ``sounddevice.InputStream``.
        """
        self._config = config or CaptureConfig()
        self._stream_factory = stream_factory
        self._stream: Any = None
        self._frames: list[np.ndarray] = []

    @property
    def config(self) -> CaptureConfig:
        return self._config

    @property
    def is_recording(self) -> bool:
        return self._stream is not None

    def _require_stream_factory(self) -> Callable[..., Any]:
        if self._stream_factory is not None:
            return self._stream_factory
        try:
            import sounddevice as sd  # type: ignore
        except Exception as e:  # pragma: no cover
            raise CaptureError(
                "sounddevice is required for recording. Install with: pip install -e '.[voice]'. "
                "If you see 'PortAudio library not found', install PortAudio "
                "(Debian/Ubuntu: sudo apt-get install portaudio19-dev)."
            ) from e
        return sd.InputStream

    async def start(self) -> None:
        """Open the microphone and start buffering chunks."""
        if self._stream is not None:
            raise CaptureError("A recording is already in progress.")

        factory = self._require_stream_factory()
        self._frames = []

        def callback(indata, frames, time, status):  # noqa: ANN001
            if status:
                logger.debug(f"Input status: {status}")
            self._frames.append(indata.copy())

        stream = None
        try:
            stream = factory(
                samplerate=self._config.sample_rate,
                channels=self._config.channels,
                dtype=self._config.dtype,
                callback=callback,
            )
            await asyncio.to_thread(stream.start)
        except Exception as e:
            if stream is not None:
                await self._release(stream)
            self._frames = []
            logger.error(f"Error accessing microphone: {e}")
            raise CaptureError(MICROPHONE_ERROR) from e

        self._stream = stream
        logger.info("[AUDIO] recording started")

    async def stop(self) -> AudioInput:
        """
        Stop recording and return the encoded recording.

        The input device is released before this returns, whether or not
        encoding succeeds.
        """
        if self._stream is None:
            raise CaptureError("No recording in progress.")

        stream = self._stream
        self._stream = None
        await self._shutdown(stream)

        frames, self._frames = self._frames, []
        if frames:
            audio = np.concatenate(frames, axis=0)
        else:
            audio = np.zeros((0, self._config.channels), dtype=np.int16)

        blob = pcm_to_wav_bytes(audio, self._config.sample_rate, self._config.channels)
        logger.info(f"[AUDIO] recording stopped frames={len(audio)} bytes={len(blob)}")
        return encode_blob(blob, CAPTURE_MIME_TYPE)

    async def cancel(self) -> None:
        """Tear down an active recording without producing output."""
        stream, self._stream = self._stream, None
        self._frames = []
        if stream is None:
            return
        await self._shutdown(stream)

    async def _shutdown(self, stream: Any) -> None:
        try:
            await asyncio.to_thread(stream.stop)
        except Exception as e:
            logger.error(f"Error stopping microphone: {e}")
            raise CaptureError(MICROPHONE_ERROR) from e
        finally:
            await self._release(stream)

    async def _release(self, stream: Any) -> None:
        try:
            await asyncio.to_thread(stream.close)
        except Exception as e:
            logger.warning(f"Failed to close input stream: {e}")

    def load_file(self, path: str | Path, mime_type: str | None = None) -> AudioInput:
        """
        Validate and encode an audio file.

        Args:
            path: File to upload.
            mime_type: Explicit mime type; guessed from the file name if omitted.

        Raises:
            AudioValidationError: If the file is missing, not audio, or too large.
        """
        path = Path(path)
        mime = mime_type or mimetypes.guess_type(path.name)[0] or ""
        if not mime.startswith("audio/"):
            raise AudioValidationError("Please select a valid audio file.")
        if not path.is_file():
            raise AudioValidationError("Failed to read file.")
        if path.stat().st_size > self._config.max_upload_bytes:
            limit_mb = self._config.max_upload_bytes // (1024 * 1024)
            raise AudioValidationError(f"File is too large. Please select a file under {limit_mb}MB.")

        try:
            blob = path.read_bytes()
        except OSError as e:
            logger.error(f"Error reading file: {e}")
            raise AudioValidationError("Failed to read file.") from e
        return encode_blob(blob, mime)
