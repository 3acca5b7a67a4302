"""Local audio subsystem.

mic / file -> AudioInput -> orchestrator
gateway speech -> PCM decode -> speaker

Device access goes through sounddevice, imported only when a stream is opened.
"""

from darija_tutor.voice.capture import (
    AudioCapture,
    AudioValidationError,
    CaptureConfig,
    CaptureError,
    decode_audio_input,
    encode_blob,
    from_data_uri,
)
from darija_tutor.voice.playback import (
    OutputDevice,
    PCMPlayer,
    PlaybackConfig,
    PlaybackError,
    decode_pcm,
)
from darija_tutor.voice.pronunciation import Pronouncer, to_speakable_word

__all__ = [
    "AudioCapture",
    "AudioValidationError",
    "CaptureConfig",
    "CaptureError",
    "decode_audio_input",
    "encode_blob",
    "from_data_uri",
    "OutputDevice",
    "PCMPlayer",
    "PlaybackConfig",
    "PlaybackError",
    "decode_pcm",
    "Pronouncer",
    "to_speakable_word",
]
