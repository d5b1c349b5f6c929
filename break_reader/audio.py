import io
import math
import wave
import struct
import threading
import logging
from typing import Optional, Tuple

import numpy as np

from .config import CHIME_NOTES_HZ, CHIME_NOTE_SEC, CHIME_VOLUME, SAMPLE_RATE


def wrap_wav_header(pcm_data: bytes, sample_rate: int, channels: int = 1, sample_width: int = 2) -> bytes:
    data_size = len(pcm_data)
    riff_size = 36 + data_size
    header = struct.pack(
        "<4sI4s4sIHHIIHH4sI",
        b"RIFF",
        riff_size,
        b"WAVE",
        b"fmt ",
        16,
        1,
        channels,
        sample_rate,
        sample_rate * channels * sample_width,
        channels * sample_width,
        sample_width * 8,
        b"data",
        data_size,
    )
    return header + pcm_data


def read_wav(wav_bytes: bytes) -> Tuple[bytes, int, int, int]:
    """Return (pcm frames, sample rate, channels, sample width) of a WAV buffer."""
    with wave.open(io.BytesIO(wav_bytes), "rb") as w:
        return w.readframes(w.getnframes()), w.getframerate(), w.getnchannels(), w.getsampwidth()


def chime_wav_bytes(sample_rate: int = SAMPLE_RATE) -> bytes:
    n_samples = int(sample_rate * CHIME_NOTE_SEC)
    max_amp = int(32767 * CHIME_VOLUME)

    all_frames = bytearray()
    for freq in CHIME_NOTES_HZ:
        for i in range(n_samples):
            t = i / sample_rate
            envelope = 1.0 - (i / n_samples)
            sample_val = int(max_amp * envelope * math.sin(2.0 * math.pi * freq * t))
            all_frames += struct.pack("<h", sample_val)

    return wrap_wav_header(bytes(all_frames), sample_rate)


class SoundDevicePlayer:
    """Plays 16-bit WAV buffers through the default output device."""

    def __init__(self, logger: logging.Logger):
        self._logger = logger
        self._lock = threading.Lock()
        self._playing = False

    @property
    def is_playing(self) -> bool:
        return self._playing

    def play(self, wav_bytes: Optional[bytes]) -> None:
        if not wav_bytes:
            return
        pcm, rate, channels, width = read_wav(wav_bytes)
        if width != 2:
            self._logger.warning(f"Unsupported sample width {width}, skipping playback")
            return
        samples = np.frombuffer(pcm, dtype=np.int16)
        if channels > 1:
            samples = samples.reshape((-1, channels))

        try:
            import sounddevice as sd
        except OSError:
            self._logger.warning("Audio output unavailable (PortAudio not found)", exc_info=True)
            return

        with self._lock:
            try:
                sd.stop()
                sd.play(samples, samplerate=rate)
            except sd.PortAudioError:
                self._logger.warning("Audio playback failed", exc_info=True)
                return
            self._playing = True

    def stop(self) -> None:
        with self._lock:
            if not self._playing:
                return
            import sounddevice as sd

            sd.stop()
            self._playing = False
