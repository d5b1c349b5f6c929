import os
import re
import time
import wave
import base64
import random
import logging
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

import requests

from .audio import read_wav, wrap_wav_header
from .errors import SpeechBackendError
from .config import (
    TTS_ENDPOINT,
    TTS_API_KEY_ENV,
    TTS_TIMEOUT_SEC,
    TTS_CHUNK_LARGE,
    TTS_CHUNK_LEGACY,
    TTS_CHUNK_DELAY_SEC,
    TTS_AUDIO_ENCODING,
    TTS_SPEAKING_RATE,
    TTS_PITCH,
    TTS_DEFAULT_LANGUAGE,
    TTS_VOICES,
)

CHUNK_MODES = {"large": TTS_CHUNK_LARGE, "legacy": TTS_CHUNK_LEGACY}

_ZERO_WIDTH = re.compile("[\u200b\u200c\u200d\u2060\ufeff]")
_WHITESPACE = re.compile(r"\s+")


def sanitize(text: Optional[str]) -> str:
    text = _ZERO_WIDTH.sub("", text or "")
    return _WHITESPACE.sub(" ", text).strip()


def chunk(text: str, max_length: int) -> List[str]:
    """Greedily pack words into chunks of at most max_length characters.

    A single word longer than max_length becomes its own oversized chunk.
    """
    if max_length <= 0:
        raise ValueError("max_length must be positive")

    chunks: List[str] = []
    current = ""
    for word in text.split():
        if not current:
            current = word
        elif len(current) + 1 + len(word) <= max_length:
            current = f"{current} {word}"
        else:
            chunks.append(current)
            current = word
    if current:
        chunks.append(current)
    return chunks


def assemble(buffers: List[bytes], logger: Optional[logging.Logger] = None) -> Optional[bytes]:
    """Join per-chunk WAV buffers, in order, into a single WAV buffer.

    Returns None when there is nothing to play.
    """
    pcm_parts = []
    params = None
    for index, buf in enumerate(buffers):
        try:
            pcm, rate, channels, width = read_wav(buf)
        except (wave.Error, EOFError):
            if logger:
                logger.warning(f"TTS: chunk {index + 1} is not a readable WAV buffer, skipping")
            continue
        if params is None:
            params = (rate, channels, width)
        elif params != (rate, channels, width):
            if logger:
                logger.warning(f"TTS: chunk {index + 1} audio format {rate}Hz/{channels}ch differs, skipping")
            continue
        pcm_parts.append(pcm)

    if not pcm_parts:
        return None
    rate, channels, width = params
    return wrap_wav_header(b"".join(pcm_parts), rate, channels, width)


def normalize_language(lang: Optional[str]) -> str:
    if not lang:
        return TTS_DEFAULT_LANGUAGE
    if lang in TTS_VOICES:
        return lang
    prefix = lang.split("-")[0].lower()
    for code in TTS_VOICES:
        if code.lower().startswith(prefix + "-"):
            return code
    return TTS_DEFAULT_LANGUAGE


@dataclass(frozen=True)
class Voice:
    language_code: str
    name: str


def pick_voice(language_code: str, rng: random.Random) -> Voice:
    names = TTS_VOICES.get(language_code) or TTS_VOICES[TTS_DEFAULT_LANGUAGE]
    return Voice(language_code=language_code, name=rng.choice(names))


@dataclass
class SpeechJob:
    generation: int
    chunks: List[str]
    voice: Voice


class GoogleTTSBackend:
    """Google Cloud Text-to-Speech REST backend."""

    def __init__(self, api_key: Optional[str], endpoint: str = TTS_ENDPOINT, timeout: float = TTS_TIMEOUT_SEC):
        self.api_key = api_key
        self.endpoint = endpoint
        self.timeout = timeout
        self._session = requests.Session()

    @classmethod
    def from_env(cls) -> "GoogleTTSBackend":
        return cls(os.getenv(TTS_API_KEY_ENV))

    def build_request(self, text: str, voice: Voice) -> dict:
        return {
            "input": {"text": text},
            "voice": {"languageCode": voice.language_code, "name": voice.name},
            "audioConfig": {
                "audioEncoding": TTS_AUDIO_ENCODING,
                "speakingRate": TTS_SPEAKING_RATE,
                "pitch": TTS_PITCH,
            },
        }

    def synthesize(self, text: str, voice: Voice) -> bytes:
        if not self.api_key:
            raise SpeechBackendError(f"No API key configured (set {TTS_API_KEY_ENV})")

        try:
            r = self._session.post(
                self.endpoint,
                json=self.build_request(text, voice),
                params={"key": self.api_key},
                timeout=self.timeout,
            )
            r.raise_for_status()
            data = r.json()
        except (requests.RequestException, ValueError) as e:
            raise SpeechBackendError(f"Synthesis request failed: {e}") from e

        if not isinstance(data, dict):
            raise SpeechBackendError(f"Synthesis returned unexpected payload: {type(data).__name__}")
        audio_content = data.get("audioContent", "")
        if not audio_content:
            raise SpeechBackendError("Synthesis returned empty audio")
        try:
            return base64.b64decode(audio_content)
        except ValueError as e:
            raise SpeechBackendError(f"Synthesis returned invalid audio: {e}") from e


class SpeechPipeline:
    """Chunks text, synthesises chunks one at a time and plays the joined audio.

    Every speak() call stops the previous job first. Jobs carry a generation
    number; results of a job that has been superseded are discarded.
    """

    def __init__(
        self,
        backend,
        sink,
        logger: logging.Logger,
        dispatch: Optional[Callable[[Callable[[], None]], None]] = None,
        chunk_mode: str = "large",
        chunk_delay_sec: float = TTS_CHUNK_DELAY_SEC,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], None] = time.sleep,
        threaded: bool = True,
    ):
        self._backend = backend
        self._sink = sink
        self._logger = logger
        self._dispatch = dispatch or (lambda fn: fn())
        self._chunk_max = CHUNK_MODES[chunk_mode]
        self._chunk_delay_sec = chunk_delay_sec
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._threaded = threaded

        self._lock = threading.Lock()
        self._generation = 0
        self._current: Optional[SpeechJob] = None
        self._enabled = True

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def is_synthesizing(self) -> bool:
        """True from speak() until the job's audio is handed to the sink."""
        return self._current is not None

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = bool(enabled)
        if not self._enabled:
            self.stop()

    def speak(self, text: Optional[str], lang: Optional[str] = None) -> Optional[SpeechJob]:
        self.stop()
        if not self._enabled:
            self._logger.info("TTS: speech disabled, ignoring speak request")
            return None

        clean = sanitize(text)
        if not clean:
            self._logger.info("TTS: nothing to say")
            return None

        language_code = normalize_language(lang)
        with self._lock:
            self._generation += 1
            job = SpeechJob(
                generation=self._generation,
                chunks=chunk(clean, self._chunk_max),
                voice=pick_voice(language_code, self._rng),
            )
            self._current = job

        self._logger.info(
            f"TTS: job {job.generation} voice={job.voice.name} chunks={len(job.chunks)} chars={len(clean)}"
        )
        if self._threaded:
            threading.Thread(target=self._run_job, args=(job,), daemon=True).start()
        else:
            self._run_job(job)
        return job

    def stop(self) -> None:
        with self._lock:
            cancelled = self._current
            self._current = None
            if cancelled is not None:
                self._generation += 1
        if cancelled is not None:
            self._logger.info(f"TTS: job {cancelled.generation} stopped")
        self._sink.stop()

    def synthesize(self, job: SpeechJob) -> List[bytes]:
        buffers: List[bytes] = []
        total = len(job.chunks)
        for index, text in enumerate(job.chunks):
            if self._is_stale(job):
                self._logger.info(f"TTS: job {job.generation} superseded, skipping remaining chunks")
                break
            try:
                buffers.append(self._backend.synthesize(text, job.voice))
            except SpeechBackendError as e:
                self._logger.warning(f"TTS: chunk {index + 1}/{total} failed: {e}")
            if index < total - 1:
                self._sleep(self._chunk_delay_sec)
        return buffers

    def _run_job(self, job: SpeechJob) -> None:
        buffers = self.synthesize(job)
        audio = assemble(buffers, self._logger)
        self._dispatch(lambda: self._finish_job(job, audio))

    def _finish_job(self, job: SpeechJob, audio: Optional[bytes]) -> None:
        if self._is_stale(job):
            self._logger.info(f"TTS: discarding stale audio from job {job.generation}")
            return
        with self._lock:
            if self._current is job:
                self._current = None
        if audio is None:
            self._logger.info(f"TTS: job {job.generation} produced no audio")
            return
        self._sink.play(audio)
        self._logger.info(f"TTS: job {job.generation} playing ({len(audio)} bytes)")

    def _is_stale(self, job: SpeechJob) -> bool:
        with self._lock:
            return job.generation != self._generation
