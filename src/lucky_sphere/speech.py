"""Winner announcements: remote speech generation with a local TTS fallback."""
from __future__ import annotations

import base64
import binascii
import logging
import queue
import threading
from typing import Any, Callable, Iterable, Sequence

import numpy as np
import pyttsx3
from google import genai
from google.genai import types

from . import config
from .audio import Waveform
from .names import speakable

_log = logging.getLogger(__name__)


def announcement_text(winners: Iterable[str]) -> str:
    names = config.ANNOUNCEMENT_SEPARATOR.join(speakable(n) for n in winners)
    return config.ANNOUNCEMENT_TEMPLATE.format(names=names)


def fallback_text(winners: Iterable[str]) -> str:
    names = config.FALLBACK_SEPARATOR.join(speakable(n) for n in winners)
    return config.FALLBACK_TEMPLATE.format(names=names)


# ---------------------------------------------------------------------------
# PCM decoding
# ---------------------------------------------------------------------------

def parse_pcm_rate(mime_type: str | None, default: int = config.SPEECH_SAMPLE_RATE) -> int:
    """
    Read the sample rate from a mime type like ``audio/L16;codec=pcm;rate=24000``.

    Only 16-bit linear PCM is understood; anything else raises ValueError.
    """
    if not mime_type:
        return default
    kind, *params = [p.strip() for p in mime_type.split(";")]
    if kind.lower() not in ("audio/l16", "audio/pcm"):
        raise ValueError(f"unsupported audio encoding: {mime_type}")
    rate = default
    for param in params:
        key, _, value = param.partition("=")
        if key.strip().lower() == "rate":
            rate = int(value)
    return rate


def decode_pcm16(payload: bytes | str, sample_rate: int = config.SPEECH_SAMPLE_RATE) -> Waveform:
    """
    Decode little-endian signed 16-bit mono PCM into normalized floats.

    Base64 text is unwrapped first. A trailing odd byte is dropped.
    """
    if isinstance(payload, str):
        data = base64.b64decode(payload, validate=True)
    else:
        data = bytes(payload)
    if len(data) % 2:
        data = data[:-1]
    if not data:
        raise ValueError("empty audio payload")
    samples = np.frombuffer(data, dtype="<i2").astype(np.float32) / 32768.0
    return Waveform(samples=samples, sample_rate=sample_rate)


# ---------------------------------------------------------------------------
# Remote synthesis
# ---------------------------------------------------------------------------

def _default_client(api_key: str) -> genai.Client:
    return genai.Client(
        api_key=api_key,
        http_options=types.HttpOptions(timeout=config.SPEECH_TIMEOUT_MS),
    )


def _find_audio_part(response: Any) -> Any | None:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return None
    content = candidates[0].content
    for part in (content.parts if content is not None else None) or []:
        inline = part.inline_data
        if inline is not None and inline.data:
            return inline
    return None


class AnnouncementSynthesizer:
    """
    Ask Gemini to read the winners out loud.

    Best effort: without an API key this is a no-op, and every failure is
    logged and reported as ``None`` so the caller falls back to local TTS.
    """

    def __init__(
        self,
        api_key: str | None = None,
        *,
        model: str = config.SPEECH_MODEL,
        voice: str = config.SPEECH_VOICE,
        client_factory: Callable[[str], Any] = _default_client,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.voice = voice
        self._client_factory = client_factory

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    def synthesize(self, winners: Sequence[str]) -> Waveform | None:
        if not self.api_key:
            _log.debug("no speech API key; skipping synthesis")
            return None

        request_config = types.GenerateContentConfig(
            response_modalities=["AUDIO"],
            speech_config=types.SpeechConfig(
                voice_config=types.VoiceConfig(
                    prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=self.voice),
                ),
            ),
        )
        try:
            client = self._client_factory(self.api_key)
            response = client.models.generate_content(
                model=self.model,
                contents=announcement_text(winners),
                config=request_config,
            )
        except Exception:
            # Network, auth, quota and SDK errors all mean "use the fallback".
            _log.exception("speech generation request failed")
            return None

        audio = _find_audio_part(response)
        if audio is None:
            _log.warning("speech response carried no audio data")
            return None
        try:
            rate = parse_pcm_rate(getattr(audio, "mime_type", None))
            waveform = decode_pcm16(audio.data, rate)
        except (ValueError, binascii.Error):
            _log.exception("could not decode synthesized speech")
            return None
        _log.info("synthesized announcement (%.1fs)", waveform.duration)
        return waveform


# ---------------------------------------------------------------------------
# Local fallback
# ---------------------------------------------------------------------------

def _voice_languages(voice: Any) -> list[str]:
    langs = []
    for lang in getattr(voice, "languages", None) or []:
        if isinstance(lang, bytes):
            lang = lang.decode("utf-8", errors="ignore")
        langs.append(str(lang))
    return langs


def pick_voice(voices: Iterable[Any], locales: Sequence[str], vendor: str | None = None) -> Any | None:
    """
    Prefer a voice matching both a locale and the vendor, then any locale match.

    Locales are matched as substrings of the voice's languages and id, the
    vendor as a substring of its name.
    """
    voices = list(voices)

    def matches_locale(voice: Any) -> bool:
        haystack = " ".join(_voice_languages(voice) + [str(getattr(voice, "id", ""))]).lower()
        return any(loc.lower() in haystack for loc in locales)

    if vendor:
        for voice in voices:
            if matches_locale(voice) and vendor.lower() in str(getattr(voice, "name", "")).lower():
                return voice
    for voice in voices:
        if matches_locale(voice):
            return voice
    return None


class FallbackAnnouncer:
    """
    Platform TTS with at most one utterance in flight.

    `pyttsx3` blocks while speaking, so a single worker thread owns the engine;
    `announce` only queues text and returns.
    """

    def __init__(self, engine_factory: Callable[[], Any] = pyttsx3.init) -> None:
        self._engine_factory = engine_factory
        self._engine: Any | None = None
        self._queue: queue.Queue[tuple[int, str]] = queue.Queue()
        self._lock = threading.Lock()
        self._generation = 0
        self._speaking = False
        self._stop_event = threading.Event()
        self._worker: threading.Thread | None = None
        self.enabled = True

    def announce(self, winners: Sequence[str]) -> None:
        self.cancel()
        self.speak(fallback_text(winners))

    def speak(self, text: str) -> None:
        if not self.enabled:
            return
        self._ensure_worker()
        with self._lock:
            self._queue.put((self._generation, text))

    def cancel(self) -> None:
        with self._lock:
            self._generation += 1
            while True:
                try:
                    self._queue.get_nowait()
                except queue.Empty:
                    break
            if self._speaking and self._engine is not None:
                try:
                    self._engine.stop()
                except RuntimeError:
                    _log.exception("failed to stop speech")

    def close(self) -> None:
        self._stop_event.set()
        self.cancel()
        if self._worker is not None:
            self._worker.join(timeout=2.0)
            self._worker = None

    def _ensure_worker(self) -> None:
        if self._worker is not None and self._worker.is_alive():
            return
        self._stop_event.clear()
        self._worker = threading.Thread(target=self._worker_loop, name="fallback-tts", daemon=True)
        self._worker.start()

    def _worker_loop(self) -> None:
        if self._engine is None:
            self._engine = self._create_engine()
            if self._engine is None:
                self.enabled = False
                return
        engine = self._engine

        while not self._stop_event.is_set():
            try:
                generation, text = self._queue.get(timeout=0.1)
            except queue.Empty:
                continue
            with self._lock:
                if generation != self._generation:
                    continue
                self._speaking = True
                engine.say(text)
            try:
                engine.runAndWait()
            except RuntimeError:
                _log.exception("fallback speech failed")
            finally:
                with self._lock:
                    self._speaking = False

    def _create_engine(self) -> Any | None:
        try:
            engine = self._engine_factory()
        except Exception:
            # pyttsx3 surfaces missing drivers as assorted errors.
            _log.warning("platform speech unavailable", exc_info=config.LOGGING_DEBUG)
            return None

        voice = pick_voice(
            engine.getProperty("voices") or [],
            config.FALLBACK_VOICE_LOCALES,
            config.FALLBACK_VOICE_VENDOR,
        )
        if voice is not None:
            engine.setProperty("voice", voice.id)
            _log.debug("fallback voice: %s", getattr(voice, "name", voice.id))

        rate = engine.getProperty("rate") or 200
        engine.setProperty("rate", int(rate * config.FALLBACK_RATE_SCALE))
        engine.setProperty("volume", config.FALLBACK_VOLUME)
        try:
            pitch = engine.getProperty("pitch")
        except KeyError:
            pitch = None
        if pitch:
            engine.setProperty("pitch", pitch * config.FALLBACK_PITCH_SCALE)
        return engine
