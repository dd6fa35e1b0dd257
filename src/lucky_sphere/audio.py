from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import pygame

from . import config

_log = logging.getLogger(__name__)


class AudioError(RuntimeError):
    pass


@dataclass(frozen=True)
class Waveform:
    """Mono float samples in [-1, 1] at a known sample rate."""

    samples: np.ndarray
    sample_rate: int

    @property
    def duration(self) -> float:
        return len(self.samples) / float(self.sample_rate)


# ---------------------------------------------------------------------------
# Rendering (pure, no mixer needed)
# ---------------------------------------------------------------------------

def _oscillator(phase: np.ndarray, waveform: str) -> np.ndarray:
    if waveform == "sine":
        return np.sin(phase)
    cycles = phase / (2 * np.pi)
    saw = 2 * (cycles - np.floor(cycles + 0.5))
    if waveform == "sawtooth":
        return saw
    if waveform == "triangle":
        return 2 * np.abs(saw) - 1
    raise ValueError(f"unknown waveform: {waveform!r}")


def render_tone(
    freq: float,
    duration: float,
    *,
    waveform: str = "triangle",
    volume: float = 0.2,
    sample_rate: int = config.MIXER_SAMPLE_RATE,
    freq_end: float | None = None,
    sweep: float | None = None,
    attack: float = 0.05,
    floor: float = 0.001,
) -> np.ndarray:
    """
    Render one enveloped oscillator note.

    The envelope rises linearly to `volume` over `attack` seconds then decays
    exponentially to `floor`. With `freq_end`, pitch glides exponentially from
    `freq` to `freq_end` over `sweep` seconds (default: the whole note).
    """
    n = max(1, int(sample_rate * duration))
    t = np.arange(n, dtype=np.float64) / sample_rate

    if freq_end is None:
        inst_freq = np.full(n, freq)
    else:
        glide = sweep if sweep is not None else duration
        ratio = np.clip(t / glide, 0.0, 1.0)
        inst_freq = freq * (freq_end / freq) ** ratio
    phase = 2 * np.pi * np.cumsum(inst_freq) / sample_rate

    attack = min(attack, duration)
    decay_len = max(duration - attack, 1e-9)
    decay = volume * (floor / volume) ** np.clip((t - attack) / decay_len, 0.0, 1.0)
    if attack > 0:
        envelope = np.where(t < attack, volume * t / attack, decay)
    else:
        envelope = decay
    return (_oscillator(phase, waveform) * envelope).astype(np.float32)


def render_tick(sample_rate: int = config.MIXER_SAMPLE_RATE) -> np.ndarray:
    return render_tone(
        config.TICK_FREQ_START,
        config.TICK_DURATION_SECONDS,
        waveform="triangle",
        volume=config.TICK_VOLUME,
        sample_rate=sample_rate,
        freq_end=config.TICK_FREQ_END,
        attack=0.0,
        floor=0.01,
    )


def render_fanfare(sample_rate: int = config.MIXER_SAMPLE_RATE) -> np.ndarray:
    """Ascending triad, sustained chord and a falling bass, mixed into one buffer."""
    parts: list[tuple[float, np.ndarray]] = []
    for freq, offset, duration, waveform, volume in config.FANFARE_NOTES:
        parts.append((offset, render_tone(freq, duration, waveform=waveform, volume=volume,
                                          sample_rate=sample_rate)))

    freq_from, freq_to, offset, sweep, duration, volume = config.FANFARE_BASS_SWEEP
    parts.append((offset, render_tone(freq_from, duration, waveform="sine", volume=volume,
                                      sample_rate=sample_rate, freq_end=freq_to, sweep=sweep,
                                      attack=0.0)))

    total = max(int(offset * sample_rate) + len(samples) for offset, samples in parts)
    mix = np.zeros(total, dtype=np.float32)
    for offset, samples in parts:
        start = int(offset * sample_rate)
        mix[start:start + len(samples)] += samples
    return np.clip(mix * config.FANFARE_MASTER_GAIN, -1.0, 1.0)


def resample(samples: np.ndarray, source_rate: int, target_rate: int) -> np.ndarray:
    if source_rate == target_rate or len(samples) == 0:
        return samples
    n_out = max(1, int(round(len(samples) * target_rate / source_rate)))
    src_t = np.arange(len(samples)) / source_rate
    dst_t = np.arange(n_out) / target_rate
    return np.interp(dst_t, src_t, samples).astype(np.float32)


def to_pcm16(samples: np.ndarray, channels: int = 1) -> bytes:
    pcm = (np.clip(samples, -1.0, 1.0) * 32767).astype("<i2")
    if channels > 1:
        pcm = np.repeat(pcm, channels)
    return pcm.tobytes()


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

class AudioManager:
    """
    Owns the process-wide mixer.

    The mixer is created on first use. After a failed open, playback stays
    silent until `ensure_ready` is called again at the start of a draw;
    failures are logged and reported as "not ready".
    """

    def __init__(self) -> None:
        self.enabled = False
        self.sample_rate = config.MIXER_SAMPLE_RATE
        self.channels = config.MIXER_CHANNELS
        self._tick: pygame.mixer.Sound | None = None
        self._fanfare: pygame.mixer.Sound | None = None
        self._speech_channel: pygame.mixer.Channel | None = None
        self._init_failed = False

    def ensure_ready(self) -> bool:
        """
        Open the mixer if it is not open yet.

        This is the only place that retries after a failed open; playback
        calls give up silently until the next draw calls it again.
        """
        if self.enabled and pygame.mixer.get_init():
            return True
        try:
            pygame.mixer.init(
                frequency=config.MIXER_SAMPLE_RATE,
                size=-16,
                channels=config.MIXER_CHANNELS,
                buffer=config.MIXER_BUFFER,
            )
        except pygame.error:
            if not self._init_failed:
                _log.warning("audio output unavailable", exc_info=config.LOGGING_DEBUG)
            self._init_failed = True
            self.enabled = False
            return False
        init = pygame.mixer.get_init()
        if init:
            self.sample_rate, _, self.channels = init
        self._tick = None
        self._fanfare = None
        self._init_failed = False
        self.enabled = True
        return True

    def _usable(self) -> bool:
        if self.enabled and pygame.mixer.get_init():
            return True
        if self._init_failed:
            return False
        return self.ensure_ready()

    def play_tick(self) -> None:
        if not self._usable():
            return
        try:
            if self._tick is None:
                self._tick = self._make_sound(render_tick(self.sample_rate))
            self._tick.play()
        except pygame.error:
            _log.exception("tick playback failed")

    def play_fanfare(self) -> None:
        if not self._usable():
            return
        try:
            if self._fanfare is None:
                self._fanfare = self._make_sound(render_fanfare(self.sample_rate))
            self._fanfare.play()
        except pygame.error:
            _log.exception("fanfare playback failed")

    def play_waveform(self, waveform: Waveform) -> None:
        """Play decoded speech. Raises `AudioError` so callers can fall back."""
        if not self._usable():
            raise AudioError("audio output unavailable")
        samples = resample(waveform.samples, waveform.sample_rate, self.sample_rate)
        try:
            sound = self._make_sound(samples)
            sound.set_volume(config.SPEECH_VOLUME)
            self._speech_channel = sound.play()
        except pygame.error as e:
            raise AudioError(str(e)) from e

    def stop_speech(self) -> None:
        if self.enabled and self._speech_channel is not None:
            self._speech_channel.stop()
        self._speech_channel = None

    def close(self) -> None:
        if self.enabled:
            pygame.mixer.quit()
        self.enabled = False

    def _make_sound(self, samples: np.ndarray) -> pygame.mixer.Sound:
        return pygame.mixer.Sound(buffer=to_pcm16(samples, self.channels))
