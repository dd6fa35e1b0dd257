from __future__ import annotations

import logging
import random
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Iterable

from . import config
from .audio import AudioError, AudioManager, Waveform
from .motion import TickScheduler, speed_at
from .names import NamePool
from .selection import effective_count, select_winners
from .speech import AnnouncementSynthesizer, FallbackAnnouncer

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpeechJob:
    """Background synthesis for one draw, tagged with that draw's generation."""

    generation: int
    future: Future


class DrawController:
    """
    Runs a draw: IDLE -> RUNNING -> REVEALING -> IDLE.

    The host loop calls `update(now)` once per frame with a monotonic time in
    seconds. Winners are chosen in `start_draw` before anything else happens;
    speech synthesis runs on a background worker and is only looked at once,
    when the announcement is due.
    """

    def __init__(
        self,
        audio: AudioManager,
        announcer: FallbackAnnouncer,
        synthesizer: AnnouncementSynthesizer,
        *,
        pool: NamePool | None = None,
        winner_count: int = config.DEFAULT_WINNER_COUNT,
        sound_enabled: bool = True,
        celebrate: Callable[[int], None] | None = None,
        executor: Executor | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.audio = audio
        self.announcer = announcer
        self.synthesizer = synthesizer
        self.pool = pool if pool is not None else NamePool()
        self.winner_count = winner_count
        self.sound_enabled = sound_enabled
        self.celebrate = celebrate
        self.rng = rng or random.Random()
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="speech-synth")

        self.state = "IDLE"
        self.speed = config.BASE_SPEED
        self.winners: tuple[str, ...] = ()
        self.revealed_winners: tuple[str, ...] | None = None
        self.generation = 0
        self.started_at = 0.0
        self.revealed_at = 0.0
        self.speech_due_at = 0.0
        self.ticks = TickScheduler()
        self._speech_job: SpeechJob | None = None

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def set_names(self, names: Iterable[str]) -> bool:
        if self.state == "RUNNING":
            return False
        self.pool.replace(names)
        return True

    def set_winner_count(self, count: int) -> bool:
        if count < 1:
            raise ValueError(f"winner count must be positive, got {count}")
        if self.state == "RUNNING":
            return False
        self.winner_count = count
        return True

    def set_sound_enabled(self, enabled: bool) -> None:
        self.sound_enabled = enabled
        if not enabled:
            self.announcer.cancel()
            self.audio.stop_speech()

    def toggle_sound(self) -> None:
        self.set_sound_enabled(not self.sound_enabled)

    def set_api_key(self, api_key: str | None) -> None:
        self.synthesizer.api_key = api_key or None

    @property
    def effective_count(self) -> int:
        return effective_count(self.winner_count, len(self.pool))

    def progress(self, now: float) -> float:
        if self.state != "RUNNING":
            return 0.0
        return max(0.0, (now - self.started_at) / config.DRAW_DURATION_SECONDS)

    def remaining(self, now: float) -> float:
        if self.state != "RUNNING":
            return 0.0
        return max(0.0, self.started_at + config.DRAW_DURATION_SECONDS - now)

    # ------------------------------------------------------------------
    # Draw lifecycle
    # ------------------------------------------------------------------

    def start_draw(self, now: float) -> bool:
        if self.state != "IDLE":
            return False
        if self.effective_count == 0:
            return False

        if self.sound_enabled:
            self.audio.ensure_ready()

        self.winners = select_winners(self.pool.snapshot(), self.winner_count, self.rng)
        self.generation += 1
        self._speech_job = None
        self.revealed_winners = None
        if self.sound_enabled and self.synthesizer.available:
            self._submit_synthesis()

        self.started_at = now
        self.ticks.reset()
        self.speed = config.BASE_SPEED
        self.state = "RUNNING"
        _log.info("draw %d started: %d of %d", self.generation, len(self.winners), len(self.pool))
        return True

    def update(self, now: float) -> None:
        if self.state == "RUNNING":
            progress = self.progress(now)
            if progress >= 1.0:
                self._reveal(now)
                return
            now_ms = now * 1000.0
            self.speed = speed_at(progress, now_ms)
            if self.ticks.poll(self.speed, now_ms) and self.sound_enabled:
                self.audio.play_tick()
        elif self.state == "REVEALING":
            if now >= self.speech_due_at:
                self._announce()
                self.state = "IDLE"

    def dismiss(self) -> None:
        if self.state == "RUNNING":
            return
        if self.state == "REVEALING":
            # Closed before the announcement was due; skip it.
            self._speech_job = None
            self.state = "IDLE"
        self.revealed_winners = None
        self.announcer.cancel()

    def shutdown(self) -> None:
        if self.state == "RUNNING":
            _log.info("draw %d cancelled", self.generation)
        self.state = "IDLE"
        self.speed = config.BASE_SPEED
        self._speech_job = None
        # In-flight requests may finish; their results are never read.
        self._executor.shutdown(wait=False, cancel_futures=True)
        self.announcer.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _submit_synthesis(self) -> None:
        try:
            future = self._executor.submit(self.synthesizer.synthesize, self.winners)
        except RuntimeError:
            _log.warning("speech worker unavailable; announcement will use fallback")
            return
        self._speech_job = SpeechJob(generation=self.generation, future=future)

    def _reveal(self, now: float) -> None:
        self.state = "REVEALING"
        self.revealed_winners = self.winners
        self.speed = config.BASE_SPEED
        self.revealed_at = now
        self.speech_due_at = now + config.SPEECH_DELAY_SECONDS
        _log.info("draw %d revealed: %s", self.generation, ", ".join(self.winners))

        if self.sound_enabled:
            self.audio.play_fanfare()
        if self.celebrate is not None:
            try:
                self.celebrate(len(self.winners))
            except Exception:
                _log.exception("celebration effect failed")

    def _announce(self) -> None:
        if not self.sound_enabled:
            self._speech_job = None
            return
        waveform = self._take_speech()
        if waveform is not None:
            try:
                self.audio.play_waveform(waveform)
                return
            except AudioError:
                _log.exception("failed to play synthesized announcement")
        else:
            _log.info("using fallback announcement")
        self.announcer.announce(self.winners)

    def _take_speech(self) -> Waveform | None:
        job, self._speech_job = self._speech_job, None
        if job is None or job.generation != self.generation:
            return None
        future = job.future
        if not future.done():
            _log.info("speech synthesis still pending at reveal; discarding")
            future.cancel()
            return None
        if future.cancelled():
            return None
        error = future.exception()
        if error is not None:
            _log.warning("speech synthesis raised: %s", error)
            return None
        return future.result()
