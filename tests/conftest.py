from __future__ import annotations

import random
from concurrent.futures import Future

import numpy as np
import pytest

from lucky_sphere.audio import AudioError, Waveform
from lucky_sphere.draw import DrawController
from lucky_sphere.names import NamePool


class FakeAudio:
    def __init__(self) -> None:
        self.calls: list = []
        self.fail_waveform = False

    def ensure_ready(self) -> bool:
        self.calls.append("ensure_ready")
        return True

    def play_tick(self) -> None:
        self.calls.append("tick")

    def play_fanfare(self) -> None:
        self.calls.append("fanfare")

    def play_waveform(self, waveform: Waveform) -> None:
        self.calls.append(("waveform", waveform))
        if self.fail_waveform:
            raise AudioError("device lost")

    def stop_speech(self) -> None:
        self.calls.append("stop_speech")

    def count(self, name: str) -> int:
        return sum(1 for c in self.calls if c == name)

    def waveforms(self) -> list[Waveform]:
        return [c[1] for c in self.calls if isinstance(c, tuple) and c[0] == "waveform"]


class FakeAnnouncer:
    def __init__(self) -> None:
        self.announced: list[tuple[str, ...]] = []
        self.cancelled = 0
        self.closed = False

    def announce(self, winners) -> None:
        self.announced.append(tuple(winners))

    def cancel(self) -> None:
        self.cancelled += 1

    def close(self) -> None:
        self.closed = True


class FakeSynthesizer:
    def __init__(self, api_key: str | None = "key", result: Waveform | None = None, error: Exception | None = None) -> None:
        self.api_key = api_key
        self.result = result
        self.error = error
        self.requests: list[tuple[str, ...]] = []

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    def synthesize(self, winners):
        self.requests.append(tuple(winners))
        if self.error is not None:
            raise self.error
        return self.result


class ManualExecutor:
    """Holds submitted work until the test finishes it, like a busy worker thread."""

    def __init__(self) -> None:
        self.jobs: list[tuple[Future, object, tuple]] = []
        self.shutdown_called = False

    def submit(self, fn, *args):
        if self.shutdown_called:
            raise RuntimeError("cannot schedule new futures after shutdown")
        future: Future = Future()
        future.set_running_or_notify_cancel()
        self.jobs.append((future, fn, args))
        return future

    def finish(self, index: int = -1) -> None:
        future, fn, args = self.jobs[index]
        try:
            future.set_result(fn(*args))
        except Exception as e:
            future.set_exception(e)

    def shutdown(self, wait: bool = True, *, cancel_futures: bool = False) -> None:
        self.shutdown_called = True


class ImmediateExecutor(ManualExecutor):
    def submit(self, fn, *args):
        future = super().submit(fn, *args)
        self.finish()
        return future


def make_waveform(n: int = 2400) -> Waveform:
    return Waveform(samples=np.zeros(n, dtype=np.float32), sample_rate=24000)


def names(count: int) -> list[str]:
    return [f"Person_{i:02d}" for i in range(count)]


@pytest.fixture
def audio() -> FakeAudio:
    return FakeAudio()


@pytest.fixture
def announcer() -> FakeAnnouncer:
    return FakeAnnouncer()


@pytest.fixture
def make_controller(audio, announcer):
    def _make(
        pool: list[str] | None = None,
        winner_count: int = 1,
        synthesizer: FakeSynthesizer | None = None,
        executor: ManualExecutor | None = None,
        sound_enabled: bool = True,
        celebrate=None,
    ) -> DrawController:
        return DrawController(
            audio=audio,
            announcer=announcer,
            synthesizer=synthesizer or FakeSynthesizer(api_key=None),
            pool=NamePool(pool if pool is not None else names(5)),
            winner_count=winner_count,
            sound_enabled=sound_enabled,
            celebrate=celebrate,
            executor=executor or ManualExecutor(),
            rng=random.Random(7),
        )

    return _make
