from __future__ import annotations

import base64
import struct
import threading
import time
from types import SimpleNamespace

import numpy as np
import pytest

from lucky_sphere import config
from lucky_sphere.speech import (
    AnnouncementSynthesizer,
    FallbackAnnouncer,
    announcement_text,
    decode_pcm16,
    fallback_text,
    parse_pcm_rate,
    pick_voice,
)

PCM = struct.pack("<3h", 0, 16384, -32768)


def _response(data, mime_type="audio/L16;codec=pcm;rate=24000"):
    part = SimpleNamespace(text=None, inline_data=SimpleNamespace(data=data, mime_type=mime_type))
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))])


class FakeModels:
    def __init__(self, response=None, error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.requests: list[dict] = []

    def generate_content(self, **kwargs):
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.response


def _synth(models: FakeModels, api_key: str | None = "secret") -> tuple[AnnouncementSynthesizer, list[str]]:
    keys: list[str] = []

    def factory(key: str):
        keys.append(key)
        return SimpleNamespace(models=models)

    return AnnouncementSynthesizer(api_key, client_factory=factory), keys


# ---------------------------------------------------------------------------
# Phrases
# ---------------------------------------------------------------------------

def test_announcement_text_normalizes_names():
    text = announcement_text(["Ann_Chen", "李小龍"])
    assert "Ann Chen, 李小龍" in text
    assert "_" not in text


def test_fallback_text_uses_its_own_separator():
    text = fallback_text(["Ann_Chen", "Bob", "Cara"])
    assert text == config.FALLBACK_TEMPLATE.format(names="Ann Chen，還有，Bob，還有，Cara")


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

def test_decode_pcm16_normalizes_samples():
    waveform = decode_pcm16(PCM)
    assert waveform.sample_rate == 24000
    assert waveform.samples.dtype == np.float32
    np.testing.assert_allclose(waveform.samples, [0.0, 0.5, -1.0])


def test_decode_pcm16_drops_trailing_odd_byte():
    waveform = decode_pcm16(PCM + b"\x7f")
    assert len(waveform.samples) == 3


def test_decode_pcm16_unwraps_base64():
    waveform = decode_pcm16(base64.b64encode(PCM).decode("ascii"))
    np.testing.assert_allclose(waveform.samples, [0.0, 0.5, -1.0])


def test_decode_pcm16_rejects_empty():
    with pytest.raises(ValueError):
        decode_pcm16(b"\x01")


def test_parse_pcm_rate():
    assert parse_pcm_rate("audio/L16;codec=pcm;rate=24000") == 24000
    assert parse_pcm_rate("audio/pcm; rate=16000") == 16000
    assert parse_pcm_rate(None) == config.SPEECH_SAMPLE_RATE
    with pytest.raises(ValueError):
        parse_pcm_rate("audio/mpeg")


# ---------------------------------------------------------------------------
# Remote synthesis
# ---------------------------------------------------------------------------

def test_synthesize_requests_audio_and_decodes():
    models = FakeModels(response=_response(PCM))
    synth, keys = _synth(models)

    waveform = synth.synthesize(["Ann_Chen"])

    assert keys == ["secret"]
    np.testing.assert_allclose(waveform.samples, [0.0, 0.5, -1.0])
    request = models.requests[0]
    assert request["model"] == config.SPEECH_MODEL
    assert request["contents"] == announcement_text(["Ann_Chen"])
    assert request["config"].response_modalities == ["AUDIO"]
    voice = request["config"].speech_config.voice_config.prebuilt_voice_config.voice_name
    assert voice == config.SPEECH_VOICE


def test_synthesize_without_key_is_noop():
    models = FakeModels(response=_response(PCM))
    synth, keys = _synth(models, api_key=None)

    assert not synth.available
    assert synth.synthesize(["Ann"]) is None
    assert keys == []
    assert models.requests == []


def test_synthesize_swallows_request_errors():
    synth, _ = _synth(FakeModels(error=ConnectionError("offline")))
    assert synth.synthesize(["Ann"]) is None


@pytest.mark.parametrize(
    "response",
    [
        SimpleNamespace(candidates=None),
        SimpleNamespace(candidates=[]),
        SimpleNamespace(candidates=[SimpleNamespace(content=None)]),
        SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=[
            SimpleNamespace(text="hello", inline_data=None),
        ]))]),
        _response(b""),
    ],
)
def test_synthesize_without_audio_returns_none(response):
    synth, _ = _synth(FakeModels(response=response))
    assert synth.synthesize(["Ann"]) is None


def test_synthesize_rejects_unsupported_encoding():
    synth, _ = _synth(FakeModels(response=_response(PCM, mime_type="audio/mpeg")))
    assert synth.synthesize(["Ann"]) is None


def test_synthesize_rejects_bad_base64():
    synth, _ = _synth(FakeModels(response=_response("not base64 !!")))
    assert synth.synthesize(["Ann"]) is None


# ---------------------------------------------------------------------------
# Fallback
# ---------------------------------------------------------------------------

def _voice(id_, name, languages=()):
    return SimpleNamespace(id=id_, name=name, languages=list(languages))


VOICES = [
    _voice("en-us", "English", ["en-US"]),
    _voice("cmn", "Mandarin", [b"\x05zh-CN"]),
    _voice("google-tw", "Google 國語（臺灣）", ["zh-TW"]),
]


def test_pick_voice_prefers_vendor_and_locale():
    assert pick_voice(VOICES, ("zh-TW", "zh-CN"), "Google").id == "google-tw"


def test_pick_voice_falls_back_to_locale():
    assert pick_voice(VOICES[:2], ("zh-TW", "zh-CN"), "Google").id == "cmn"


def test_pick_voice_none_when_no_locale():
    assert pick_voice(VOICES[:1], ("zh-TW",), "Google") is None


class FakeEngine:
    def __init__(self, voices=VOICES) -> None:
        self.props = {"voices": voices, "rate": 200, "volume": 0.5}
        self.said: list[str] = []
        self.spoken = threading.Event()
        self.stopped = 0

    def getProperty(self, name):
        return self.props[name]

    def setProperty(self, name, value):
        self.props[name] = value

    def say(self, text):
        self.said.append(text)

    def runAndWait(self):
        self.spoken.set()

    def stop(self):
        self.stopped += 1


def test_fallback_announcer_speaks_on_worker():
    engine = FakeEngine()
    announcer = FallbackAnnouncer(engine_factory=lambda: engine)

    announcer.announce(["Ann_Chen", "Bob"])

    assert engine.spoken.wait(2.0)
    announcer.close()
    assert engine.said == [fallback_text(["Ann_Chen", "Bob"])]
    assert engine.props["voice"] == "google-tw"
    assert engine.props["rate"] == int(200 * config.FALLBACK_RATE_SCALE)
    assert engine.props["volume"] == config.FALLBACK_VOLUME
    assert "pitch" not in engine.props


def test_fallback_announcer_applies_pitch_when_supported():
    engine = FakeEngine()
    engine.props["pitch"] = 50
    announcer = FallbackAnnouncer(engine_factory=lambda: engine)

    announcer.speak("hi")

    assert engine.spoken.wait(2.0)
    announcer.close()
    assert engine.props["pitch"] == pytest.approx(50 * config.FALLBACK_PITCH_SCALE)


def test_fallback_announcer_disables_itself_without_engine():
    def broken():
        raise RuntimeError("no driver")

    announcer = FallbackAnnouncer(engine_factory=broken)
    announcer.speak("hello")
    announcer._worker.join(2.0)

    assert not announcer.enabled
    announcer.speak("again")
    announcer.close()


def test_cancel_drops_queued_text():
    engine = FakeEngine()
    announcer = FallbackAnnouncer(engine_factory=lambda: engine)
    announcer.enabled = True
    # Queue without a worker, then cancel before anything runs.
    with announcer._lock:
        announcer._queue.put((announcer._generation, "stale"))
    announcer.cancel()

    assert announcer._queue.empty()
    assert engine.said == []


class BlockingEngine(FakeEngine):
    """Keeps `runAndWait` busy until `stop` is called, like a long utterance."""

    def __init__(self) -> None:
        super().__init__()
        self.talking = threading.Event()
        self.released = threading.Event()

    def runAndWait(self):
        self.talking.set()
        self.released.wait(2.0)

    def stop(self):
        super().stop()
        self.released.set()


def test_new_announcement_interrupts_current_one():
    engine = BlockingEngine()
    announcer = FallbackAnnouncer(engine_factory=lambda: engine)

    announcer.speak("first")
    assert engine.talking.wait(2.0)
    announcer.speak("stale")
    announcer.announce(["Bob"])

    deadline = time.monotonic() + 2.0
    while len(engine.said) < 2 and time.monotonic() < deadline:
        time.sleep(0.01)
    announcer.close()

    assert engine.stopped >= 1
    assert engine.said == ["first", fallback_text(["Bob"])]
