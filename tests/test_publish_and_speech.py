import os

import pytest

from reel_worker.adapters.memory_adapter import LocalObjectStore
from reel_worker.errors import PublishFailed, SpeechSynthesisFailed
from reel_worker.pipeline.publish import ArtifactPublisher
from reel_worker.pipeline.script import KeyMoment
from reel_worker.pipeline.speech import add_pacing, synthesize_narration
from reel_worker.pipeline.workspace import WorkArea

from conftest import FailingObjectStore, FakeMediaEngine, FakeSpeech

VOICE = {"model": "tts-1-hd", "voice": "nova", "speed": 0.95, "format": "mp3"}


def test_publish_uploads_under_job_key(tmp_path, object_store):
    source = tmp_path / "final.mp4"
    source.write_bytes(b"video")

    url = ArtifactPublisher(object_store).publish("job-1", str(source))

    assert url == "https://cdn.example/job-1/final.mp4"
    with open(object_store.path_for("job-1/final.mp4"), "rb") as fh:
        assert fh.read() == b"video"


def test_publish_with_prefix_and_name(tmp_path):
    store = LocalObjectStore(str(tmp_path / "store"))
    store.connect()
    source = tmp_path / "narration.mp3"
    source.write_bytes(b"audio")

    url = ArtifactPublisher(store, key_prefix="/reels/").publish("job-1", str(source), "audio.mp3")

    assert url.startswith("file://")
    assert url.endswith("/store/reels/job-1/audio.mp3")


def test_publish_failures_are_wrapped(tmp_path):
    source = tmp_path / "final.mp4"
    source.write_bytes(b"video")

    with pytest.raises(PublishFailed, match="bucket unavailable"):
        ArtifactPublisher(FailingObjectStore()).publish("job-1", str(source))
    with pytest.raises(PublishFailed):
        ArtifactPublisher(FailingObjectStore()).publish("job-1", str(tmp_path / "missing.mp4"))


def test_local_store_rejects_escaping_keys(object_store):
    with pytest.raises(ValueError):
        object_store.put(b"x", "../outside.mp4", "video/mp4")


def test_pacing_only_before_first_emphasized_occurrence():
    moments = [
        KeyMoment(timestamp=1, text="you are loved", emphasis=True),
        KeyMoment(timestamp=2, text="not in the text", emphasis=True),
        KeyMoment(timestamp=3, text="today", emphasis=False),
    ]
    paced = add_pacing("Hear this: you are loved. Yes, you are loved today.", moments)
    assert paced == "Hear this: ... you are loved. Yes, you are loved today."


def test_narration_duration_comes_from_probe(tmp_path):
    with WorkArea(str(tmp_path), "job-1") as work_area:
        result = synthesize_narration(FakeSpeech(), FakeMediaEngine(duration=31.5), "Hello there.", work_area, VOICE)
        assert os.path.basename(result.path) == "narration.mp3"
        assert result.size_bytes > 0

    assert result.duration == 31.5


@pytest.mark.parametrize("speech,engine", [
    (FakeSpeech(error=ConnectionError("reset")), FakeMediaEngine()),
    (FakeSpeech(audio=b""), FakeMediaEngine()),
    (FakeSpeech(), FakeMediaEngine(duration=0.0)),
])
def test_narration_failures(tmp_path, speech, engine):
    with WorkArea(str(tmp_path), "job-1") as work_area:
        with pytest.raises(SpeechSynthesisFailed) as exc_info:
            synthesize_narration(speech, engine, "Hello there.", work_area, VOICE)
    assert exc_info.value.kind == "SpeechSynthesisFailed"
