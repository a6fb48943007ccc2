import copy
import os
import threading
from concurrent.futures import Executor, Future

import pytest

from reel_worker.adapters.base import (
    TextGenerator, SpeechSynthesizer, StockMediaSearch, MediaEngine, StockCandidate, ObjectStore
)
from reel_worker.adapters.memory_adapter import InMemoryJobStore, LocalObjectStore
from reel_worker.config import WorkerConfig
from reel_worker.errors import StockSearchError
from reel_worker.pipeline.publish import ArtifactPublisher
from reel_worker.processor import VideoProcessor

SCRIPT_TEXT = (
    "Stop scrolling for a second. God so loved the world that He gave His only Son. "
    "That love is not distant. It came close enough to find you today. "
    "Whoever believes will not perish but have eternal life. Share this with someone who needs hope."
)


def script_payload(**overrides):
    payload = {
        "script": SCRIPT_TEXT,
        "hook": "Stop scrolling for a second.",
        "call_to_action": "Share this with someone who needs hope.",
        "key_moments": [
            {"timestamp": 2, "text": "God so loved the world", "emphasis": True},
            {"timestamp": 12, "text": "eternal life", "emphasis": False},
        ],
        "keywords": ["sunrise", "light", "hope"],
        "estimated_duration": 30,
        "emotional_tone": "inspirational",
        "mood": "warm and hopeful",
        "color_palette": ["#FFD700", "#FF6B6B"],
        "motion": "slow",
        "_usage": {"total_tokens": 420},
    }
    payload.update(overrides)
    return payload


class FakeTextGenerator(TextGenerator):
    """Returns queued responses; an Exception instance in the queue is raised"""

    def __init__(self, responses=None, default=None):
        self.responses = list(responses or [])
        self.default = default if default is not None else script_payload()
        self.calls = []
        self.gate = None

    def complete(self, instruction_template, parameters):
        self.calls.append((instruction_template, dict(parameters)))
        if self.gate is not None:
            self.gate.wait(timeout=5)
        response = self.responses.pop(0) if self.responses else self.default
        if isinstance(response, Exception):
            raise response
        return copy.deepcopy(response)


class FakeSpeech(SpeechSynthesizer):
    def __init__(self, audio=b"ID3fake-mp3-bytes", error=None):
        self.audio = audio
        self.error = error
        self.calls = []

    def synthesize(self, text, voice_params):
        self.calls.append((text, dict(voice_params)))
        if self.error is not None:
            raise self.error
        return self.audio


class FakeStockSearch(StockMediaSearch):
    def __init__(self, candidates=None, search_error=None, download_error=None):
        self.candidates = candidates if candidates is not None else [
            StockCandidate(id="101", download_url="https://videos.example/101.mp4", duration=30,
                           tags=["sunrise", "sky"], width=1080, height=1920, source="pexels"),
        ]
        self.search_error = search_error
        self.download_error = download_error
        self.searches = []
        self.downloads = []

    def search(self, keywords, orientation):
        self.searches.append((list(keywords), orientation))
        if self.search_error is not None:
            raise self.search_error
        return list(self.candidates)

    def download(self, candidate, dest_path):
        self.downloads.append((candidate.id, dest_path))
        if self.download_error is not None:
            raise self.download_error
        with open(dest_path, "wb") as fh:
            fh.write(b"stock-video-bytes")
        return dest_path


class FakeMediaEngine(MediaEngine):
    """Writes placeholder files and reports a fixed narration length"""

    def __init__(self, duration=24.0, mux_error=None, motion_error=None):
        self.duration = duration
        self.mux_error = mux_error
        self.motion_error = motion_error
        self.motion_calls = []
        self.mux_requests = []

    def probe_duration(self, media_path):
        return self.duration

    def render_motion(self, image_path, output_path, duration, width, height, zoom_rate, fps):
        self.motion_calls.append(dict(image_path=image_path, output_path=output_path, duration=duration,
                                      width=width, height=height, zoom_rate=zoom_rate, fps=fps))
        if self.motion_error is not None:
            raise self.motion_error
        with open(output_path, "wb") as fh:
            fh.write(b"motion-video-bytes")
        return output_path

    def mux(self, request):
        self.mux_requests.append(request)
        if self.mux_error is not None:
            raise self.mux_error
        with open(request.output_path, "wb") as fh:
            fh.write(b"final-video-bytes")
        return request.output_path


class FailingObjectStore(ObjectStore):
    def put(self, data, key, content_type):
        raise OSError("bucket unavailable")


class SyncExecutor(Executor):
    """Runs submitted work inline so pipeline runs finish before submit returns"""

    def submit(self, fn, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


@pytest.fixture
def config(tmp_path):
    config = WorkerConfig()
    config.DATA_DIR = str(tmp_path)
    config.WORK_DIR = str(tmp_path / "work")
    config.LOG_DIR = str(tmp_path / "logs")
    config.OBJECT_STORE_CONFIG = {"root_dir": str(tmp_path / "published")}
    config.CAPTION_OVERLAY_FPS = 2
    config.MAX_CONCURRENT_JOBS = 2
    return config


@pytest.fixture
def job_store():
    return InMemoryJobStore()


@pytest.fixture
def object_store(tmp_path):
    store = LocalObjectStore(str(tmp_path / "published"), base_url="https://cdn.example")
    store.connect()
    return store


@pytest.fixture
def text_generator():
    return FakeTextGenerator()


@pytest.fixture
def speech():
    return FakeSpeech()


@pytest.fixture
def stock_search():
    return FakeStockSearch()


@pytest.fixture
def engine():
    return FakeMediaEngine()


@pytest.fixture
def processor(config, text_generator, speech, stock_search, engine, object_store):
    return VideoProcessor(config, text_generator, speech, stock_search, engine, ArtifactPublisher(object_store))


@pytest.fixture
def work_dir_entries(config):
    def entries():
        if not os.path.isdir(config.WORK_DIR):
            return []
        return os.listdir(config.WORK_DIR)
    return entries


@pytest.fixture
def gate():
    return threading.Event()
