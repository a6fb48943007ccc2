import os

import pytest
from PIL import Image

from reel_worker.adapters.base import StockCandidate
from reel_worker.errors import BackgroundAcquisitionFailed, JobCancelled, MediaEngineError, StockSearchError
from reel_worker.models import BackgroundMode, STYLE_PROFILES, StyleProfile, VideoStyle
from reel_worker.pipeline.background import (
    VisualHints, ZOOM_RATES, acquire_background, decoration_kind, render_gradient_frame, score_candidate,
    select_candidate
)
from reel_worker.pipeline.workspace import WorkArea

from conftest import FakeMediaEngine, FakeStockSearch

PROFILE = STYLE_PROFILES[VideoStyle.TIKTOK]
SMALL = StyleProfile(90, 160, "portrait", "test")
HINTS = VisualHints(palette=["#FFD700", "#FF6B6B"], mood="warm inspirational", motion="slow")


def candidate(id, duration=30, tags=(), width=1080, height=1920):
    return StockCandidate(id=id, download_url=f"https://videos.example/{id}.mp4", duration=duration,
                          tags=list(tags), width=width, height=height, source="pexels")


def test_score_rewards_duration_tags_and_orientation():
    assert score_candidate(candidate("a", 30, ["sunrise light"]), ["sunrise", "light"]) == 3 + 2 + 2 + 1
    assert score_candidate(candidate("b", 120, [], width=1920, height=1080), ["sunrise"]) == 0


def test_select_prefers_highest_score_and_keeps_ranking_on_ties():
    candidates = [
        candidate("landscape", width=1920, height=1080),
        candidate("portrait-1"),
        candidate("portrait-2"),
    ]
    assert select_candidate(candidates, []).id == "portrait-1"


def test_select_skips_candidates_without_link():
    broken = StockCandidate(id="x", download_url="", duration=30, width=1080, height=1920)
    assert select_candidate([broken], []) is None


@pytest.mark.parametrize("mood,kind", [
    ("calm and peaceful", "peaceful"),
    ("Dramatic", "dramatic"),
    ("intense", "dramatic"),
    (None, "default"),
])
def test_decoration_kind(mood, kind):
    assert decoration_kind(mood) == kind


def test_gradient_frame_is_deterministic(tmp_path):
    first = render_gradient_frame(str(tmp_path / "a.png"), 90, 160, ["#000000", "#FFFFFF"], "dramatic", "job-1")
    second = render_gradient_frame(str(tmp_path / "b.png"), 90, 160, ["#000000", "#FFFFFF"], "dramatic", "job-1")

    with open(first, "rb") as a, open(second, "rb") as b:
        assert a.read() == b.read()
    with Image.open(first) as image:
        assert image.size == (90, 160)


def test_stock_candidate_is_downloaded(tmp_path):
    search = FakeStockSearch()
    engine = FakeMediaEngine()
    with WorkArea(str(tmp_path), "job-1") as work_area:
        result = acquire_background(search, engine, BackgroundMode.STOCK_FOOTAGE, PROFILE,
                                    ["sunrise"], HINTS, 30.0, work_area, seed="job-1")
        assert os.path.exists(result.path)

    assert result.source == "pexels"
    assert result.mode == BackgroundMode.STOCK_FOOTAGE
    assert result.candidate_id == "101"
    assert search.searches == [(["sunrise"], "portrait")]
    assert engine.motion_calls == []


@pytest.mark.parametrize("search", [
    FakeStockSearch(candidates=[]),
    FakeStockSearch(search_error=StockSearchError("HTTP 500")),
    FakeStockSearch(download_error=StockSearchError("connection reset")),
    FakeStockSearch(search_error=AttributeError("'list' object has no attribute 'get'")),
    FakeStockSearch(download_error=ValueError("unexpected content length")),
])
def test_stock_problems_fall_back_to_synthesized(tmp_path, search):
    engine = FakeMediaEngine()
    with WorkArea(str(tmp_path), "job-1") as work_area:
        result = acquire_background(search, engine, BackgroundMode.STOCK_FOOTAGE, SMALL,
                                    ["sunrise"], HINTS, 42.0, work_area, seed="job-1", fps=30)

    assert result.source == "synthesized"
    assert result.mode == BackgroundMode.STATIC_WITH_MOTION
    call = engine.motion_calls[0]
    assert call["duration"] == 42.0
    assert call["zoom_rate"] == ZOOM_RATES["slow"]
    assert call["fps"] == 30
    assert (call["width"], call["height"]) == (90, 160)


def test_static_mode_never_searches(tmp_path):
    search = FakeStockSearch()
    engine = FakeMediaEngine()
    with WorkArea(str(tmp_path), "job-1") as work_area:
        result = acquire_background(search, engine, BackgroundMode.STATIC_WITH_MOTION, SMALL,
                                    ["sunrise"], HINTS, 20.0, work_area, seed="job-1")

    assert search.searches == []
    assert result.source == "synthesized"


def test_generated_mode_uses_stock_search_first(tmp_path):
    search = FakeStockSearch()
    with WorkArea(str(tmp_path), "job-1") as work_area:
        result = acquire_background(search, FakeMediaEngine(), BackgroundMode.AI_GENERATED, PROFILE,
                                    ["sunrise"], HINTS, 20.0, work_area, seed="job-1")

    assert result.mode == BackgroundMode.STOCK_FOOTAGE
    assert len(search.searches) == 1


def test_missing_search_service_synthesizes(tmp_path):
    with WorkArea(str(tmp_path), "job-1") as work_area:
        result = acquire_background(None, FakeMediaEngine(), BackgroundMode.STOCK_FOOTAGE, SMALL,
                                    ["sunrise"], HINTS, 20.0, work_area, seed="job-1")
    assert result.source == "synthesized"


def test_synthesis_failure_aborts(tmp_path):
    engine = FakeMediaEngine(motion_error=MediaEngineError("zoompan failed"))
    with WorkArea(str(tmp_path), "job-1") as work_area:
        with pytest.raises(BackgroundAcquisitionFailed) as exc_info:
            acquire_background(FakeStockSearch(candidates=[]), engine, BackgroundMode.STOCK_FOOTAGE, SMALL,
                               ["sunrise"], HINTS, 20.0, work_area, seed="job-1")

    assert "zoompan failed" in exc_info.value.user_message


def test_cancellation_from_stock_search_is_not_swallowed(tmp_path):
    search = FakeStockSearch(search_error=JobCancelled(stage="fetching_background"))
    with WorkArea(str(tmp_path), "job-1") as work_area:
        with pytest.raises(JobCancelled):
            acquire_background(search, FakeMediaEngine(), BackgroundMode.STOCK_FOOTAGE, SMALL,
                               ["sunrise"], HINTS, 42.0, work_area, seed="job-1")
