import os

import pytest

from reel_worker.errors import CaptionGenerationFailed
from reel_worker.models import (
    CaptionAnimation, CaptionFamily, CaptionPosition, CaptionStyle, CaptionStyleConfig, STYLE_PROFILES, VideoStyle
)
from reel_worker.pipeline.captions import (
    build_segments, generate_captions, render_dynamic_ass, render_highlight_ass, render_srt,
    resolve_style, split_sentences
)
from reel_worker.pipeline.workspace import WorkArea

PROFILE = STYLE_PROFILES[VideoStyle.TIKTOK]


def words(count, word="word"):
    return " ".join(f"{word}{i}" for i in range(count))


def test_rate_follows_measured_audio_length():
    # 120 words over 50s is 2.4 words per second
    text = ". ".join(words(6) for _ in range(20)) + "."
    segments = build_segments(text, 50.0)

    assert len(segments) == 20
    assert segments[0].duration == pytest.approx(2.5, abs=0.01)
    assert segments[-1].end == pytest.approx(50.0)


def test_segments_are_ordered_non_overlapping_and_bounded():
    text = "The Lord is my shepherd. I shall not want! He makes me lie down in green pastures, " \
           "He leads me beside still waters? He restores my soul"
    segments = build_segments(text, 13.7, max_words=4)

    for previous, current in zip(segments, segments[1:]):
        assert previous.start <= current.start
        assert previous.end <= current.start + 1e-9
    assert segments[-1].end <= 13.7 + 1e-6
    assert all(len(s.text.split()) <= 4 for s in segments)


def test_chunks_do_not_cross_sentence_boundaries():
    segments = build_segments("One two three. Four five six seven eight nine ten.", 10.0)
    assert [s.text for s in segments] == ["One two three.", "Four five six seven eight nine", "ten."]


def test_split_sentences_keeps_punctuation():
    assert split_sentences("Hope! Really? Yes.") == ["Hope!", "Really?", "Yes."]


def test_emphasis_and_icons_use_whole_words():
    segments = build_segments("God is love. I shall overcome.", 4.0)

    assert segments[0].emphasis is True
    assert segments[0].icon == "✨"
    assert segments[1].emphasis is False
    assert segments[1].icon is None


def test_icons_can_be_disabled():
    segments = build_segments("God is love.", 2.0, emojis=False)
    assert segments[0].icon is None
    assert segments[0].display_text == "God is love."


@pytest.mark.parametrize("duration", [0, -1.0, None])
def test_non_positive_duration_is_rejected(duration):
    with pytest.raises(CaptionGenerationFailed):
        build_segments("Some words here.", duration)


def test_empty_text_is_rejected():
    with pytest.raises(CaptionGenerationFailed):
        build_segments("   ", 10.0)


def test_resolve_style_prefers_overrides_then_tone():
    style = resolve_style(None, "dramatic")
    assert style.color_scheme == ["#FF4757", "#2F3542", "#FFA502"]
    assert style.animation == CaptionAnimation.ZOOM

    style = resolve_style(CaptionStyleConfig(family="neon", animation="bounce", font_size=60), "peaceful")
    assert style.family == CaptionFamily.NEON
    assert style.animation == CaptionAnimation.BOUNCE
    assert style.font_size == 60
    assert style.color_scheme[0] == "#70A1FF"


def test_resolve_style_defaults_without_tone():
    assert resolve_style(None, None) == CaptionStyle()


def test_dynamic_ass_has_canvas_animation_and_emphasis():
    style = CaptionStyle(color_scheme=["#FFFFFF", "#FFFF00"], animation=CaptionAnimation.SLIDE_UP)
    segments = build_segments("Grace upon grace. Walk on.", 4.0)

    content = render_dynamic_ass(segments, style, PROFILE)

    assert "PlayResX: 1080" in content
    assert "PlayResY: 1920" in content
    assert r"\move(540,1586,540,1536,0,300)" in content
    assert r"{\b1\c&H00FFFF&}" in content
    assert content.count("Dialogue:") == 2
    assert "Dialogue: 0,0:00:00.00,0:00:02.40,Default" in content


def test_top_position_uses_top_alignment():
    style = CaptionStyle(position=CaptionPosition.TOP)
    content = render_dynamic_ass(build_segments("Rise and shine.", 2.0), style, PROFILE)
    style_line = next(line for line in content.splitlines() if line.startswith("Style: Default"))
    assert style_line.split(",")[18] == "8"


def test_highlight_emits_one_event_per_word():
    segments = build_segments("Be still and know.", 4.0)
    content = render_highlight_ass(segments, CaptionStyle(family=CaptionFamily.HIGHLIGHT), PROFILE)
    assert content.count("Dialogue:") == 4
    assert "Dialogue: 0,0:00:03.00,0:00:04.00" in content


def test_srt_numbering_and_timestamps():
    segments = build_segments("In the beginning. God created.", 4.0)
    content = render_srt(segments)
    assert content.startswith("1\n00:00:00,000 --> 00:00:02,400\nIn the beginning.\n")
    assert "2\n00:00:02,400 --> 00:00:04,000\n✨ God created.\n" in content


@pytest.mark.parametrize("family,kind,name", [
    ("classic", "srt", "captions.srt"),
    ("dynamic", "ass", "captions.ass"),
    ("neon", "ass", "captions.ass"),
    ("highlight", "ass", "captions.ass"),
])
def test_generate_captions_writes_track_per_family(tmp_path, family, kind, name):
    style = resolve_style(CaptionStyleConfig(family=family), "peaceful")
    with WorkArea(str(tmp_path), "job-1") as work_area:
        track = generate_captions("Peace be with you. Always.", 3.0, style, PROFILE, work_area)
        assert track.kind == kind
        assert os.path.basename(track.path) == name
        assert os.path.getsize(track.path) > 0
        assert len(track.segments) == 2


def test_gradient_family_renders_overlay_frames(tmp_path):
    style = resolve_style(CaptionStyleConfig(family="gradient"), "energetic")
    with WorkArea(str(tmp_path), "job-1") as work_area:
        track = generate_captions("Run the race.", 1.5, style, PROFILE, work_area, overlay_fps=2)
        frames = sorted(os.listdir(os.path.dirname(track.path)))

    assert track.kind == "overlay"
    assert track.path.endswith("frame_%06d.png")
    assert track.frame_rate == 2
    assert track.frame_count == 3
    assert frames == ["frame_000000.png", "frame_000001.png", "frame_000002.png"]
