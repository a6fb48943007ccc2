import logging
import os
from typing import Optional

from ..adapters.base import MediaEngine, MuxRequest
from ..errors import CompositionFailed
from ..models import CaptionStyle, CaptionBackground, CaptionPosition, StyleProfile
from .captions import CaptionTrack, ASS_ALIGNMENT
from .util import hex_to_ass_color
from .workspace import WorkArea

logger = logging.getLogger("reel_worker")

# libass lays out SRT input on a 288 line canvas
SRT_PLAY_RES_Y = 288


def build_force_style(style: CaptionStyle, profile: StyleProfile) -> str:
    """
    Subtitle filter style overrides for plain SRT tracks.

    ASS tracks carry their own styles and are burned in unchanged.
    """
    font_size = max(1, int(round(style.font_size * SRT_PLAY_RES_Y / profile.height)))
    outline = 0 if style.background == CaptionBackground.NONE else 2
    shadow = 1 if style.background == CaptionBackground.SHADOW else 0
    border_style = 3 if style.background == CaptionBackground.BOX else 1
    margin_v = 10 if style.position == CaptionPosition.CENTER else int(SRT_PLAY_RES_Y * 0.2)
    parts = [
        f"FontName={style.font_family}",
        f"FontSize={font_size}",
        f"PrimaryColour={hex_to_ass_color(style.primary_color, style.opacity)}",
        "OutlineColour=&H000000&",
        "BackColour=&H80000000&",
        "Bold=1",
        f"BorderStyle={border_style}",
        f"Outline={outline}",
        f"Shadow={shadow}",
        f"Alignment={ASS_ALIGNMENT[style.position]}",
        f"MarginV={margin_v}",
    ]
    return ",".join(parts)


def build_mux_request(background_path: str, audio_path: str, track: CaptionTrack,
                      profile: StyleProfile, output_path: str) -> MuxRequest:
    request = MuxRequest(
        background_path=background_path,
        audio_path=audio_path,
        output_path=output_path,
        width=profile.width,
        height=profile.height
    )
    if track.kind == "overlay":
        request.overlay_pattern = track.path
        request.overlay_fps = track.frame_rate
    else:
        request.subtitles_path = track.path
        if track.kind == "srt":
            request.force_style = build_force_style(track.style, profile)
    return request


def compose_video(engine: MediaEngine, background_path: str, audio_path: str, track: CaptionTrack,
                  profile: StyleProfile, work_area: WorkArea, output_name: Optional[str] = None) -> str:
    """
    Mux background, narration and captions into the final video.

    Raises:
        CompositionFailed: the media engine failed or produced no file
    """
    output_path = work_area.file(output_name or "final.mp4")
    request = build_mux_request(background_path, audio_path, track, profile, output_path)

    try:
        result_path = engine.mux(request)
    except Exception as e:
        raise CompositionFailed(str(e), stage="rendering_video") from e

    if not result_path or not os.path.exists(result_path):
        raise CompositionFailed("media engine produced no output file", stage="rendering_video")

    logger.info(f"RENDERING_VIDEO: composed {profile.frame_size} video at {result_path}")
    return result_path
