"""
Caption timing and styling.

Narration is split into sentences and then into short word chunks. The
speaking rate is measured from the real narration length, so chunk
timings follow the synthesized voice rather than an assumed pace. The
segment list is then rendered according to the caption family:

- dynamic: ASS track with per-segment animation and emphasis markup
- neon: ASS track with a glowing outline style
- highlight: ASS track with word-by-word karaoke highlighting
- classic: plain SRT track
- gradient: transparent PNG overlay frames muxed as a video layer
"""

import dataclasses
import logging
import math
import os
import re
from dataclasses import dataclass
from io import BytesIO
from typing import Optional, List, Dict, Tuple

from PIL import Image, ImageDraw, ImageFont

from ..errors import CaptionGenerationFailed, PipelineError
from ..models import (
    CaptionSegment, CaptionStyle, CaptionStyleConfig, CaptionFamily,
    CaptionAnimation, CaptionBackground, CaptionPosition, StyleProfile
)
from .script import TONE_PALETTES
from .util import format_ass_time, format_srt_time, hex_to_ass_color, hex_to_rgb, normalize_word
from .workspace import WorkArea

logger = logging.getLogger("reel_worker")

EMPHASIS_WORDS = frozenset([
    "god", "jesus", "lord", "father", "spirit", "love", "faith", "hope",
    "grace", "mercy", "forever", "eternal", "salvation", "blessed",
    "always", "never", "all", "every", "everyone",
])

ICONS: Dict[str, str] = {
    "god": "✨",
    "love": "❤️",
    "faith": "\U0001F64F",
    "hope": "\U0001F31F",
    "peace": "\U0001F54A️",
    "strength": "\U0001F4AA",
    "joy": "\U0001F60A",
    "light": "\U0001F4A1",
    "heaven": "☁️",
    "prayer": "\U0001F64F",
    "blessed": "\U0001F64C",
    "grace": "✨",
    "mercy": "\U0001F49D",
    "salvation": "✝️",
    "glory": "\U0001F451",
    "miracle": "✨",
    "wisdom": "\U0001F9E0",
    "power": "⚡",
    "fire": "\U0001F525",
    "victory": "\U0001F3C6",
}

TONE_ANIMATIONS: Dict[str, CaptionAnimation] = {
    "inspirational": CaptionAnimation.SLIDE_UP,
    "dramatic": CaptionAnimation.ZOOM,
    "peaceful": CaptionAnimation.FADE_IN,
    "energetic": CaptionAnimation.BOUNCE,
    "contemplative": CaptionAnimation.TYPEWRITER,
}

NEON_COLORS = ["#FF00FF", "#00FFFF", "#FFFF00"]
DEFAULT_EMPHASIS_COLOR = "#FFFF00"

# vertical anchor of the caption as a fraction of the frame height
POSITION_Y: Dict[CaptionPosition, float] = {
    CaptionPosition.BOTTOM: 0.8,
    CaptionPosition.CENTER: 0.5,
    CaptionPosition.TOP: 0.2,
}

ASS_ALIGNMENT: Dict[CaptionPosition, int] = {
    CaptionPosition.BOTTOM: 2,
    CaptionPosition.CENTER: 5,
    CaptionPosition.TOP: 8,
}

SLIDE_DISTANCE = 50
BOUNCE_HEIGHT = 20
OVERLAY_STROKE = 4


@dataclass
class CaptionTrack:
    """Rendered caption output handed to the compositor"""
    kind: str  # ass, srt or overlay
    path: str
    segments: List[CaptionSegment]
    style: CaptionStyle
    frame_rate: Optional[int] = None
    frame_count: int = 0


def resolve_style(config: Optional[CaptionStyleConfig], tone: Optional[str] = None) -> CaptionStyle:
    """Caller overrides win, then the script tone, then defaults"""
    values = {}
    if tone in TONE_PALETTES:
        values['color_scheme'] = list(TONE_PALETTES[tone])
    if tone in TONE_ANIMATIONS:
        values['animation'] = TONE_ANIMATIONS[tone]
    if config is not None:
        values.update(config.model_dump(exclude_none=True))
    return dataclasses.replace(CaptionStyle(), **values)


def split_sentences(text: str) -> List[str]:
    """Split on sentence punctuation, keeping the punctuation with its sentence"""
    sentences = re.findall(r'[^.!?]+[.!?]*', text)
    return [s.strip() for s in sentences if s.strip()]


def chunk_words(words: List[str], max_words: int) -> List[List[str]]:
    return [words[i:i + max_words] for i in range(0, len(words), max_words)]


def is_emphasized(words: List[str]) -> bool:
    return any(normalize_word(word) in EMPHASIS_WORDS for word in words)


def icon_for(words: List[str]) -> Optional[str]:
    for word in words:
        icon = ICONS.get(normalize_word(word))
        if icon:
            return icon
    return None


def build_segments(text: str, audio_duration: float, max_words: int = 6,
                   emojis: bool = True) -> List[CaptionSegment]:
    """
    Time-box narration into caption segments.

    Args:
        text: Narration text exactly as scripted
        audio_duration: Measured narration length in seconds
        max_words: Maximum words per segment
        emojis: Attach icons from the icon table

    Returns:
        Ordered, non-overlapping segments ending no later than audio_duration
    """
    if audio_duration is None or audio_duration <= 0:
        raise CaptionGenerationFailed("narration duration must be positive", stage="rendering_video")

    chunks = []
    for sentence in split_sentences(text or ""):
        chunks.extend(chunk_words(sentence.split(), max_words))

    total_words = sum(len(chunk) for chunk in chunks)
    if total_words == 0:
        raise CaptionGenerationFailed("narration text is empty", stage="rendering_video")

    words_per_second = total_words / audio_duration
    segments = []
    current = 0.0
    for chunk in chunks:
        end = min(current + len(chunk) / words_per_second, audio_duration)
        segments.append(CaptionSegment(
            text=" ".join(chunk),
            start=current,
            end=end,
            emphasis=is_emphasized(chunk),
            icon=icon_for(chunk) if emojis else None
        ))
        current = end

    return segments


def _ass_text(text: str) -> str:
    return text.replace("{", "(").replace("}", ")").replace("\n", " ")


def _emphasis_color(style: CaptionStyle) -> str:
    return style.color_scheme[1] if len(style.color_scheme) > 1 else DEFAULT_EMPHASIS_COLOR


def _anchor(style: CaptionStyle, profile: StyleProfile) -> Tuple[int, int]:
    return profile.width // 2, int(profile.height * POSITION_Y[style.position])


def animation_tag(animation: CaptionAnimation, x: int, y: int) -> str:
    if animation == CaptionAnimation.FADE_IN:
        return r"{\fad(300,300)}"
    if animation == CaptionAnimation.SLIDE_UP:
        return rf"{{\move({x},{y + SLIDE_DISTANCE},{x},{y},0,300)}}"
    if animation == CaptionAnimation.TYPEWRITER:
        return r"{\t(0,500,\1a&HFF&\1a&H00&)}"
    if animation == CaptionAnimation.BOUNCE:
        return r"{\t(0,200,\fscx120\fscy120)\t(200,400,\fscx100\fscy100)}"
    if animation == CaptionAnimation.ZOOM:
        return r"{\t(0,300,\fscx150\fscy150)\t(300,600,\fscx100\fscy100)}"
    return r"{\fad(200,200)}"


def _style_line(name: str, style: CaptionStyle, profile: StyleProfile, primary: str,
                secondary: str, outline: str, shadow_depth: int, border_style: int = 1) -> str:
    outline_width = 0 if style.background == CaptionBackground.NONE else 3
    margin_v = 10 if style.position == CaptionPosition.CENTER else int(profile.height * 0.2)
    return (
        f"Style: {name},{style.font_family},{style.font_size},{primary},{secondary},{outline},"
        f"&H80000000&,1,0,0,0,100,100,0,0,{border_style},{outline_width},{shadow_depth},"
        f"{ASS_ALIGNMENT[style.position]},10,10,{margin_v},1"
    )


def ass_header(style: CaptionStyle, profile: StyleProfile, neon: bool = False) -> str:
    shadow_depth = 2 if style.background == CaptionBackground.SHADOW else 0
    border_style = 3 if style.background == CaptionBackground.BOX else 1
    lines = [
        "[Script Info]",
        "Title: Scripture Reel Captions",
        "ScriptType: v4.00+",
        f"PlayResX: {profile.width}",
        f"PlayResY: {profile.height}",
        "WrapStyle: 0",
        "",
        "[V4+ Styles]",
        "Format: Name, Fontname, Fontsize, PrimaryColour, SecondaryColour, OutlineColour, BackColour, "
        "Bold, Italic, Underline, StrikeOut, ScaleX, ScaleY, Spacing, Angle, BorderStyle, Outline, "
        "Shadow, Alignment, MarginL, MarginR, MarginV, Encoding",
        _style_line("Default", style, profile, hex_to_ass_color(style.primary_color, style.opacity),
                    "&HFFFFFF&", "&H000000&", shadow_depth, border_style),
    ]
    if neon:
        lines.append(_style_line("Neon", style, profile, hex_to_ass_color(NEON_COLORS[0], style.opacity),
                                 hex_to_ass_color(NEON_COLORS[1]), hex_to_ass_color(NEON_COLORS[2]), 2))
    lines.extend([
        "",
        "[Events]",
        "Format: Layer, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text",
    ])
    return "\n".join(lines) + "\n"


def _dialogue(start: float, end: float, text: str, style_name: str = "Default") -> str:
    return f"Dialogue: 0,{format_ass_time(start)},{format_ass_time(end)},{style_name},,0,0,0,,{text}\n"


def render_dynamic_ass(segments: List[CaptionSegment], style: CaptionStyle, profile: StyleProfile) -> str:
    x, y = _anchor(style, profile)
    primary = hex_to_ass_color(style.primary_color)
    emphasis = hex_to_ass_color(_emphasis_color(style))
    glow = r"{\be1}" if style.background == CaptionBackground.GLOW else ""

    content = ass_header(style, profile)
    for segment in segments:
        text = _ass_text(segment.display_text)
        if segment.emphasis:
            text = rf"{{\b1\c{emphasis}}}{text}{{\b0\c{primary}}}"
        content += _dialogue(segment.start, segment.end, animation_tag(style.animation, x, y) + glow + text)
    return content


def render_neon_ass(segments: List[CaptionSegment], style: CaptionStyle, profile: StyleProfile) -> str:
    content = ass_header(style, profile, neon=True)
    for segment in segments:
        text = r"{\3c&HFF00FF&\3a&H80&\be1}" + _ass_text(segment.display_text)
        content += _dialogue(segment.start, segment.end, text, style_name="Neon")
    return content


def render_highlight_ass(segments: List[CaptionSegment], style: CaptionStyle, profile: StyleProfile) -> str:
    """One event per word; spoken words dim, upcoming words stay hidden"""
    primary = hex_to_ass_color(style.primary_color)
    emphasis = hex_to_ass_color(_emphasis_color(style))

    content = ass_header(style, profile)
    for segment in segments:
        words = [_ass_text(word) for word in segment.text.split()]
        word_duration = segment.duration / len(words)
        for index in range(len(words)):
            word_start = segment.start + index * word_duration
            word_end = segment.end if index == len(words) - 1 else word_start + word_duration
            parts = []
            for i, word in enumerate(words):
                if i == index:
                    parts.append(rf"{{\c{emphasis}\b1}}{word}{{\c{primary}\b0}}")
                elif i < index:
                    parts.append(rf"{{\alpha&H80&}}{word}{{\alpha&H00&}}")
                else:
                    parts.append(rf"{{\alpha&HFF&}}{word}{{\alpha&H00&}}")
            content += _dialogue(word_start, word_end, " ".join(parts))
    return content


def render_srt(segments: List[CaptionSegment]) -> str:
    blocks = []
    for index, segment in enumerate(segments, start=1):
        blocks.append(
            f"{index}\n{format_srt_time(segment.start)} --> {format_srt_time(segment.end)}\n"
            f"{segment.display_text}\n"
        )
    return "\n".join(blocks)


def load_font(font_family: str, font_size: int):
    for candidate in (font_family, f"{font_family}.ttf", "DejaVuSans-Bold.ttf"):
        try:
            return ImageFont.truetype(candidate, font_size)
        except OSError:
            continue
    return ImageFont.load_default(size=font_size)


def animated_y(base_y: float, animation: CaptionAnimation, progress: float) -> float:
    if animation == CaptionAnimation.SLIDE_UP:
        return base_y + SLIDE_DISTANCE * (1 - progress)
    if animation == CaptionAnimation.BOUNCE:
        return base_y - math.sin(progress * math.pi) * BOUNCE_HEIGHT
    return base_y


def _horizontal_gradient(colors: List[str], width: int, height: int) -> Image.Image:
    stops = [hex_to_rgb(color) for color in colors] or [(255, 255, 255)]
    strip = Image.new("RGBA", (width, 1))
    for x in range(width):
        if len(stops) == 1:
            color = stops[0]
        else:
            scaled = x / max(width - 1, 1) * (len(stops) - 1)
            index = min(int(scaled), len(stops) - 2)
            t = scaled - index
            color = tuple(int(round(a + (b - a) * t)) for a, b in zip(stops[index], stops[index + 1]))
        strip.putpixel((x, 0), color + (255,))
    return strip.resize((width, height))


def render_overlay_frame(text: str, y: float, font, fill: Image.Image, width: int, height: int) -> Image.Image:
    frame = Image.new("RGBA", (width, height), (0, 0, 0, 0))
    draw = ImageDraw.Draw(frame)
    left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
    position = (width / 2 - (right - left) / 2 - left, y - (bottom - top) / 2 - top)
    draw.text(position, text, font=font, fill=(0, 0, 0, 255),
              stroke_width=OVERLAY_STROKE, stroke_fill=(0, 0, 0, 255))

    mask = Image.new("L", (width, height), 0)
    ImageDraw.Draw(mask).text(position, text, font=font, fill=255)
    frame.paste(fill, (0, 0), mask)
    return frame


def render_gradient_overlay(segments: List[CaptionSegment], style: CaptionStyle, profile: StyleProfile,
                            frames_dir: str, fps: int = 25) -> Tuple[str, int]:
    """
    Render one transparent PNG per output frame tick.

    Identical frames (blank ticks, static text) are encoded once and
    written repeatedly.

    Returns:
        Tuple of (image2 pattern, frame_count)
    """
    width, height = profile.width, profile.height
    font = load_font(style.font_family, style.font_size)
    fill = _horizontal_gradient(style.color_scheme, width, height)
    base_y = height * POSITION_Y[style.position]
    total_frames = math.ceil(segments[-1].end * fps)

    encoded: Dict[Tuple[Optional[int], int], bytes] = {}
    segment_index = 0
    for frame_number in range(total_frames):
        t = frame_number / fps
        while segment_index < len(segments) and t >= segments[segment_index].end:
            segment_index += 1

        key: Tuple[Optional[int], int] = (None, 0)
        segment = None
        if segment_index < len(segments) and segments[segment_index].start <= t:
            segment = segments[segment_index]
            progress = (t - segment.start) / segment.duration if segment.duration > 0 else 1.0
            key = (segment_index, int(round(animated_y(base_y, style.animation, progress))))

        if key not in encoded:
            if segment is None:
                image = Image.new("RGBA", (width, height), (0, 0, 0, 0))
            else:
                image = render_overlay_frame(segment.text, key[1], font, fill, width, height)
            buffer = BytesIO()
            image.save(buffer, "PNG")
            encoded[key] = buffer.getvalue()

        with open(os.path.join(frames_dir, f"frame_{frame_number:06d}.png"), "wb") as fh:
            fh.write(encoded[key])

    return os.path.join(frames_dir, "frame_%06d.png"), total_frames


def generate_captions(text: str, audio_duration: float, style: CaptionStyle, profile: StyleProfile,
                      work_area: WorkArea, max_words: int = 6, overlay_fps: int = 25) -> CaptionTrack:
    """
    Build the timed, styled caption track for a narration.

    Raises:
        CaptionGenerationFailed: segmentation or rendering failed
    """
    try:
        segments = build_segments(text, audio_duration, max_words=max_words, emojis=style.emojis)

        if style.family == CaptionFamily.GRADIENT:
            pattern, frame_count = render_gradient_overlay(
                segments, style, profile, work_area.subdir("overlay"), overlay_fps
            )
            track = CaptionTrack("overlay", pattern, segments, style, overlay_fps, frame_count)
        elif style.family == CaptionFamily.CLASSIC:
            path = work_area.file("captions.srt")
            with open(path, "w", encoding="utf-8") as fh:
                fh.write(render_srt(segments))
            track = CaptionTrack("srt", path, segments, style)
        else:
            renderers = {
                CaptionFamily.NEON: render_neon_ass,
                CaptionFamily.HIGHLIGHT: render_highlight_ass,
            }
            renderer = renderers.get(style.family, render_dynamic_ass)
            path = work_area.file("captions.ass")
            with open(path, "w", encoding="utf-8") as fh:
                fh.write(renderer(segments, style, profile))
            track = CaptionTrack("ass", path, segments, style)
    except PipelineError:
        raise
    except Exception as e:
        raise CaptionGenerationFailed(str(e), stage="rendering_video") from e

    logger.info(f"RENDERING_VIDEO: {len(segments)} caption segments rendered as {style.family.value}")
    return track
