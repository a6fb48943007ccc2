"""
Background acquisition.

Stock search is attempted first for the stock and external-generated
modes; any search or download problem is logged and the synthesized
gradient background is rendered instead. Only a failure of the
synthesized path aborts the job.
"""

import logging
import random
from dataclasses import dataclass
from typing import Optional, List, Sequence, Tuple

from PIL import Image, ImageDraw

from ..adapters.base import StockMediaSearch, StockCandidate, MediaEngine
from ..errors import BackgroundAcquisitionFailed, PipelineError
from ..models import BackgroundMode, StyleProfile
from .util import hex_to_rgb, get_file_size_bytes
from .workspace import WorkArea

logger = logging.getLogger("reel_worker")

DEFAULT_GRADIENT = ["#667EEA", "#764BA2"]

ZOOM_RATES = {
    "slow": 0.0005,
    "medium": 0.0015,
    "fast": 0.003,
    "static": 0.0,
}

DECORATION_ALPHA = 26  # rgba(255,255,255,0.1)

PREFERRED_DURATION = (15, 60)


@dataclass
class VisualHints:
    """Look of the synthesized background, taken from the script payload"""
    palette: Sequence[str] = ()
    mood: Optional[str] = None
    motion: str = "medium"


@dataclass
class BackgroundResult:
    path: str
    source: str
    mode: BackgroundMode
    candidate_id: Optional[str] = None
    size_bytes: int = 0


def score_candidate(candidate: StockCandidate, keywords: Sequence[str]) -> int:
    score = 0
    if PREFERRED_DURATION[0] <= candidate.duration <= PREFERRED_DURATION[1]:
        score += 3
    tags = [tag.lower() for tag in candidate.tags]
    for keyword in keywords:
        keyword = keyword.lower()
        if any(keyword in tag for tag in tags):
            score += 2
    if candidate.is_portrait:
        score += 1
    return score


def select_candidate(candidates: List[StockCandidate], keywords: Sequence[str]) -> Optional[StockCandidate]:
    """Highest scoring candidate; ties keep the provider's ranking"""
    best, best_score = None, None
    for candidate in candidates:
        if not candidate.download_url:
            continue
        score = score_candidate(candidate, keywords)
        if best_score is None or score > best_score:
            best, best_score = candidate, score
    return best


def decoration_kind(mood: Optional[str]) -> str:
    mood = (mood or "").lower()
    if "peace" in mood or "calm" in mood:
        return "peaceful"
    if "dramat" in mood or "intense" in mood:
        return "dramatic"
    return "default"


def _gradient_color(stops: List[Tuple[int, int, int]], position: float) -> Tuple[int, int, int]:
    if len(stops) == 1:
        return stops[0]
    scaled = position * (len(stops) - 1)
    index = min(int(scaled), len(stops) - 2)
    t = scaled - index
    start, end = stops[index], stops[index + 1]
    return tuple(int(round(a + (b - a) * t)) for a, b in zip(start, end))


def render_gradient_frame(output_path: str, width: int, height: int, palette: Sequence[str],
                          mood: Optional[str], seed: str) -> str:
    """
    Draw a vertical gradient through the palette with translucent mood
    decorations. The same seed always produces the same image.
    """
    stops = [hex_to_rgb(color) for color in (list(palette) or DEFAULT_GRADIENT)]
    image = Image.new("RGB", (width, height))
    draw = ImageDraw.Draw(image)
    for y in range(height):
        draw.line([(0, y), (width, y)], fill=_gradient_color(stops, y / max(height - 1, 1)))

    rng = random.Random(seed)
    overlay = Image.new("RGBA", (width, height), (0, 0, 0, 0))
    shapes = ImageDraw.Draw(overlay)
    fill = (255, 255, 255, DECORATION_ALPHA)
    kind = decoration_kind(mood)

    if kind == "dramatic":
        for _ in range(8):
            x, y = rng.uniform(0, width), rng.uniform(0, height)
            size = rng.uniform(60, 200)
            shapes.polygon([(x, y - size), (x - size, y + size), (x + size, y + size)], fill=fill)
    else:
        count, radii = (10, (40, 120)) if kind == "peaceful" else (15, (30, 90))
        for _ in range(count):
            x, y = rng.uniform(0, width), rng.uniform(0, height)
            r = rng.uniform(*radii)
            shapes.ellipse([x - r, y - r, x + r, y + r], fill=fill)

    image = Image.alpha_composite(image.convert("RGBA"), overlay).convert("RGB")
    image.save(output_path, "PNG")
    return output_path


def _try_stock(search: StockMediaSearch, keywords: Sequence[str], profile: StyleProfile,
               work_area: WorkArea) -> Optional[Tuple[str, StockCandidate]]:
    try:
        candidates = search.search(list(keywords), profile.orientation)
    except PipelineError:
        raise
    except Exception as e:
        logger.warning(f"FETCHING_BACKGROUND: stock search failed, using synthesized background: {e}")
        return None

    candidate = select_candidate(candidates, keywords)
    if candidate is None:
        logger.warning(f"FETCHING_BACKGROUND: no usable stock footage for {list(keywords)}, "
                       f"using synthesized background")
        return None

    try:
        path = search.download(candidate, work_area.file("stock_background.mp4"))
    except PipelineError:
        raise
    except Exception as e:
        logger.warning(f"FETCHING_BACKGROUND: stock download failed, using synthesized background: {e}")
        return None

    return path, candidate


def synthesize_background(engine: MediaEngine, profile: StyleProfile, hints: VisualHints,
                          duration: float, work_area: WorkArea, seed: str, fps: int = 25) -> str:
    try:
        frame = render_gradient_frame(
            work_area.file("background_frame.png"), profile.width, profile.height,
            hints.palette, hints.mood, seed
        )
        return engine.render_motion(
            frame, work_area.file("background.mp4"), duration,
            profile.width, profile.height, ZOOM_RATES.get(hints.motion, ZOOM_RATES["medium"]), fps
        )
    except Exception as e:
        raise BackgroundAcquisitionFailed(f"synthesized background failed: {e}", stage="fetching_background") from e


def acquire_background(search: Optional[StockMediaSearch], engine: MediaEngine, mode: BackgroundMode,
                       profile: StyleProfile, keywords: Sequence[str], hints: VisualHints,
                       duration: float, work_area: WorkArea, seed: str, fps: int = 25) -> BackgroundResult:
    """
    Obtain the background video for a job.

    Args:
        search: Stock search service, or None when stock search is disabled
        engine: Media engine used to animate the synthesized still
        mode: Requested background mode
        profile: Output geometry and search orientation
        keywords: Visual search keywords
        hints: Palette, mood and motion for the synthesized background
        duration: Seconds of motion to render for the synthesized background
        work_area: Job work area
        seed: Seed for reproducible decorations

    Returns:
        BackgroundResult with the effective mode

    Raises:
        BackgroundAcquisitionFailed: the synthesized background could not be rendered
    """
    if mode != BackgroundMode.STATIC_WITH_MOTION:
        if search is None:
            logger.info("FETCHING_BACKGROUND: stock search not configured, using synthesized background")
        else:
            stock = _try_stock(search, keywords, profile, work_area)
            if stock is not None:
                path, candidate = stock
                logger.info(f"FETCHING_BACKGROUND: using {candidate.source} video {candidate.id}")
                return BackgroundResult(
                    path=path,
                    source=candidate.source,
                    mode=BackgroundMode.STOCK_FOOTAGE,
                    candidate_id=candidate.id,
                    size_bytes=get_file_size_bytes(path)
                )

    path = synthesize_background(engine, profile, hints, duration, work_area, seed, fps)
    logger.info(f"FETCHING_BACKGROUND: rendered {duration:.1f}s synthesized background")
    return BackgroundResult(
        path=path,
        source="synthesized",
        mode=BackgroundMode.STATIC_WITH_MOTION,
        size_bytes=get_file_size_bytes(path)
    )
