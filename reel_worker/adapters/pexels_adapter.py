"""
Pexels adapter for stock footage search.

Every transport or provider failure is raised as StockSearchError so
the background stage can fall back to a synthesized background;
malformed video entries are skipped.
"""

import logging
import re
from typing import Any, Dict, List, Optional

import requests

from .base import StockMediaSearch, StockCandidate
from ..errors import StockSearchError

logger = logging.getLogger("reel_worker")

PEXELS_VIDEO_SEARCH_URL = "https://api.pexels.com/videos/search"


def _tags_from_video(video: Dict[str, Any]) -> List[str]:
    """Collect descriptive tags; Pexels encodes the title in the page URL slug"""
    tags = []
    for tag in video.get('tags') or []:
        name = tag.get('name') if isinstance(tag, dict) else tag
        if name:
            tags.append(str(name).lower())

    page_url = video.get('url') or ''
    match = re.search(r'/video/([a-z0-9-]+?)(?:-\d+)?/?$', page_url)
    if match:
        tags.extend(word for word in match.group(1).split('-') if word)

    return tags


def _best_file(video: Dict[str, Any], orientation: str) -> Optional[Dict[str, Any]]:
    files = video.get('video_files') or []
    if not files:
        return None

    def matches_orientation(f: Dict[str, Any]) -> bool:
        width, height = f.get('width') or 0, f.get('height') or 0
        if orientation == "portrait":
            return width < height
        if orientation == "landscape":
            return width > height
        return True

    for f in files:
        if f.get('quality') == 'hd' and matches_orientation(f):
            return f
    for f in files:
        if matches_orientation(f):
            return f
    return files[0]


def _to_candidate(video: Dict[str, Any], orientation: str) -> Optional[StockCandidate]:
    best = _best_file(video, orientation)
    if not best or not best.get('link'):
        return None
    return StockCandidate(
        id=str(video.get('id')),
        download_url=best['link'],
        duration=float(video.get('duration') or 0),
        tags=_tags_from_video(video),
        width=int(best.get('width') or video.get('width') or 0),
        height=int(best.get('height') or video.get('height') or 0),
        source="pexels"
    )


class PexelsStockSearch(StockMediaSearch):
    """Pexels video search implementation"""

    def __init__(self, api_key: str, per_page: int = 15, timeout: int = 30,
                 session: Optional[requests.Session] = None):
        self.api_key = api_key
        self.per_page = per_page
        self.timeout = timeout
        self.session = session or requests.Session()

    def search(self, keywords: List[str], orientation: str) -> List[StockCandidate]:
        query = " ".join(keywords)
        try:
            response = self.session.get(
                PEXELS_VIDEO_SEARCH_URL,
                headers={"Authorization": self.api_key},
                params={
                    "query": query,
                    "per_page": self.per_page,
                    "orientation": orientation,
                    "size": "medium"
                },
                timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise StockSearchError(f"Pexels search failed for '{query}': {e}") from e

        videos = (data.get('videos') or []) if isinstance(data, dict) else None
        if not isinstance(videos, list):
            raise StockSearchError(f"Unexpected Pexels response for '{query}': {type(data).__name__} body")

        candidates = []
        for video in videos:
            try:
                candidate = _to_candidate(video, orientation)
            except (AttributeError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed Pexels video entry: {e}")
                continue
            if candidate is not None:
                candidates.append(candidate)

        logger.info(f"Pexels returned {len(candidates)} usable candidates for '{query}'")
        return candidates

    def download(self, candidate: StockCandidate, dest_path: str) -> str:
        try:
            with self.session.get(candidate.download_url, stream=True, timeout=self.timeout) as response:
                response.raise_for_status()
                with open(dest_path, 'wb') as fh:
                    for chunk in response.iter_content(chunk_size=1024 * 1024):
                        if chunk:
                            fh.write(chunk)
        except (requests.RequestException, OSError) as e:
            raise StockSearchError(f"Download of Pexels video {candidate.id} failed: {e}") from e

        logger.info(f"Downloaded Pexels video {candidate.id} to {dest_path}")
        return dest_path
