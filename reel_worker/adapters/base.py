"""
Abstract base classes for the worker's collaborators.

Defines the interface that all adapters must implement, enabling
easy swapping between job stores (memory, Postgres), object stores
(local disk, S3) and the external generation services.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, Dict, Any, List, Set
from dataclasses import dataclass, field

from ..models import VideoJob, JobStatus


@dataclass
class StockCandidate:
    """Represents one stock media search hit"""
    id: str
    download_url: str
    duration: float
    tags: List[str] = field(default_factory=list)
    width: int = 0
    height: int = 0
    source: str = "stock"

    @property
    def is_portrait(self) -> bool:
        return self.height > self.width > 0


@dataclass
class MuxRequest:
    """Inputs for one mux invocation of the media engine"""
    background_path: str
    audio_path: str
    output_path: str
    width: int
    height: int
    subtitles_path: Optional[str] = None
    force_style: Optional[str] = None
    overlay_pattern: Optional[str] = None
    overlay_fps: Optional[int] = None


class JobStore(ABC):
    """Abstract base class for durable job records"""

    def connect(self) -> None:
        """Open connections; no-op for stores that need none"""

    def close(self) -> None:
        """Release connections; no-op for stores that need none"""

    @abstractmethod
    def create(self, job: VideoJob) -> None:
        """
        Persist a new job record.

        Args:
            job: Job in PENDING state
        """
        pass

    @abstractmethod
    def get(self, job_id: str) -> Optional[VideoJob]:
        """
        Get a job by id.

        Returns:
            Job if found, None otherwise
        """
        pass

    @abstractmethod
    def list_by_owner(self, owner_id: str, limit: int = 20) -> List[VideoJob]:
        """
        List an owner's jobs, newest first.

        Args:
            owner_id: Owning user id
            limit: Maximum number of jobs returned
        """
        pass

    @abstractmethod
    def update(self, job_id: str, changes: Dict[str, Any],
               allowed_from: Optional[Set[JobStatus]] = None) -> Optional[VideoJob]:
        """
        Atomically apply field changes to a job.

        ``metadata`` in changes is merged into the stored metadata and
        ``progress`` never decreases.

        Args:
            job_id: ID of the job to update
            changes: Field name to new value
            allowed_from: Apply only when the stored status is in this set

        Returns:
            The updated job, or None if the job is missing or its status
            did not satisfy ``allowed_from``
        """
        pass

    @abstractmethod
    def delete(self, job_id: str) -> bool:
        """Delete a job record; returns True if a record was removed"""
        pass

    @abstractmethod
    def delete_terminal_before(self, cutoff: datetime) -> int:
        """
        Delete COMPLETED and FAILED jobs created before ``cutoff``.

        Returns:
            Number of deleted jobs
        """
        pass

    @abstractmethod
    def count_by_status(self, owner_id: str, since: Optional[datetime] = None) -> Dict[str, int]:
        """
        Count an owner's jobs grouped by status.

        Args:
            owner_id: Owning user id
            since: Only count jobs created at or after this instant
        """
        pass

    @abstractmethod
    def list_due(self, now: datetime, limit: int = 50) -> List[VideoJob]:
        """
        PENDING jobs whose scheduled time is at or before ``now``,
        earliest first. Jobs without a scheduled time are not returned.
        """
        pass


class TextGenerator(ABC):
    """Text generation service"""

    @abstractmethod
    def complete(self, instruction_template: str, parameters: Dict[str, Any]) -> Any:
        """
        Run an instruction template and return the structured payload.

        Returns:
            A JSON string or an already decoded dict

        Raises:
            StructuredOutputError: the provider returned a malformed payload
        """
        pass


class SpeechSynthesizer(ABC):
    """Speech synthesis service"""

    @abstractmethod
    def synthesize(self, text: str, voice_params: Dict[str, Any]) -> bytes:
        """
        Convert text to encoded audio bytes.

        Args:
            text: Narration text
            voice_params: Provider parameters (model, voice, speed, format)
        """
        pass


class StockMediaSearch(ABC):
    """Stock media search service"""

    @abstractmethod
    def search(self, keywords: List[str], orientation: str) -> List[StockCandidate]:
        """
        Search stock footage.

        Raises:
            StockSearchError: on any transport or provider failure
        """
        pass

    @abstractmethod
    def download(self, candidate: StockCandidate, dest_path: str) -> str:
        """
        Download a candidate to ``dest_path``.

        Raises:
            StockSearchError: on any transport failure
        """
        pass


class MediaEngine(ABC):
    """Local audio/video processing capability"""

    @abstractmethod
    def probe_duration(self, media_path: str) -> float:
        """Return the duration of a media file in seconds"""
        pass

    @abstractmethod
    def render_motion(self, image_path: str, output_path: str, duration: float,
                      width: int, height: int, zoom_rate: float, fps: int) -> str:
        """
        Turn a still image into a video with a slow zoom.

        Returns:
            Path to the rendered video
        """
        pass

    @abstractmethod
    def mux(self, request: MuxRequest) -> str:
        """
        Scale the background, burn in captions or overlay frames, mix in
        narration and stop at the shorter of background and audio.

        Returns:
            Path to the muxed video
        """
        pass


class ObjectStore(ABC):
    """Durable object storage"""

    def connect(self) -> None:
        """Open clients; no-op for stores that need none"""

    def close(self) -> None:
        """Release clients; no-op for stores that need none"""

    @abstractmethod
    def put(self, data: bytes, key: str, content_type: str) -> str:
        """
        Store bytes under ``key``.

        Returns:
            Stable retrieval URL
        """
        pass
