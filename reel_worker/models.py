"""
Domain models for the reel worker.

Defines the core data structures used throughout the system,
providing type safety and clear interfaces between components.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any, List

from pydantic import BaseModel, ConfigDict, Field, field_validator


class JobStatus(str, Enum):
    PENDING = "pending"
    GENERATING_SCRIPT = "generating_script"
    GENERATING_AUDIO = "generating_audio"
    FETCHING_BACKGROUND = "fetching_background"
    RENDERING_VIDEO = "rendering_video"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class VideoStyle(str, Enum):
    TIKTOK = "tiktok"
    INSTAGRAM_REEL = "instagram_reel"
    YOUTUBE_SHORT = "youtube_short"


class BackgroundMode(str, Enum):
    STOCK_FOOTAGE = "stock_footage"
    STATIC_WITH_MOTION = "static_with_motion"
    AI_GENERATED = "ai_generated"


class CaptionFamily(str, Enum):
    DYNAMIC = "dynamic"
    CLASSIC = "classic"
    NEON = "neon"
    GRADIENT = "gradient"
    HIGHLIGHT = "highlight"


class CaptionAnimation(str, Enum):
    FADE_IN = "fadeIn"
    SLIDE_UP = "slideUp"
    TYPEWRITER = "typewriter"
    BOUNCE = "bounce"
    ZOOM = "zoom"


class CaptionBackground(str, Enum):
    NONE = "none"
    SHADOW = "shadow"
    BOX = "box"
    GLOW = "glow"


class CaptionPosition(str, Enum):
    BOTTOM = "bottom"
    CENTER = "center"
    TOP = "top"


@dataclass(frozen=True)
class StyleProfile:
    """Output geometry and search orientation implied by a video style"""
    width: int
    height: int
    orientation: str
    platform: str

    @property
    def frame_size(self) -> str:
        return f"{self.width}x{self.height}"


STYLE_PROFILES: Dict[VideoStyle, StyleProfile] = {
    VideoStyle.TIKTOK: StyleProfile(1080, 1920, "portrait", "TikTok"),
    VideoStyle.INSTAGRAM_REEL: StyleProfile(1080, 1920, "portrait", "Instagram Reel"),
    VideoStyle.YOUTUBE_SHORT: StyleProfile(1080, 1920, "portrait", "YouTube Short"),
}

_HEX_COLOR = re.compile(r"^#[0-9a-fA-F]{6}$")


class CaptionStyleConfig(BaseModel):
    """Caller-supplied caption style; unset fields are derived at render time"""
    model_config = ConfigDict(extra="forbid", frozen=True, use_enum_values=False)

    family: Optional[CaptionFamily] = None
    color_scheme: Optional[List[str]] = Field(default=None, min_length=1, max_length=5)
    font_size: Optional[int] = Field(default=None, ge=12, le=160)
    font_family: Optional[str] = Field(default=None, min_length=1, max_length=64)
    emojis: Optional[bool] = None
    animation: Optional[CaptionAnimation] = None
    background: Optional[CaptionBackground] = None
    position: Optional[CaptionPosition] = None
    opacity: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    @field_validator("color_scheme")
    @classmethod
    def _hex_colors(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is None:
            return value
        for color in value:
            if not _HEX_COLOR.match(color):
                raise ValueError(f"invalid color '{color}', expected #RRGGBB")
        return [color.upper() for color in value]


class JobParams(BaseModel):
    """Immutable input parameters of a video job"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    topic: str = Field(min_length=1, max_length=200)
    theme: Optional[str] = Field(default=None, max_length=100)
    custom_prompt: Optional[str] = Field(default=None, max_length=500)
    style: VideoStyle = VideoStyle.TIKTOK
    background_mode: BackgroundMode = BackgroundMode.STOCK_FOOTAGE
    duration: int = Field(default=60, ge=15, le=90)
    caption_style: Optional[CaptionStyleConfig] = None
    music_genre: Optional[str] = Field(default=None, max_length=50)
    scheduled_for: Optional[datetime] = None

    @field_validator("topic")
    @classmethod
    def _topic_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("topic reference is required")
        return value

    @field_validator("scheduled_for")
    @classmethod
    def _scheduled_for_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is None:
            return value
        # naive instants are taken as UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def is_deferred(self, now: Optional[datetime] = None) -> bool:
        """True when the job must wait for its scheduled time"""
        return self.scheduled_for is not None and self.scheduled_for > (now or utcnow())

    @property
    def profile(self) -> StyleProfile:
        return STYLE_PROFILES[self.style]


@dataclass(frozen=True)
class CaptionStyle:
    """Fully resolved caption style used by the renderers"""
    family: CaptionFamily = CaptionFamily.DYNAMIC
    color_scheme: List[str] = field(default_factory=lambda: ["#FFFFFF", "#FFFF00", "#FF6B6B"])
    font_size: int = 48
    font_family: str = "Arial Black"
    emojis: bool = True
    animation: CaptionAnimation = CaptionAnimation.SLIDE_UP
    background: CaptionBackground = CaptionBackground.SHADOW
    position: CaptionPosition = CaptionPosition.BOTTOM
    opacity: float = 1.0

    @property
    def primary_color(self) -> str:
        return self.color_scheme[0] if self.color_scheme else "#FFFFFF"

    def describe(self) -> Dict[str, Any]:
        return {
            'family': self.family.value,
            'color_scheme': list(self.color_scheme),
            'font_size': self.font_size,
            'font_family': self.font_family,
            'emojis': self.emojis,
            'animation': self.animation.value,
            'background': self.background.value,
            'position': self.position.value,
            'opacity': self.opacity
        }


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class VideoJob:
    """Represents a video generation job"""
    id: str
    owner_id: str
    params: JobParams
    status: JobStatus = JobStatus.PENDING
    progress: int = 0
    error_message: Optional[str] = None
    generated_script: Optional[str] = None
    audio_url: Optional[str] = None
    background_url: Optional[str] = None
    final_video_url: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    def to_view(self) -> Dict[str, Any]:
        """JSON-friendly view returned to callers and pushed to subscribers"""
        return {
            'id': self.id,
            'owner_id': self.owner_id,
            'params': self.params.model_dump(mode="json"),
            'status': self.status.value,
            'progress': self.progress,
            'error_message': self.error_message,
            'generated_script': self.generated_script,
            'audio_url': self.audio_url,
            'background_url': self.background_url,
            'final_video_url': self.final_video_url,
            'metadata': dict(self.metadata),
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None
        }


@dataclass
class CaptionSegment:
    """Represents a timed caption chunk"""
    text: str
    start: float
    end: float
    emphasis: bool = False
    icon: Optional[str] = None

    @property
    def duration(self) -> float:
        return self.end - self.start

    @property
    def display_text(self) -> str:
        return f"{self.icon} {self.text}" if self.icon else self.text


@dataclass
class ProcessingResult:
    """Represents the result of one pipeline run"""
    success: bool
    stages_completed: List[str]
    error: Optional[str] = None
    error_kind: Optional[str] = None
    metrics: Dict[str, Any] = None
    processing_time_sec: Optional[float] = None
