"""
Video generation pipeline.

Runs the generation stages for one job inside its own work area and
reports every stage transition through the ``advance`` callback, which
persists and broadcasts the change.
"""

import time
import logging
from typing import Dict, Any, List, Optional, Callable

from .models import VideoJob, JobStatus, ProcessingResult
from .adapters.base import TextGenerator, SpeechSynthesizer, StockMediaSearch, MediaEngine
from .config import WorkerConfig
from .errors import PipelineError, JobCancelled
from .pipeline.workspace import WorkArea
from .pipeline.script import generate_script
from .pipeline.speech import synthesize_narration
from .pipeline.background import acquire_background, VisualHints
from .pipeline.captions import resolve_style, generate_captions
from .pipeline.compose import compose_video
from .pipeline.publish import ArtifactPublisher
from .pipeline.util import get_file_size_bytes
from .logging_setup import log_exception

logger = logging.getLogger("reel_worker")

# advance(status, **changes) persists a transition; raises JobCancelled
AdvanceCallback = Callable[..., Any]


class VideoProcessor:
    """Handles video generation pipeline execution"""

    def __init__(self, config: WorkerConfig, text_generator: TextGenerator,
                 speech: SpeechSynthesizer, stock_search: Optional[StockMediaSearch],
                 engine: MediaEngine, publisher: ArtifactPublisher):
        self.config = config
        self.text_generator = text_generator
        self.speech = speech
        self.stock_search = stock_search
        self.engine = engine
        self.publisher = publisher

    @property
    def voice_params(self) -> Dict[str, Any]:
        return {
            'model': self.config.TTS_MODEL,
            'voice': self.config.TTS_VOICE,
            'speed': self.config.TTS_SPEED,
            'format': self.config.TTS_FORMAT
        }

    def process(self, job: VideoJob, advance: AdvanceCallback) -> ProcessingResult:
        """
        Generate the video for a single job.

        Args:
            job: Job in PENDING state
            advance: Persists a status change plus field changes

        Returns:
            ProcessingResult; on success the final video URL is in metrics
        """
        start_time = time.time()
        stages_completed: List[str] = []
        asset_sizes: Dict[str, int] = {}
        params = job.params
        profile = params.profile

        try:
            with WorkArea(self.config.WORK_DIR, job.id) as work_area:
                # Step 1: Script
                advance(JobStatus.GENERATING_SCRIPT)
                logger.info(f"GENERATING_SCRIPT: job {job.id}, topic '{params.topic}', style {params.style.value}")
                script = generate_script(
                    self.text_generator, params,
                    quality_review=self.config.ENABLE_QUALITY_REVIEW,
                    quality_threshold=self.config.QUALITY_THRESHOLD
                )
                script_metadata = {'script_analysis': script.analysis()}
                if script.tokens is not None:
                    script_metadata['script_tokens'] = script.tokens
                if script.quality is not None:
                    script_metadata['quality_assessment'] = script.quality.model_dump()
                advance(JobStatus.GENERATING_SCRIPT, generated_script=script.text, metadata=script_metadata)
                stages_completed.append("script")

                # Step 2: Narration
                advance(JobStatus.GENERATING_AUDIO)
                narration = synthesize_narration(
                    self.speech, self.engine, script.text, work_area,
                    self.voice_params, script.output.key_moments
                )
                audio_url = self.publisher.publish(job.id, narration.path, f"audio.{self.config.TTS_FORMAT}")
                asset_sizes['audio'] = narration.size_bytes
                advance(JobStatus.GENERATING_AUDIO, audio_url=audio_url, metadata={
                    'audio_length_sec': round(narration.duration, 3),
                    'voice_model': f"{self.config.TTS_MODEL}/{self.config.TTS_VOICE}"
                })
                stages_completed.append("audio")

                # Step 3: Background
                advance(JobStatus.FETCHING_BACKGROUND)
                tone = script.output.emotional_tone
                hints = VisualHints(
                    palette=script.palette,
                    mood=" ".join(filter(None, [script.output.mood, tone])),
                    motion=script.output.motion
                )
                background = acquire_background(
                    self.stock_search, self.engine, params.background_mode, profile,
                    script.keywords, hints, max(float(params.duration), narration.duration),
                    work_area, seed=job.id, fps=self.config.MOTION_FPS
                )
                background_url = self.publisher.publish(job.id, background.path, "background.mp4")
                asset_sizes['background'] = background.size_bytes
                advance(JobStatus.FETCHING_BACKGROUND, background_url=background_url, metadata={
                    'background_source': background.source,
                    'background_mode': background.mode.value
                })
                stages_completed.append("background")

                # Step 4: Captions and composition
                advance(JobStatus.RENDERING_VIDEO)
                render_start = time.time()
                style = resolve_style(params.caption_style, tone)
                track = generate_captions(
                    script.text, narration.duration, style, profile, work_area,
                    max_words=self.config.MAX_WORDS_PER_CAPTION,
                    overlay_fps=self.config.CAPTION_OVERLAY_FPS
                )
                final_path = compose_video(self.engine, background.path, narration.path, track, profile, work_area)
                render_time = time.time() - render_start
                asset_sizes['final'] = get_file_size_bytes(final_path)
                advance(JobStatus.RENDERING_VIDEO, metadata={
                    'caption_segments': len(track.segments),
                    'caption_style': style.describe(),
                    'render_time_sec': round(render_time, 3)
                })
                stages_completed.append("render")

                # Step 5: Upload
                advance(JobStatus.UPLOADING)
                final_url = self.publisher.publish(job.id, final_path, "final.mp4")
                advance(JobStatus.UPLOADING, final_video_url=final_url, metadata={'asset_sizes': asset_sizes})
                stages_completed.append("upload")

            processing_time = time.time() - start_time
            logger.info(f"UPLOADING: pipeline completed for job {job.id} in {processing_time:.2f}s")

            return ProcessingResult(
                success=True,
                stages_completed=stages_completed,
                metrics={
                    'final_video_url': final_url,
                    'caption_segments': len(track.segments),
                    'audio_length_sec': narration.duration
                },
                processing_time_sec=processing_time
            )

        except JobCancelled as e:
            logger.info(f"Job {job.id} was cancelled, stopping after {stages_completed or ['start']}")
            return self._failure(e, stages_completed, start_time)

        except PipelineError as e:
            log_exception(logger, f"Pipeline failed for job {job.id}: {e.user_message}")
            return self._failure(e, stages_completed, start_time)

        except Exception as e:
            log_exception(logger, f"Unexpected error in pipeline for job {job.id}: {e}")
            return ProcessingResult(
                success=False,
                stages_completed=stages_completed,
                error=f"Unexpected error: {e}",
                error_kind="UnexpectedError",
                metrics={'failed_after_stage': stages_completed[-1] if stages_completed else 'start'},
                processing_time_sec=time.time() - start_time
            )

    def _failure(self, error: PipelineError, stages_completed: List[str], start_time: float) -> ProcessingResult:
        return ProcessingResult(
            success=False,
            stages_completed=stages_completed,
            error=error.user_message,
            error_kind=error.kind,
            metrics={'failed_after_stage': stages_completed[-1] if stages_completed else 'start'},
            processing_time_sec=time.time() - start_time
        )
