"""
Error taxonomy for the generation pipeline.

Every stage failure is a PipelineError subclass; the orchestrator turns
the error into the job's FAILED state using its kind and summary.
"""

from typing import Any, Optional


class PipelineError(Exception):
    """Base class for stage failures that abort a job"""

    summary = "Video generation failed"

    def __init__(self, detail: str = "", stage: Optional[str] = None):
        super().__init__(detail)
        self.detail = detail
        self.stage = stage

    @property
    def kind(self) -> str:
        return type(self).__name__

    @property
    def user_message(self) -> str:
        if self.detail:
            return f"{self.summary}: {self.detail}"
        return self.summary


class ContentGenerationFailed(PipelineError):
    summary = "Script generation failed"


class SpeechSynthesisFailed(PipelineError):
    summary = "Narration audio generation failed"


class BackgroundAcquisitionFailed(PipelineError):
    summary = "Background generation failed"


class CaptionGenerationFailed(PipelineError):
    summary = "Caption generation failed"


class CompositionFailed(PipelineError):
    summary = "Video rendering failed"


class PublishFailed(PipelineError):
    summary = "Asset upload failed"


class JobCancelled(PipelineError):
    summary = "Cancelled by user"


class StructuredOutputError(Exception):
    """A text-generation payload did not match the expected structure"""

    def __init__(self, message: str, payload: Any = None):
        super().__init__(message)
        self.payload = payload


class StockSearchError(Exception):
    """Stock media search or download failed; always recovered locally"""


class InvalidJobParams(ValueError):
    """Job parameters rejected at submission time"""

    def __init__(self, message: str, errors: Optional[list] = None):
        super().__init__(message)
        self.errors = errors or []


class InvalidTransition(Exception):
    """A status update would violate the job state machine"""

    def __init__(self, current_status: Any, attempted_status: Any):
        super().__init__(f"Invalid status transition: {current_status} -> {attempted_status}")
        self.current_status = current_status
        self.attempted_status = attempted_status


class MediaEngineError(Exception):
    """The audio/video engine failed to probe or render a file"""

    def __init__(self, message: str, stderr: str = ""):
        super().__init__(message)
        self.stderr = stderr


class JobNotFound(KeyError):
    """No job record exists for the given id"""
