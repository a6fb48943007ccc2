import logging
from dataclasses import dataclass
from typing import Dict, Any, Iterable

from ..adapters.base import SpeechSynthesizer, MediaEngine
from ..errors import SpeechSynthesisFailed
from .util import get_file_size_bytes
from .workspace import WorkArea

logger = logging.getLogger("reel_worker")

PAUSE_MARKER = "... "


@dataclass
class NarrationResult:
    path: str
    duration: float
    size_bytes: int


def add_pacing(text: str, key_moments: Iterable[Any]) -> str:
    """
    Insert a short pause before each emphasized key-moment phrase.

    Only the first occurrence of a phrase is paced and phrases not found
    in the text are ignored.
    """
    paced = text
    for moment in key_moments:
        if not getattr(moment, 'emphasis', False):
            continue
        phrase = (getattr(moment, 'text', '') or '').strip()
        if not phrase:
            continue
        index = paced.lower().find(phrase.lower())
        if index < 0:
            continue
        if paced[max(0, index - len(PAUSE_MARKER)):index] == PAUSE_MARKER:
            continue
        paced = paced[:index] + PAUSE_MARKER + paced[index:]
    return paced


def synthesize_narration(synthesizer: SpeechSynthesizer, engine: MediaEngine, text: str,
                         work_area: WorkArea, voice_params: Dict[str, Any],
                         key_moments: Iterable[Any] = ()) -> NarrationResult:
    """
    Synthesize narration audio into the work area and measure its length.

    The duration comes from probing the written file, never from the
    text length.

    Raises:
        SpeechSynthesisFailed: synthesis, write or probe failed
    """
    spoken = add_pacing(text, key_moments)
    audio_format = voice_params.get('format', 'mp3')
    audio_path = work_area.file(f"narration.{audio_format}")

    try:
        audio = synthesizer.synthesize(spoken, voice_params)
    except Exception as e:
        raise SpeechSynthesisFailed(f"speech service error: {e}", stage="generating_audio") from e

    if not audio:
        raise SpeechSynthesisFailed("speech service returned no audio", stage="generating_audio")

    try:
        with open(audio_path, 'wb') as fh:
            fh.write(audio)
        duration = engine.probe_duration(audio_path)
    except Exception as e:
        raise SpeechSynthesisFailed(f"could not measure narration audio: {e}", stage="generating_audio") from e

    if duration <= 0:
        raise SpeechSynthesisFailed("narration audio has no duration", stage="generating_audio")

    logger.info(f"GENERATING_AUDIO: {duration:.2f}s of narration written to {audio_path}")
    return NarrationResult(path=audio_path, duration=duration, size_bytes=get_file_size_bytes(audio_path))
