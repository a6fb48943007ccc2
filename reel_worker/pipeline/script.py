"""
Narration script generation.

Runs the style-specific instruction template through the text generator,
validates the structured payload and allows exactly one repair round
trip for malformed output. Transport failures are not retried.
"""

import json
import logging
import math
import re
from dataclasses import dataclass
from typing import Optional, Dict, Any, List, Literal, Tuple

from pydantic import BaseModel, Field, ValidationError, field_validator

from ..adapters.base import TextGenerator
from ..errors import ContentGenerationFailed, StructuredOutputError
from ..models import JobParams, VideoStyle

logger = logging.getLogger("reel_worker")

WORDS_PER_SECOND = 2.5
WORD_LIMIT_SLACK = 1.2

EmotionalTone = Literal["inspirational", "dramatic", "peaceful", "energetic", "contemplative"]
MotionSpeed = Literal["slow", "medium", "fast", "static"]

TONE_PALETTES: Dict[str, List[str]] = {
    "inspirational": ["#FFD700", "#FF6B6B", "#4ECDC4"],
    "dramatic": ["#FF4757", "#2F3542", "#FFA502"],
    "peaceful": ["#70A1FF", "#7BED9F", "#DDA0DD"],
    "energetic": ["#FF6B35", "#F7931E", "#FFD700"],
    "contemplative": ["#6C5CE7", "#A29BFE", "#FD79A8"],
}

TOPIC_KEYWORDS: List[Tuple[str, str]] = [
    ("john 3:16", "love light hope"),
    ("psalm 23", "peaceful valley shepherd"),
    ("matthew 5", "mountain sermon teaching"),
    ("luke 2", "baby birth star"),
    ("romans 8", "victory freedom joy"),
    ("genesis", "creation nature light"),
    ("goliath", "battle strength courage"),
    ("david", "warrior shepherd fields"),
    ("revelation", "heaven golden light"),
    ("noah", "ark rainbow storm"),
    ("moses", "desert mountain fire"),
    ("jesus", "peaceful light healing"),
    ("paul", "journey roads travel"),
    ("mary", "gentle mother peaceful"),
    ("peter", "ocean fishing boat"),
]
DEFAULT_TOPIC_KEYWORDS = "peaceful nature spiritual light"

STYLE_INSTRUCTIONS: Dict[VideoStyle, str] = {
    VideoStyle.TIKTOK: (
        "- Open with a hook that lands in the first 3 seconds\n"
        "- Keep the language modern and conversational\n"
        "- Use dramatic pauses and emphasis\n"
        "- Speak directly to the viewer as \"you\"\n"
        "- Finish on a powerful takeaway"
    ),
    VideoStyle.INSTAGRAM_REEL: (
        "- Start with a compelling opening line\n"
        "- Tell it as a story\n"
        "- Leave room for on-screen text moments\n"
        "- Land one clear message or lesson"
    ),
    VideoStyle.YOUTUBE_SHORT: (
        "- Grab attention immediately\n"
        "- Teach something of real value\n"
        "- Build with a reveal or cliffhanger\n"
        "- Invite the viewer to engage"
    ),
}

# Literal braces are doubled: templates are rendered with str.format.
SCRIPT_TEMPLATE = """You write short, engaging and theologically accurate Bible videos for social media.

Requirements:
- Hook the viewer in the first 3 seconds with a question or bold statement
- Conversational language for young adults, faithful to the text
- Mark strategic pauses and emphasis points as key moments
- End with a memorable takeaway or call to action
- Use emojis sparingly

Respond with JSON using exactly these keys:
script, hook, call_to_action, key_moments (list of {{"timestamp", "text", "emphasis"}}),
keywords (at most 10 visual search terms), estimated_duration (seconds),
emotional_tone (inspirational|dramatic|peaceful|energetic|contemplative),
mood, color_palette (at most 5 #RRGGBB colors), motion (slow|medium|fast|static).

Example
Topic: John 3:16 | Style: TikTok | Duration: 45s | Theme: God's love
{{"script": "Stop scrolling for a second. What if one sentence could rewrite your whole story? John 3:16 says God loved the world so much that He gave His only Son. Not a distant love. Not a someday love. A love that came close enough to find you. So if you are wondering whether you matter today, the answer was settled long ago. You are loved.", "hook": "What if one sentence could rewrite your whole story?", "call_to_action": "You are loved. Share this with someone who needs it.", "key_moments": [{{"timestamp": 3, "text": "one sentence could rewrite your whole story", "emphasis": true}}, {{"timestamp": 14, "text": "God loved the world so much", "emphasis": true}}, {{"timestamp": 38, "text": "You are loved", "emphasis": true}}], "keywords": ["sunrise", "light", "embrace", "sky", "hope"], "estimated_duration": 42, "emotional_tone": "inspirational", "mood": "warm and hopeful", "color_palette": ["#FFD700", "#FF6B6B"], "motion": "slow"}}

Example
Topic: Philippians 4:13 | Style: Instagram Reel | Duration: 60s | Theme: Strength
{{"script": "Tired of carrying it all by yourself? Paul wrote these words from a prison cell, and the chains did not get the last word. Philippians 4:13: I can do all things through Christ who strengthens me. All things. The hard conversation. The new job. The season that feels too heavy. You are not running on your own strength anymore. Take the next step, because you do not take it alone.", "hook": "Tired of carrying it all by yourself?", "call_to_action": "Take the next step. You do not take it alone.", "key_moments": [{{"timestamp": 6, "text": "the chains did not get the last word", "emphasis": true}}, {{"timestamp": 20, "text": "All things", "emphasis": true}}, {{"timestamp": 52, "text": "you do not take it alone", "emphasis": true}}], "keywords": ["mountain", "climb", "strength", "victory", "storm"], "estimated_duration": 57, "emotional_tone": "energetic", "mood": "determined", "color_palette": ["#FF6B35", "#F7931E"], "motion": "medium"}}

Now write the script.
Topic: {topic} | Style: {style_name} | Duration: {duration}s | Theme: {theme}
Style guidance:
{style_instructions}
The script must be at most {word_limit} words so it can be spoken in about {duration} seconds.
Custom requirements: {custom_prompt}
"""

REPAIR_TEMPLATE = """The JSON below does not match the required structure.

Original output: {completion}
Error: {error}

Return only the corrected JSON object with the keys script, hook, call_to_action,
key_moments, keywords, estimated_duration, emotional_tone, mood, color_palette and
motion. The script must be at most {word_limit} words.
"""

QUALITY_TEMPLATE = """You review Bible content for social media. Score the script from 1 to 10 on
theological_accuracy, engagement_potential, platform_optimization and overall_quality,
list at most 5 concrete suggestions, and set approved to true only if every score is 7 or higher.

Topic: {topic}
Platform: {style_name}
Duration: {duration}s
Script: {script}

Respond with JSON using the keys theological_accuracy, engagement_potential,
platform_optimization, overall_quality, suggestions, approved.
"""


class KeyMoment(BaseModel):
    timestamp: float = Field(ge=0)
    text: str = Field(min_length=1)
    emphasis: bool = False


class ScriptOutput(BaseModel):
    """Structured payload returned by the script prompt"""
    script: str = Field(min_length=30)
    hook: str = Field(default="", max_length=200)
    call_to_action: str = Field(default="", max_length=200)
    key_moments: List[KeyMoment] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list, max_length=10)
    estimated_duration: float = Field(ge=15, le=120)
    emotional_tone: EmotionalTone
    mood: Optional[str] = None
    color_palette: List[str] = Field(default_factory=list, max_length=5)
    motion: MotionSpeed = "medium"

    @field_validator("color_palette")
    @classmethod
    def _hex_palette(cls, value: List[str]) -> List[str]:
        for color in value:
            if not re.match(r"^#[0-9a-fA-F]{6}$", color):
                raise ValueError(f"invalid color '{color}', expected #RRGGBB")
        return [color.upper() for color in value]

    @property
    def word_count(self) -> int:
        return len(self.script.split())


class QualityAssessment(BaseModel):
    theological_accuracy: int = Field(ge=1, le=10)
    engagement_potential: int = Field(ge=1, le=10)
    platform_optimization: int = Field(ge=1, le=10)
    overall_quality: int = Field(ge=1, le=10)
    suggestions: List[str] = Field(default_factory=list, max_length=5)
    approved: bool


@dataclass
class ScriptResult:
    """Validated script plus derived values the later stages need"""
    output: ScriptOutput
    keywords: List[str]
    tokens: Optional[int] = None
    quality: Optional[QualityAssessment] = None
    repaired: bool = False

    @property
    def text(self) -> str:
        return self.output.script

    @property
    def palette(self) -> List[str]:
        return self.output.color_palette or TONE_PALETTES.get(self.output.emotional_tone, [])

    def analysis(self) -> Dict[str, Any]:
        return {
            'hook': self.output.hook,
            'call_to_action': self.output.call_to_action,
            'key_moments': [moment.model_dump() for moment in self.output.key_moments],
            'emotional_tone': self.output.emotional_tone,
            'keywords': list(self.keywords),
            'estimated_duration': self.output.estimated_duration,
            'word_count': self.output.word_count,
            'repaired': self.repaired
        }


def word_limit_for(duration: int) -> int:
    """Upper bound on narration words for a target duration"""
    return math.ceil(duration * WORDS_PER_SECOND * WORD_LIMIT_SLACK)


def extract_search_keywords(topic: str) -> List[str]:
    """Visual search keywords derived from the topic reference"""
    lowered = topic.lower()
    for needle, keywords in TOPIC_KEYWORDS:
        if needle in lowered:
            return keywords.split()
    return DEFAULT_TOPIC_KEYWORDS.split()


def build_prompt_parameters(params: JobParams) -> Dict[str, Any]:
    return {
        'topic': params.topic,
        'style_name': params.profile.platform,
        'style_instructions': STYLE_INSTRUCTIONS[params.style],
        'duration': params.duration,
        'word_limit': word_limit_for(params.duration),
        'theme': params.theme or "none",
        'custom_prompt': params.custom_prompt or "none"
    }


def _decode(raw: Any) -> Tuple[Dict[str, Any], Optional[int]]:
    if isinstance(raw, (bytes, str)):
        raw = json.loads(raw)
    if not isinstance(raw, dict):
        raise ValueError("payload is not a JSON object")
    payload = dict(raw)
    usage = payload.pop('_usage', None) or {}
    return payload, usage.get('total_tokens')


def _validate(raw: Any, word_limit: int) -> Tuple[Optional[ScriptOutput], Optional[str], Optional[int]]:
    """Returns (script, error, tokens); script is None when validation failed"""
    try:
        payload, tokens = _decode(raw)
    except ValueError as e:
        return None, str(e), None

    try:
        output = ScriptOutput.model_validate(payload)
    except ValidationError as e:
        return None, str(e), tokens

    if output.word_count > word_limit:
        return None, f"script has {output.word_count} words, limit is {word_limit}", tokens

    return output, None, tokens


def _complete(generator: TextGenerator, template: str, parameters: Dict[str, Any]) -> Tuple[Any, Optional[str]]:
    """Call the generator; returns (payload, structural_error)"""
    try:
        return generator.complete(template, parameters), None
    except StructuredOutputError as e:
        return e.payload, str(e)
    except Exception as e:
        raise ContentGenerationFailed(f"text generation unavailable: {e}", stage="generating_script") from e


def review_script(generator: TextGenerator, params: JobParams, script: ScriptOutput) -> QualityAssessment:
    raw, error = _complete(generator, QUALITY_TEMPLATE, {
        'topic': params.topic,
        'style_name': params.profile.platform,
        'duration': params.duration,
        'script': script.script
    })
    if error:
        raise ContentGenerationFailed(f"quality review returned malformed output: {error}", stage="generating_script")
    try:
        payload, _ = _decode(raw)
        return QualityAssessment.model_validate(payload)
    except (ValueError, ValidationError) as e:
        raise ContentGenerationFailed(f"quality review returned malformed output: {e}", stage="generating_script")


def generate_script(generator: TextGenerator, params: JobParams,
                    quality_review: bool = False, quality_threshold: int = 7) -> ScriptResult:
    """
    Generate and validate the narration script for a job.

    Args:
        generator: Text generation service
        params: Job parameters
        quality_review: Run the second-pass quality review
        quality_threshold: Minimum overall quality when reviewing

    Returns:
        ScriptResult with the validated payload and search keywords

    Raises:
        ContentGenerationFailed: upstream unavailable, payload still invalid
            after one repair, or quality review rejected the script
    """
    word_limit = word_limit_for(params.duration)
    raw, error = _complete(generator, SCRIPT_TEMPLATE, build_prompt_parameters(params))
    output, tokens = None, None
    if error is None:
        output, error, tokens = _validate(raw, word_limit)

    repaired = False
    if output is None:
        logger.warning(f"GENERATING_SCRIPT: invalid payload for '{params.topic}', requesting repair: {error}")
        completion = raw if isinstance(raw, str) else json.dumps(raw, default=str)
        raw, repair_error = _complete(generator, REPAIR_TEMPLATE, {
            'completion': completion,
            'error': error,
            'word_limit': word_limit
        })
        if repair_error is None:
            output, repair_error, repair_tokens = _validate(raw, word_limit)
            if repair_tokens is not None:
                tokens = (tokens or 0) + repair_tokens
        if output is None:
            raise ContentGenerationFailed(f"invalid script payload after repair: {repair_error}",
                                          stage="generating_script")
        repaired = True

    keywords = [k.strip() for k in output.keywords if k and k.strip()]
    if not keywords:
        keywords = extract_search_keywords(params.topic)
        logger.info(f"GENERATING_SCRIPT: no visual keywords returned, using topic keywords {keywords}")

    quality = None
    if quality_review:
        quality = review_script(generator, params, output)
        if not quality.approved or quality.overall_quality < quality_threshold:
            suggestions = ", ".join(quality.suggestions) or "no suggestions given"
            raise ContentGenerationFailed(f"content quality insufficient: {suggestions}",
                                          stage="generating_script")

    logger.info(f"GENERATING_SCRIPT: {output.word_count} words, tone {output.emotional_tone}")
    return ScriptResult(output=output, keywords=keywords, tokens=tokens, quality=quality, repaired=repaired)
