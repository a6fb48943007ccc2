"""
OpenAI adapters for text generation and speech synthesis.
"""

import json
import logging
from typing import Any, Dict, Optional

from openai import OpenAI

from .base import TextGenerator, SpeechSynthesizer
from ..errors import StructuredOutputError

logger = logging.getLogger("reel_worker")

JSON_SYSTEM_PROMPT = "You are a content generation service. Respond with a single valid JSON object and nothing else."


class OpenAITextGenerator(TextGenerator):
    """Chat-completions backed text generation returning JSON payloads"""

    def __init__(self, model: str = "gpt-4o-mini", temperature: float = 0.7,
                 max_tokens: int = 1000, client: Optional[OpenAI] = None):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.client = client or OpenAI()

    def complete(self, instruction_template: str, parameters: Dict[str, Any]) -> Dict[str, Any]:
        prompt = instruction_template.format(**parameters)

        logger.debug(f"Requesting completion from {self.model} ({len(prompt)} chars)")

        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": JSON_SYSTEM_PROMPT},
                {"role": "user", "content": prompt}
            ],
            response_format={"type": "json_object"},
            temperature=self.temperature,
            max_tokens=self.max_tokens
        )

        content = response.choices[0].message.content
        if not content:
            raise StructuredOutputError("Empty completion", payload=content)

        try:
            payload = json.loads(content)
        except json.JSONDecodeError as e:
            raise StructuredOutputError(f"Completion is not valid JSON: {e}", payload=content)

        if not isinstance(payload, dict):
            raise StructuredOutputError("Completion is not a JSON object", payload=content)

        usage = getattr(response, 'usage', None)
        if usage is not None and getattr(usage, 'total_tokens', None) is not None:
            payload['_usage'] = {'total_tokens': usage.total_tokens}

        return payload


class OpenAISpeechSynthesizer(SpeechSynthesizer):
    """OpenAI TTS backed speech synthesis"""

    def __init__(self, client: Optional[OpenAI] = None):
        self.client = client or OpenAI()

    def synthesize(self, text: str, voice_params: Dict[str, Any]) -> bytes:
        model = voice_params.get('model', 'tts-1')
        voice = voice_params.get('voice', 'alloy')

        logger.debug(f"Synthesizing {len(text)} chars with {model}/{voice}")

        response = self.client.audio.speech.create(
            model=model,
            voice=voice,
            input=text,
            response_format=voice_params.get('format', 'mp3'),
            speed=voice_params.get('speed', 1.0)
        )
        return response.content
