import json

import pytest

from reel_worker.errors import ContentGenerationFailed, StructuredOutputError
from reel_worker.models import JobParams
from reel_worker.pipeline.script import (
    REPAIR_TEMPLATE, SCRIPT_TEMPLATE, QUALITY_TEMPLATE, build_prompt_parameters, extract_search_keywords,
    generate_script, word_limit_for
)

from conftest import FakeTextGenerator, SCRIPT_TEXT, script_payload

PARAMS = JobParams(topic="John 3:16", theme="God's love", duration=60)


def test_word_limit_allows_twenty_percent_slack():
    assert word_limit_for(60) == 180
    assert word_limit_for(15) == 45


def test_prompt_parameters_render_into_template():
    parameters = build_prompt_parameters(PARAMS)
    prompt = SCRIPT_TEMPLATE.format(**parameters)

    assert parameters["style_name"] == "TikTok"
    assert "Topic: John 3:16 | Style: TikTok | Duration: 60s | Theme: God's love" in prompt
    assert "at most 180 words" in prompt
    assert "Custom requirements: none" in prompt


@pytest.mark.parametrize("topic,expected", [
    ("Psalm 23:1", ["peaceful", "valley", "shepherd"]),
    ("David and Goliath", ["battle", "strength", "courage"]),
    ("Ecclesiastes 3", ["peaceful", "nature", "spiritual", "light"]),
])
def test_topic_keywords(topic, expected):
    assert extract_search_keywords(topic) == expected


def test_valid_payload_is_accepted_first_time():
    generator = FakeTextGenerator()

    result = generate_script(generator, PARAMS)

    assert result.text == SCRIPT_TEXT
    assert result.keywords == ["sunrise", "light", "hope"]
    assert result.tokens == 420
    assert result.repaired is False
    assert result.palette == ["#FFD700", "#FF6B6B"]
    assert len(generator.calls) == 1
    assert result.analysis()["word_count"] == len(SCRIPT_TEXT.split())


def test_string_payload_is_decoded():
    payload = script_payload()
    payload.pop("_usage")
    generator = FakeTextGenerator(responses=[json.dumps(payload)])

    result = generate_script(generator, PARAMS)

    assert result.tokens is None
    assert result.output.emotional_tone == "inspirational"


def test_one_repair_round_trip_for_schema_violation():
    broken = script_payload(emotional_tone="sleepy")
    generator = FakeTextGenerator(responses=[broken, script_payload()])

    result = generate_script(generator, PARAMS)

    assert result.repaired is True
    assert generator.calls[1][0] == REPAIR_TEMPLATE
    assert "emotional_tone" in generator.calls[1][1]["error"]
    assert result.tokens == 840


def test_repair_is_attempted_only_once():
    generator = FakeTextGenerator(responses=[script_payload(script="too short"), script_payload(script="short")])

    with pytest.raises(ContentGenerationFailed) as exc_info:
        generate_script(generator, PARAMS)

    assert len(generator.calls) == 2
    assert exc_info.value.kind == "ContentGenerationFailed"


def test_overlong_script_is_repaired():
    long_script = " ".join(["amen"] * 200)
    generator = FakeTextGenerator(responses=[script_payload(script=long_script), script_payload()])

    result = generate_script(generator, PARAMS)

    assert result.repaired is True
    assert "limit is 180" in generator.calls[1][1]["error"]


def test_transport_failure_is_not_retried():
    generator = FakeTextGenerator(responses=[ConnectionError("upstream down")])

    with pytest.raises(ContentGenerationFailed) as exc_info:
        generate_script(generator, PARAMS)

    assert "upstream down" in exc_info.value.user_message
    assert len(generator.calls) == 1


def test_structured_output_error_goes_to_repair():
    generator = FakeTextGenerator(responses=[StructuredOutputError("not JSON", payload="{oops"), script_payload()])

    result = generate_script(generator, PARAMS)

    assert result.repaired is True
    assert generator.calls[1][1]["completion"] == "{oops"


def test_missing_keywords_fall_back_to_topic():
    generator = FakeTextGenerator(responses=[script_payload(keywords=[])])

    result = generate_script(generator, JobParams(topic="Noah's ark"))

    assert result.keywords == ["ark", "rainbow", "storm"]


def test_missing_palette_uses_tone_palette():
    generator = FakeTextGenerator(responses=[script_payload(color_palette=[], emotional_tone="peaceful")])

    result = generate_script(generator, PARAMS)

    assert result.palette == ["#70A1FF", "#7BED9F", "#DDA0DD"]


def test_quality_review_rejects_low_scores():
    review = {
        "theological_accuracy": 8, "engagement_potential": 5, "platform_optimization": 6,
        "overall_quality": 5, "suggestions": ["stronger hook"], "approved": False
    }
    generator = FakeTextGenerator(responses=[script_payload(), review])

    with pytest.raises(ContentGenerationFailed) as exc_info:
        generate_script(generator, PARAMS, quality_review=True)

    assert "stronger hook" in str(exc_info.value)
    assert generator.calls[1][0] == QUALITY_TEMPLATE


def test_quality_review_attaches_assessment():
    review = {
        "theological_accuracy": 9, "engagement_potential": 8, "platform_optimization": 8,
        "overall_quality": 8, "suggestions": [], "approved": True
    }
    generator = FakeTextGenerator(responses=[script_payload(), review])

    result = generate_script(generator, PARAMS, quality_review=True)

    assert result.quality.overall_quality == 8
