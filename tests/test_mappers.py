"""Tests for value mappers and the generation response."""

import asyncio

import pytest

from fakes import QualitySpecialist, make_specialists
from mailcraft.pipeline import run_pipeline
from mailcraft.pipeline.mappers import map_campaign_type, map_tone, to_generation_response


@pytest.mark.parametrize(
    "value, expected",
    [
        ("informational", "informational"),
        ("SEASONAL", "seasonal"),
        (" urgent ", "urgent"),
        ("newsletter", "newsletter"),
        ("promotional", "promotional"),
        ("flash-sale", "promotional"),
        (None, "promotional"),
    ],
)
def test_map_campaign_type(value, expected):
    assert map_campaign_type(value) == expected


@pytest.mark.parametrize(
    "value, expected",
    [
        ("encouraging", "friendly"),
        ("informative", "professional"),
        ("Luxury", "luxury"),
        ("family", "family"),
        ("sarcastic", "friendly"),
        (None, "friendly"),
    ],
)
def test_map_tone(value, expected):
    assert map_tone(value) == expected


def test_success_response(sleep):
    result = asyncio.run(run_pipeline("Paris flight sale", make_specialists(), sleep=sleep))

    response = to_generation_response(result)

    assert response.status == "success"
    assert response.trace_id == result.trace_id
    assert response.quality_score == 92.0
    assert response.quality_check == "pass"
    assert response.html is not None
    assert response.campaign_metadata["quality_controlled"] is True
    assert response.campaign_metadata["stages_executed"] == [
        "content",
        "design",
        "quality",
        "delivery",
    ]
    assert response.delivery_receipt["campaign_id"] == "cmp-001"


def test_low_score_fails_quality_check(sleep):
    result = asyncio.run(
        run_pipeline("Paris flight sale", make_specialists(quality=QualitySpecialist(score=55)), sleep=sleep)
    )

    response = to_generation_response(result, quality_threshold=70)

    assert response.status == "success"
    assert response.quality_check == "fail"
    assert response.campaign_metadata["quality_controlled"] is False


def test_error_response(sleep):
    specialists = make_specialists(quality=QualitySpecialist(forward_email=False))
    result = asyncio.run(run_pipeline("Paris flight sale", specialists, sleep=sleep))

    response = to_generation_response(result)

    assert response.status == "error"
    assert response.failed_stage == "quality"
    assert response.error_kind == "schema_violation"
    assert "email_package" in response.error_message
    assert response.quality_check == "not_executed"
    assert response.html is None
