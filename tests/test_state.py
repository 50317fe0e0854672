"""Tests for GenerationState merging."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from mailcraft.pipeline.exceptions import PreconditionViolation
from mailcraft.pipeline.state import (
    AssetData,
    CampaignMetadata,
    append_assets,
    check_preconditions,
    create_state,
    merge_metadata,
    merge_stage_output,
)
from mailcraft.pipeline.types import StageName

CONTENT = {
    "content_package": {"complete_content": {"subject": "Sale", "body": "Fly to Paris"}},
    "prices": {"entries": [{"origin": "MOW", "destination": "PAR", "price": 12000}]},
}
DESIGN = {"email_package": {"html_content": "<html/>", "assets": ["https://cdn/a.png"]}}
QUALITY = {"quality_package": {"quality_score": 81}, "email_package": {}}


def _through(*stages):
    state = create_state("Paris flight sale")
    outputs = {
        StageName.CONTENT: CONTENT,
        StageName.DESIGN: DESIGN,
        StageName.QUALITY: QUALITY,
        StageName.DELIVERY: {"delivery_status": "sent"},
    }
    for stage in stages:
        state = merge_stage_output(state, stage, outputs[stage])
    return state


def test_create_state_defaults():
    now = datetime(2025, 3, 1, tzinfo=timezone.utc)
    state = create_state("Paris flight sale", current_date=now)

    assert state.brief == "Paris flight sale"
    assert state.current_date == now
    assert state.html is None
    assert state.content is None
    assert state.assets == []
    assert state.qa_score == 0.0
    assert not state.qa_score_set


def test_brief_is_immutable():
    state = create_state("Paris flight sale")
    with pytest.raises(ValidationError):
        state.brief = "Rome"


def test_content_merge_sets_content_and_prices():
    state = _through(StageName.CONTENT)

    assert state.content.subject == "Sale"
    assert state.prices.offers_count == 1
    assert state.prices.min_price == 12000
    assert state.prices.entries[0].route == "MOW-PAR"
    assert state.stages_completed == [StageName.CONTENT]


def test_merge_leaves_input_state_untouched():
    before = create_state("Paris flight sale")
    after = merge_stage_output(before, StageName.CONTENT, CONTENT)

    assert before.content is None
    assert before.stages_completed == []
    assert after is not before


def test_content_without_complete_content_is_precondition_violation():
    with pytest.raises(PreconditionViolation) as excinfo:
        merge_stage_output(create_state("x"), StageName.CONTENT, {"content_package": {}})
    assert excinfo.value.field == "content"
    assert excinfo.value.stage == "content"


def test_design_merge_sets_html_and_assets():
    state = _through(StageName.CONTENT, StageName.DESIGN)
    assert state.html == "<html/>"
    assert [a.url for a in state.assets] == ["https://cdn/a.png"]


def test_quality_requires_html():
    state = _through(StageName.CONTENT)
    with pytest.raises(PreconditionViolation) as excinfo:
        merge_stage_output(state, StageName.QUALITY, QUALITY)
    assert excinfo.value.field == "html"


def test_delivery_requires_quality_score():
    state = _through(StageName.CONTENT, StageName.DESIGN)
    with pytest.raises(PreconditionViolation) as excinfo:
        check_preconditions(state, StageName.DELIVERY)
    assert excinfo.value.field == "qa_score"


def test_quality_score_never_set_before_html():
    state = _through(StageName.CONTENT, StageName.DESIGN, StageName.QUALITY)
    assert state.html is not None
    assert state.qa_score == 81.0
    assert state.qa_score_set


def test_quality_score_must_be_numeric():
    state = _through(StageName.CONTENT, StageName.DESIGN)
    with pytest.raises(PreconditionViolation):
        merge_stage_output(
            state, StageName.QUALITY, {"quality_package": {"quality_score": "great"}}
        )


def test_stage_cannot_merge_twice():
    state = _through(StageName.CONTENT)
    with pytest.raises(PreconditionViolation):
        merge_stage_output(state, StageName.CONTENT, CONTENT)


def test_delivery_writes_nothing_but_completion():
    before = _through(StageName.CONTENT, StageName.DESIGN, StageName.QUALITY)
    after = merge_stage_output(before, StageName.DELIVERY, {"delivery_status": "sent"})

    assert after.html == before.html
    assert after.qa_score == before.qa_score
    assert after.stages_completed[-1] is StageName.DELIVERY


def test_append_assets_preserves_order():
    a, b, c = (AssetData(url=f"https://cdn/{n}.png") for n in "abc")

    first = append_assets([], [a])
    second = append_assets(first, [b, c])

    assert [x.url for x in second] == [a.url, b.url, c.url]
    assert [x.url for x in first] == [a.url]
    assert append_assets(append_assets([a], [b]), [c]) == append_assets([a], append_assets([b], [c]))


def test_invalid_asset_rejected():
    state = _through(StageName.CONTENT)
    with pytest.raises(PreconditionViolation):
        merge_stage_output(
            state, StageName.DESIGN, {"email_package": {"html_content": "<p/>", "assets": [{"alt": "x"}]}}
        )


def test_metadata_accumulates_across_stages():
    state = create_state("x")
    state = merge_stage_output(
        state,
        StageName.CONTENT,
        {**CONTENT, "metadata": {"topic": "Paris", "routes_analyzed": ["MOW-PAR"], "prices_found": 3}},
    )
    state = merge_stage_output(
        state,
        StageName.DESIGN,
        {
            **DESIGN,
            "metadata": {
                "topic": "Rome",
                "routes_analyzed": ["MOW-PAR", "LED-PAR"],
                "prices_found": 2,
                "template": "hero-left",
            },
        },
    )

    meta = state.metadata
    assert meta.topic == "Paris"
    assert meta.routes_analyzed == ["MOW-PAR", "LED-PAR"]
    assert meta.prices_found == 5
    assert meta.model_extra == {"template": "hero-left"}


def test_merge_metadata_ignores_empty_updates():
    meta = CampaignMetadata(topic="Paris")
    assert merge_metadata(meta, None) == meta
    assert merge_metadata(meta, {"topic": None}).topic == "Paris"


def test_metadata_must_be_mapping():
    with pytest.raises(PreconditionViolation) as excinfo:
        merge_stage_output(create_state("x"), StageName.CONTENT, {**CONTENT, "metadata": ["oops"]})
    assert excinfo.value.field == "metadata"


def test_single_asset_url_is_one_asset():
    state = _through(StageName.CONTENT)

    state = merge_stage_output(
        state,
        StageName.DESIGN,
        {"email_package": {"html_content": "<p/>", "assets": "https://cdn/a.png"}},
    )

    assert [a.url for a in state.assets] == ["https://cdn/a.png"]


def test_assets_of_unexpected_type_rejected():
    state = _through(StageName.CONTENT)
    with pytest.raises(PreconditionViolation) as excinfo:
        merge_stage_output(
            state, StageName.DESIGN, {"email_package": {"html_content": "<p/>", "assets": 7}}
        )
    assert excinfo.value.field == "assets"


@pytest.mark.parametrize("score", [float("nan"), float("inf"), -1, 100.5])
def test_out_of_range_quality_score_rejected(score):
    state = _through(StageName.CONTENT, StageName.DESIGN)
    with pytest.raises(PreconditionViolation) as excinfo:
        merge_stage_output(state, StageName.QUALITY, {"quality_package": {"quality_score": score}})
    assert excinfo.value.field == "qa_score"


@pytest.mark.parametrize("score", [0, 100])
def test_quality_score_bounds_are_inclusive(score):
    state = _through(StageName.CONTENT, StageName.DESIGN)
    state = merge_stage_output(state, StageName.QUALITY, {"quality_package": {"quality_score": score}})
    assert state.qa_score == float(score)
