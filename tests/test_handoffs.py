"""Tests for the stage boundary contracts."""

from datetime import datetime, timezone

import pytest
from pydantic import BaseModel

from mailcraft.pipeline.exceptions import ErrorKind, SchemaViolation
from mailcraft.pipeline.handoffs import (
    ContentToDesign,
    QualityToDelivery,
    validate_content_to_design,
    validate_design_to_quality,
    validate_quality_to_delivery,
    validate_stage_output,
)
from mailcraft.pipeline.types import StageName


def test_content_to_design_accepts_opaque_package():
    envelope = validate_content_to_design({"content_package": "anything at all"})
    assert isinstance(envelope, ContentToDesign)
    assert envelope.content_package == "anything at all"
    assert envelope.boundary == "content->design"


def test_extra_fields_are_carried_forward():
    envelope = validate_design_to_quality(
        {"email_package": {"html_content": "<p/>"}, "notes": ["checked"]}
    )
    assert envelope.model_extra == {"notes": ["checked"]}


def test_missing_envelope_field_is_schema_violation():
    with pytest.raises(SchemaViolation) as excinfo:
        validate_design_to_quality({"html_content": "<p/>"})

    error = excinfo.value
    assert error.kind is ErrorKind.SCHEMA_VIOLATION
    assert error.retryable is False
    assert error.boundary == "design->quality"
    assert error.missing_fields == ["email_package"]


def test_null_envelope_field_is_schema_violation():
    with pytest.raises(SchemaViolation) as excinfo:
        validate_content_to_design({"content_package": None})
    assert excinfo.value.missing_fields == ["content_package"]


def test_quality_to_delivery_requires_both_packages():
    with pytest.raises(SchemaViolation) as excinfo:
        validate_quality_to_delivery({"quality_package": {"quality_score": 88}})
    assert excinfo.value.missing_fields == ["email_package"]

    envelope = validate_quality_to_delivery(
        {"quality_package": {"quality_score": 88}, "email_package": {"html_content": "<p/>"}}
    )
    assert isinstance(envelope, QualityToDelivery)


def test_non_mapping_payload_rejected():
    with pytest.raises(SchemaViolation) as excinfo:
        validate_content_to_design(["content_package"])
    assert excinfo.value.missing_fields == ["content_package"]


def test_model_payload_accepted():
    class DesignOutput(BaseModel):
        email_package: dict

    envelope = validate_design_to_quality(DesignOutput(email_package={"html_content": "<p/>"}))
    assert envelope.email_package == {"html_content": "<p/>"}


def test_sender_cannot_relabel_boundary():
    envelope = validate_content_to_design({"content_package": {}, "boundary": "quality->delivery"})
    assert envelope.boundary == "content->design"


def test_required_fields():
    assert ContentToDesign.required_fields() == ["content_package"]
    assert sorted(QualityToDelivery.required_fields()) == ["email_package", "quality_package"]


def test_stage_output_tags_failing_stage():
    with pytest.raises(SchemaViolation) as excinfo:
        validate_stage_output(StageName.QUALITY, {"quality_package": {}})
    assert excinfo.value.stage == "quality"


def test_delivery_output_has_no_contract_but_must_be_a_mapping():
    assert validate_stage_output(StageName.DELIVERY, {"delivery_status": "sent"}) is None
    with pytest.raises(SchemaViolation):
        validate_stage_output(StageName.DELIVERY, "sent")


def test_sender_trace_keys_are_kept_as_extras():
    sent_at = datetime(2025, 3, 1, 9, 30, tzinfo=timezone.utc)

    envelope = validate_content_to_design(
        {"content_package": {"x": 1}, "timestamp": sent_at, "trace_id": 42}
    )

    assert envelope.model_extra == {"timestamp": sent_at, "trace_id": 42}
    assert envelope.handoff_trace_id is None


def test_stamped_copy_carries_run_trace_data():
    envelope = validate_content_to_design({"content_package": {}, "trace_id": "sender-7"})
    stamped_at = datetime(2025, 3, 1, tzinfo=timezone.utc)

    stamped = envelope.stamped("run-1", stamped_at)

    assert stamped.handoff_trace_id == "run-1"
    assert stamped.handoff_timestamp == stamped_at
    assert stamped.model_extra == {"trace_id": "sender-7"}
    assert envelope.handoff_trace_id is None
