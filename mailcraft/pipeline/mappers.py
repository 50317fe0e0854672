"""Small mappers between caller-facing values and pipeline values."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from .models import PipelineResult


CampaignType = Literal["promotional", "informational", "seasonal", "urgent", "newsletter"]
Tone = Literal["professional", "friendly", "urgent", "casual", "luxury", "family"]

DEFAULT_QUALITY_THRESHOLD = 70.0

_CAMPAIGN_TYPES = {"informational", "seasonal", "urgent", "newsletter"}

_TONE_MAP = {
    "professional": "professional",
    "urgent": "urgent",
    "encouraging": "friendly",
    "informative": "professional",
    "casual": "casual",
    "luxury": "luxury",
    "family": "family",
}


def map_campaign_type(campaign_type: str | None) -> CampaignType:
    """Normalize a requested campaign type. Unknown values become promotional."""
    value = (campaign_type or "").strip().lower()
    if value in _CAMPAIGN_TYPES:
        return value  # type: ignore[return-value]
    return "promotional"


def map_tone(tone: str | None) -> Tone:
    """Normalize a requested tone. Unknown values become friendly."""
    return _TONE_MAP.get((tone or "").strip().lower(), "friendly")  # type: ignore[return-value]


class EmailGenerationResponse(BaseModel):
    """Caller-facing summary of a pipeline run, ready for serialization."""

    status: Literal["success", "error"]
    trace_id: str
    generation_time_ms: float
    quality_score: float | None = None
    quality_check: Literal["pass", "fail", "not_executed"] = "not_executed"
    html: str | None = None
    failed_stage: str | None = None
    error_kind: str | None = None
    error_message: str | None = None
    delivery_receipt: dict[str, Any] | None = None
    campaign_metadata: dict[str, Any] = Field(default_factory=dict)


def to_generation_response(
    result: PipelineResult,
    quality_threshold: float = DEFAULT_QUALITY_THRESHOLD,
) -> EmailGenerationResponse:
    """Flatten a PipelineResult into an EmailGenerationResponse."""
    state = result.final_state
    metadata = state.metadata.model_dump() if state else {}

    if not result.success:
        return EmailGenerationResponse(
            status="error",
            trace_id=result.trace_id,
            generation_time_ms=result.duration_ms,
            failed_stage=result.failed_stage.value if result.failed_stage else None,
            error_kind=result.error_kind.value if result.error_kind else None,
            error_message=str(result.error) if result.error else None,
            campaign_metadata=metadata,
        )

    passed = state.qa_score >= quality_threshold
    metadata["quality_controlled"] = passed
    metadata["stages_executed"] = [s.value for s in state.stages_completed]
    return EmailGenerationResponse(
        status="success",
        trace_id=result.trace_id,
        generation_time_ms=result.duration_ms,
        quality_score=state.qa_score,
        quality_check="pass" if passed else "fail",
        html=state.html,
        delivery_receipt=dict(result.delivery_receipt) if result.delivery_receipt else None,
        campaign_metadata=metadata,
    )
