"""
Pipeline Run Models

Enums and records describing one pipeline invocation.

Classes:
- PipelineOptions: Caller options (campaign details + per-run retry overrides)
- CampaignBrief: Input handed to the Content specialist
- PipelineStatus: Orchestrator state machine states
- HandoffRecord: Trace entry for each validated boundary crossing
- StageTransition: One state machine transition
- PipelineResult: Outcome returned to the caller
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .exceptions import ErrorKind, PipelineError
from .mappers import CampaignType, Tone, map_campaign_type, map_tone
from .state import GenerationState
from .types import StageName


class PipelineOptions(BaseModel):
    """Options for a single run. Retry overrides default to configuration."""

    campaign_type: CampaignType = "promotional"
    tone: Tone = "friendly"
    topic: str | None = None
    destination: str | None = None
    origin: str | None = None
    target_audience: str | None = None
    language: str = "ru"
    brand: str | None = None
    current_date: datetime | None = None

    max_retries: int | None = Field(default=None, ge=0)
    retry_delay_ms: int | None = Field(default=None, gt=0)
    backoff_ceiling_ms: int | None = Field(default=None, gt=0)
    stage_timeout_seconds: float | None = Field(default=None, gt=0)

    @field_validator("campaign_type", mode="before")
    @classmethod
    def _normalize_campaign_type(cls, v: Any) -> str:
        return map_campaign_type(v)

    @field_validator("tone", mode="before")
    @classmethod
    def _normalize_tone(cls, v: Any) -> str:
        return map_tone(v)


class CampaignBrief(BaseModel):
    """What the Content specialist is asked to write about."""

    brief: str
    topic: str
    campaign_type: CampaignType
    tone: Tone
    language: str
    destination: str | None = None
    origin: str | None = None
    target_audience: str | None = None
    brand: str | None = None
    current_date: datetime
    trace_id: str

    @classmethod
    def from_options(
        cls, brief: str, options: PipelineOptions, current_date: datetime, trace_id: str
    ) -> "CampaignBrief":
        return cls(
            brief=brief,
            topic=options.topic or brief,
            campaign_type=options.campaign_type,
            tone=options.tone,
            language=options.language,
            destination=options.destination,
            origin=options.origin,
            target_audience=options.target_audience,
            brand=options.brand,
            current_date=current_date,
            trace_id=trace_id,
        )


class PipelineStatus(str, Enum):
    INITIALIZED = "initialized"
    CONTENT_RUNNING = "content_running"
    DESIGN_RUNNING = "design_running"
    QUALITY_RUNNING = "quality_running"
    DELIVERY_RUNNING = "delivery_running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineStatus.COMPLETED, PipelineStatus.FAILED, PipelineStatus.CANCELLED)


RUNNING_STATUS: dict[StageName, PipelineStatus] = {
    StageName.CONTENT: PipelineStatus.CONTENT_RUNNING,
    StageName.DESIGN: PipelineStatus.DESIGN_RUNNING,
    StageName.QUALITY: PipelineStatus.QUALITY_RUNNING,
    StageName.DELIVERY: PipelineStatus.DELIVERY_RUNNING,
}

_RUNNING = set(RUNNING_STATUS.values())

ALLOWED_TRANSITIONS: dict[PipelineStatus, set[PipelineStatus]] = {
    PipelineStatus.INITIALIZED: {PipelineStatus.CONTENT_RUNNING, PipelineStatus.CANCELLED},
    PipelineStatus.CONTENT_RUNNING: {PipelineStatus.DESIGN_RUNNING},
    PipelineStatus.DESIGN_RUNNING: {PipelineStatus.QUALITY_RUNNING},
    PipelineStatus.QUALITY_RUNNING: {PipelineStatus.DELIVERY_RUNNING},
    PipelineStatus.DELIVERY_RUNNING: {PipelineStatus.COMPLETED},
    PipelineStatus.COMPLETED: set(),
    PipelineStatus.FAILED: set(),
    PipelineStatus.CANCELLED: set(),
}
for _status in _RUNNING:
    ALLOWED_TRANSITIONS[_status] |= {PipelineStatus.FAILED, PipelineStatus.CANCELLED}


class HandoffRecord(BaseModel):
    """Trace entry for one validated handoff."""

    handoff_id: str
    from_stage: StageName
    to_stage: StageName
    trace_id: str
    timestamp: datetime
    execution_time_ms: float
    attempts: int = 1
    data_size_bytes: int = 0


class StageTransition(BaseModel):
    from_status: PipelineStatus
    to_status: PipelineStatus
    at: datetime


class PipelineResult(BaseModel):
    """Outcome of one run.

    On success `final_state` holds the completed GenerationState. On failure
    `failed_stage` and `error` identify what went wrong; `final_state` is the
    state as of the last successful merge.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    success: bool
    status: PipelineStatus
    trace_id: str
    final_state: GenerationState | None = None
    failed_stage: StageName | None = None
    error: PipelineError | None = None
    delivery_receipt: dict[str, Any] | None = None
    handoffs: list[HandoffRecord] = Field(default_factory=list)
    transitions: list[StageTransition] = Field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def error_kind(self) -> ErrorKind | None:
        return self.error.kind if self.error is not None else None
