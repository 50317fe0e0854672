"""
GenerationState

Central in-memory record that accumulates across one pipeline run.
Each stage's output is folded in through merge_stage_output(); nothing else
writes to it.

Ownership:
- content, prices   -> Content stage
- html, assets      -> Design stage (assets append-only)
- qa_score          -> Quality stage
- metadata          -> any stage, accumulated field by field
- Delivery writes nothing; its receipt leaves the pipeline

Key Design:
- Fields are write-once per owning stage; metadata is the exception
- merge returns a new state, the input is left untouched
- Never persisted; discarded when the run ends
"""

import math
from collections.abc import Mapping
from datetime import date, datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import PreconditionViolation
from .types import StageName


# ============================================================================
# Pydantic Models
# ============================================================================


class PriceEntry(BaseModel):
    """One fare found for a route."""

    origin: str
    destination: str
    price: float = Field(ge=0)
    currency: str = "RUB"
    departure_date: date | None = None

    @property
    def route(self) -> str:
        return f"{self.origin}-{self.destination}"


class PriceData(BaseModel):
    """Structured route/price entries computed by the Content stage."""

    currency: str = "RUB"
    entries: list[PriceEntry] = Field(default_factory=list)
    source: str | None = None

    @property
    def offers_count(self) -> int:
        return len(self.entries)

    @property
    def min_price(self) -> float | None:
        return min((e.price for e in self.entries), default=None)

    @property
    def max_price(self) -> float | None:
        return max((e.price for e in self.entries), default=None)

    @property
    def average_price(self) -> float | None:
        if not self.entries:
            return None
        return sum(e.price for e in self.entries) / len(self.entries)


class AssetData(BaseModel):
    """Visual/media reference added by the Design stage."""

    url: str
    alt_text: str | None = None
    usage: str | None = None  # hero, thumbnail, icon
    format: str | None = None
    source: str | None = None


class ContentData(BaseModel):
    """Email copy produced by the Content stage."""

    subject: str
    preheader: str | None = None
    body: str
    cta: str | None = None
    language: str = "ru"
    metadata: dict[str, Any] = Field(default_factory=dict)


class CampaignMetadata(BaseModel):
    """Run-level campaign facts. Accumulated, never replaced wholesale."""

    model_config = ConfigDict(extra="allow")

    topic: str | None = None
    routes_analyzed: list[str] = Field(default_factory=list)
    date_ranges: list[str] = Field(default_factory=list)
    prices_found: int = 0
    content_variations: int = 0


class GenerationState(BaseModel):
    """Complete state of one campaign-generation run."""

    brief: str = Field(frozen=True)
    current_date: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), frozen=True
    )

    prices: PriceData | None = None
    assets: list[AssetData] = Field(default_factory=list)
    content: ContentData | None = None
    html: str | None = None
    qa_score: float = 0.0
    metadata: CampaignMetadata = Field(default_factory=CampaignMetadata)

    stages_completed: list[StageName] = Field(default_factory=list)

    @property
    def qa_score_set(self) -> bool:
        return StageName.QUALITY in self.stages_completed


# ============================================================================
# Helper Functions
# ============================================================================


MAX_QUALITY_SCORE = 100.0

_COUNTER_FIELDS = ("prices_found", "content_variations")
_LIST_FIELDS = ("routes_analyzed", "date_ranges")


def create_state(brief: str, current_date: datetime | None = None) -> GenerationState:
    """Create the state for a new run."""
    if current_date is None:
        return GenerationState(brief=brief)
    return GenerationState(brief=brief, current_date=current_date)


def merge_metadata(
    metadata: CampaignMetadata, updates: Mapping[str, Any] | None
) -> CampaignMetadata:
    """Fold `updates` into `metadata` without discarding what is already there.

    - counters are incremented
    - lists are extended, skipping values already present
    - topic is set only if absent
    - any other key is updated
    """
    if not updates:
        return metadata.model_copy(deep=True)

    merged = metadata.model_dump()
    for key, value in updates.items():
        if value is None:
            continue
        if key in _COUNTER_FIELDS:
            merged[key] = merged.get(key, 0) + int(value)
        elif key in _LIST_FIELDS:
            values = [value] if isinstance(value, str) else list(value)
            existing = merged.setdefault(key, [])
            for item in values:
                if item not in existing:
                    existing.append(item)
        elif key == "topic":
            if not merged.get("topic"):
                merged["topic"] = value
        else:
            merged[key] = value

    return CampaignMetadata.model_validate(merged)


def append_assets(assets: list[AssetData], new_assets: list[AssetData]) -> list[AssetData]:
    """Existing assets followed by `new_assets`, in order. Neither input is modified."""
    return [a.model_copy() for a in assets] + [a.model_copy() for a in new_assets]


def check_preconditions(state: GenerationState, stage: StageName) -> None:
    """Raise PreconditionViolation if `stage` may not run against `state`."""
    if stage in (StageName.QUALITY, StageName.DELIVERY) and not state.html:
        raise PreconditionViolation(
            f"{stage.value} stage requires rendered html, but none is set",
            field="html",
            stage=stage.value,
        )
    if stage is StageName.DELIVERY and not state.qa_score_set:
        raise PreconditionViolation(
            "delivery stage requires a quality score, but quality has not run",
            field="qa_score",
            stage=stage.value,
        )


def _package(output: Mapping[str, Any], key: str, stage: StageName) -> Mapping[str, Any]:
    package = output.get(key)
    if isinstance(package, BaseModel):
        package = package.model_dump()
    if not isinstance(package, Mapping):
        raise PreconditionViolation(
            f"{stage.value} output has no structured {key}",
            field=key,
            stage=stage.value,
        )
    return package


def _require_unset(state: GenerationState, field: str, stage: StageName) -> None:
    if getattr(state, field) is not None:
        raise PreconditionViolation(
            f"{field} was already set; {stage.value} may not overwrite it",
            field=field,
            stage=stage.value,
        )


def _parse(model: type[BaseModel], value: Any, field: str, stage: StageName) -> Any:
    try:
        return model.model_validate(value)
    except ValidationError as e:
        raise PreconditionViolation(
            f"{stage.value} output has an invalid {field}: {e.error_count()} error(s)",
            field=field,
            stage=stage.value,
        ) from e


def _coerce_asset(item: Any, stage: StageName) -> AssetData:
    if isinstance(item, str):
        return AssetData(url=item)
    return _parse(AssetData, item, "assets", stage)


def _merge_content(state: GenerationState, output: Mapping[str, Any]) -> dict[str, Any]:
    stage = StageName.CONTENT
    package = _package(output, "content_package", stage)

    complete = package.get("complete_content")
    if complete is None:
        raise PreconditionViolation(
            "content output is missing content_package.complete_content",
            field="content",
            stage=stage.value,
        )
    _require_unset(state, "content", stage)
    updates: dict[str, Any] = {"content": _parse(ContentData, complete, "content", stage)}

    prices = output.get("prices")
    if prices is not None:
        _require_unset(state, "prices", stage)
        updates["prices"] = _parse(PriceData, prices, "prices", stage)

    return updates


def _merge_design(state: GenerationState, output: Mapping[str, Any]) -> dict[str, Any]:
    stage = StageName.DESIGN
    package = _package(output, "email_package", stage)

    html = package.get("html_content")
    if not isinstance(html, str) or not html.strip():
        raise PreconditionViolation(
            "design output is missing email_package.html_content",
            field="html",
            stage=stage.value,
        )
    _require_unset(state, "html", stage)

    raw_assets = package.get("assets") or []
    if isinstance(raw_assets, (str, Mapping)):
        raw_assets = [raw_assets]
    elif not isinstance(raw_assets, (list, tuple)):
        raise PreconditionViolation(
            f"design output assets must be a list, got {type(raw_assets).__name__}",
            field="assets",
            stage=stage.value,
        )
    new_assets = [_coerce_asset(item, stage) for item in raw_assets]
    return {"html": html, "assets": append_assets(state.assets, new_assets)}


def _merge_quality(state: GenerationState, output: Mapping[str, Any]) -> dict[str, Any]:
    stage = StageName.QUALITY
    package = _package(output, "quality_package", stage)

    score = package.get("quality_score")
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        raise PreconditionViolation(
            "quality output is missing a numeric quality_package.quality_score",
            field="qa_score",
            stage=stage.value,
        )
    if not math.isfinite(score) or not 0 <= score <= MAX_QUALITY_SCORE:
        raise PreconditionViolation(
            f"quality_score must be between 0 and {MAX_QUALITY_SCORE:g}, got {score}",
            field="qa_score",
            stage=stage.value,
        )
    if state.qa_score_set:
        raise PreconditionViolation(
            "qa_score was already set; quality may not run twice",
            field="qa_score",
            stage=stage.value,
        )
    return {"qa_score": float(score)}


_STAGE_MERGERS = {
    StageName.CONTENT: _merge_content,
    StageName.DESIGN: _merge_design,
    StageName.QUALITY: _merge_quality,
}


def merge_stage_output(
    state: GenerationState,
    stage: StageName,
    output: Mapping[str, Any] | BaseModel,
) -> GenerationState:
    """Return a new state with `stage`'s output folded in.

    Raises:
        PreconditionViolation: output lacks a field a later stage needs, or
            the stage tries to rewrite a field that is already set.
    """
    if isinstance(output, BaseModel):
        output = output.model_dump()

    check_preconditions(state, stage)
    if stage in state.stages_completed:
        raise PreconditionViolation(
            f"{stage.value} output was already merged into this run",
            stage=stage.value,
        )

    merger = _STAGE_MERGERS.get(stage)
    updates = merger(state, output) if merger else {}

    raw_metadata = output.get("metadata")
    if isinstance(raw_metadata, BaseModel):
        raw_metadata = raw_metadata.model_dump(exclude_defaults=True)
    if raw_metadata is not None and not isinstance(raw_metadata, Mapping):
        raise PreconditionViolation(
            f"{stage.value} output metadata must be a mapping",
            field="metadata",
            stage=stage.value,
        )
    try:
        updates["metadata"] = merge_metadata(state.metadata, raw_metadata)
    except (TypeError, ValueError) as e:
        raise PreconditionViolation(
            f"{stage.value} output has invalid metadata: {e}",
            field="metadata",
            stage=stage.value,
        ) from e
    updates["stages_completed"] = [*state.stages_completed, stage]

    return state.model_copy(update=updates, deep=True)
