"""
Handoff Contracts

Envelope schemas for data crossing a stage boundary:
- ContentToDesign:   {"content_package": ...}
- DesignToQuality:   {"email_package": ...}
- QualityToDelivery: {"quality_package": ..., "email_package": ...}

Validation is structural only. The inner packages are opaque here; each
specialist validates the business content it consumes. Extra keys are kept
and passed along to the receiving stage.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any, Callable

from pydantic import (
    BaseModel,
    ConfigDict,
    PrivateAttr,
    ValidationError,
    ValidationInfo,
    field_validator,
)
from pydantic_core import to_json

from .exceptions import SchemaViolation
from .types import StageName

DEFAULT_MAX_HANDOFF_SIZE_BYTES = 10 * 1024 * 1024


class HandoffEnvelope(BaseModel):
    """Base envelope. Subclasses declare the required wrapping fields."""

    model_config = ConfigDict(extra="allow", frozen=True)

    boundary: str = ""

    # Set through stamped(). Sender keys named trace_id or timestamp stay extras.
    _trace_id: str | None = PrivateAttr(default=None)
    _stamped_at: datetime | None = PrivateAttr(default=None)

    @property
    def handoff_trace_id(self) -> str | None:
        return self._trace_id

    @property
    def handoff_timestamp(self) -> datetime | None:
        return self._stamped_at

    def stamped(self, trace_id: str, timestamp: datetime) -> HandoffEnvelope:
        """Copy of this envelope carrying the run's trace data."""
        envelope = self.model_copy()
        envelope._trace_id = trace_id
        envelope._stamped_at = timestamp
        return envelope

    @classmethod
    def required_fields(cls) -> list[str]:
        return [
            name
            for name, field in cls.model_fields.items()
            if field.is_required()
        ]


def _not_null(value: Any, field_name: str) -> Any:
    if value is None:
        raise ValueError(f"{field_name} must not be null")
    return value


class ContentToDesign(HandoffEnvelope):
    boundary: str = "content->design"

    content_package: Any

    @field_validator("content_package", mode="before")
    @classmethod
    def _content_package_present(cls, v: Any) -> Any:
        return _not_null(v, "content_package")


class DesignToQuality(HandoffEnvelope):
    boundary: str = "design->quality"

    email_package: Any

    @field_validator("email_package", mode="before")
    @classmethod
    def _email_package_present(cls, v: Any) -> Any:
        return _not_null(v, "email_package")


class QualityToDelivery(HandoffEnvelope):
    """Quality forwards the email it validated alongside its report."""

    boundary: str = "quality->delivery"

    quality_package: Any
    email_package: Any

    @field_validator("quality_package", "email_package", mode="before")
    @classmethod
    def _packages_present(cls, v: Any, info: ValidationInfo) -> Any:
        return _not_null(v, info.field_name)


def _validate(envelope_type: type[HandoffEnvelope], payload: Any) -> HandoffEnvelope:
    boundary = envelope_type.model_fields["boundary"].default
    required = envelope_type.required_fields()

    if isinstance(payload, BaseModel):
        payload = payload.model_dump()
    if not isinstance(payload, Mapping):
        raise SchemaViolation(
            f"Handoff {boundary} expected a mapping, got {type(payload).__name__}",
            boundary=boundary,
            missing_fields=required,
        )

    data = dict(payload)
    # Sender cannot relabel the boundary it is crossing
    data.pop("boundary", None)

    try:
        return envelope_type.model_validate(data)
    except ValidationError as e:
        missing = sorted(
            {str(err["loc"][0]) for err in e.errors() if err.get("loc")}
        )
        raise SchemaViolation(
            f"Handoff {boundary} rejected: missing or null {', '.join(missing) or 'fields'}",
            boundary=boundary,
            missing_fields=missing,
        ) from e


def validate_content_to_design(payload: Any) -> ContentToDesign:
    return _validate(ContentToDesign, payload)  # type: ignore[return-value]


def validate_design_to_quality(payload: Any) -> DesignToQuality:
    return _validate(DesignToQuality, payload)  # type: ignore[return-value]


def validate_quality_to_delivery(payload: Any) -> QualityToDelivery:
    return _validate(QualityToDelivery, payload)  # type: ignore[return-value]


# Contract checked against each stage's output. Delivery's receipt leaves
# the pipeline and has no outgoing contract.
OUTGOING_CONTRACTS: dict[StageName, Callable[[Any], HandoffEnvelope]] = {
    StageName.CONTENT: validate_content_to_design,
    StageName.DESIGN: validate_design_to_quality,
    StageName.QUALITY: validate_quality_to_delivery,
}


def validate_stage_output(stage: StageName, payload: Any) -> HandoffEnvelope | None:
    """Validate `payload` against the contract leaving `stage`, if any."""
    contract = OUTGOING_CONTRACTS.get(stage)
    if contract is None:
        if not isinstance(payload, (Mapping, BaseModel)):
            raise SchemaViolation(
                f"{stage.value} output must be a mapping, got {type(payload).__name__}",
                boundary=f"{stage.value}->out",
                stage=stage.value,
            )
        return None
    try:
        return contract(payload)
    except SchemaViolation as e:
        e.stage = stage.value
        raise


def payload_size_bytes(payload: Any) -> int:
    """Size of `payload` serialized as JSON. Unserializable values count as their str()."""
    return len(to_json(payload, fallback=str))
