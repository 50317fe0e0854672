"""Shared type definitions for the campaign pipeline."""

from enum import Enum


class StageName(str, Enum):
    """The four specialist stages, in execution order."""

    CONTENT = "content"
    DESIGN = "design"
    QUALITY = "quality"
    DELIVERY = "delivery"


STAGE_ORDER: tuple[StageName, ...] = (
    StageName.CONTENT,
    StageName.DESIGN,
    StageName.QUALITY,
    StageName.DELIVERY,
)


def next_stage(stage: StageName) -> StageName | None:
    """Stage that follows `stage`, or None after Delivery."""
    index = STAGE_ORDER.index(stage)
    if index + 1 < len(STAGE_ORDER):
        return STAGE_ORDER[index + 1]
    return None
