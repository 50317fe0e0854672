"""Specialist capability interface and the closed four-stage set."""

from __future__ import annotations

import inspect
from collections.abc import Mapping
from typing import Any, Awaitable, Callable, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, field_validator

from .state import GenerationState
from .types import StageName


@runtime_checkable
class Specialist(Protocol):
    """Anything with an async run(input, state) returning a payload mapping.

    `state` is a snapshot taken for this invocation. Mutating it has no
    effect on the run.
    """

    async def run(self, input: Any, state: GenerationState) -> Mapping[str, Any]: ...


SpecialistFn = Callable[[Any, GenerationState], Awaitable[Mapping[str, Any]]]


class FunctionSpecialist:
    """Adapts a plain async function to the Specialist interface."""

    def __init__(self, fn: SpecialistFn, name: str | None = None):
        if not inspect.iscoroutinefunction(fn) and not inspect.iscoroutinefunction(
            getattr(fn, "__call__", None)
        ):
            raise TypeError(f"Specialist function must be async, got {fn!r}")
        self.fn = fn
        self.name = name or getattr(fn, "__name__", type(fn).__name__)

    async def run(self, input: Any, state: GenerationState) -> Mapping[str, Any]:
        return await self.fn(input, state)

    def __repr__(self) -> str:
        return f"FunctionSpecialist({self.name})"


def as_specialist(obj: Specialist | SpecialistFn | type) -> Specialist:
    """Return `obj` if it already has run(), otherwise wrap it.

    Classes are instantiated with no arguments first.
    """
    if inspect.isclass(obj):
        obj = obj()
    if isinstance(obj, Specialist):
        return obj
    if callable(obj):
        return FunctionSpecialist(obj)
    raise TypeError(f"Not a specialist: {obj!r}")


class SpecialistSet(BaseModel):
    """Exactly one specialist per stage."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    content: Any
    design: Any
    quality: Any
    delivery: Any

    @field_validator("content", "design", "quality", "delivery", mode="before")
    @classmethod
    def _wrap(cls, v: Any) -> Specialist:
        return as_specialist(v)

    def for_stage(self, stage: StageName) -> Specialist:
        return getattr(self, stage.value)
