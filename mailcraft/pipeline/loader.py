"""Specialist loader.

Resolves specialists from ``"package.module:attribute"`` import paths so the
four stages can be wired up from configuration.

Usage::

    from mailcraft.pipeline.loader import load_specialists

    specialists = load_specialists(settings.specialists)
"""

import importlib
import inspect
import logging
from typing import Any

from pydantic import BaseModel

from .specialists import FunctionSpecialist, Specialist, SpecialistSet
from .types import STAGE_ORDER

logger = logging.getLogger(__name__)


class SpecialistLoadError(Exception):
    """An import path could not be resolved to a specialist."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Cannot load specialist '{path}': {reason}")
        self.path = path
        self.reason = reason


def _resolve(path: str) -> Any:
    module_name, sep, attr_path = path.partition(":")
    if not sep or not module_name or not attr_path:
        raise SpecialistLoadError(path, "expected 'package.module:attribute'")

    try:
        target: Any = importlib.import_module(module_name)
    except ImportError as e:
        raise SpecialistLoadError(path, f"import failed ({e})") from e

    for part in attr_path.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as e:
            raise SpecialistLoadError(path, f"no attribute '{part}'") from e
    return target


def load_specialist(path: str) -> Specialist:
    """Import the object at ``path`` and adapt it to the Specialist interface.

    Classes are instantiated with no arguments. Plain async functions are
    wrapped in FunctionSpecialist. Anything else must already have run().
    """
    target = _resolve(path)

    if inspect.isclass(target):
        try:
            target = target()
        except TypeError as e:
            raise SpecialistLoadError(path, f"class cannot be built without arguments ({e})") from e

    if isinstance(target, Specialist):
        logger.debug(f"Loaded specialist {path}")
        return target

    if inspect.iscoroutinefunction(target):
        logger.debug(f"Loaded specialist function {path}")
        return FunctionSpecialist(target, name=path)

    raise SpecialistLoadError(path, f"{type(target).__name__} has no async run()")


def load_specialists(config: BaseModel | dict[str, str]) -> SpecialistSet:
    """Build the four-stage set from a stage -> import path mapping."""
    paths = config.model_dump() if isinstance(config, BaseModel) else dict(config)

    missing = [stage.value for stage in STAGE_ORDER if not paths.get(stage.value)]
    if missing:
        raise SpecialistLoadError(
            ", ".join(missing), "no import path configured for this stage"
        )

    return SpecialistSet(
        **{stage.value: load_specialist(paths[stage.value]) for stage in STAGE_ORDER}
    )
