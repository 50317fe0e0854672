"""
PipelineOrchestrator

Sequential execution of the four specialist stages.

Responsibilities:
- Execute stages in order: Content -> Design -> Quality -> Delivery
- Wrap every specialist call in the retry executor (with a per-call timeout)
- Validate each stage's output against its handoff contract
- Fold each output into the run's GenerationState
- Check for cancellation at every stage boundary
- Report the outcome (success, or failed stage + error) to the caller

Usage:
    orchestrator = PipelineOrchestrator(specialists)
    result = await orchestrator.run("Paris flight sale")
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import logfire
from pydantic import BaseModel

from .exceptions import PipelineCancelled, PipelineError, StageFailure
from .handoffs import DEFAULT_MAX_HANDOFF_SIZE_BYTES, payload_size_bytes, validate_stage_output
from .models import (
    ALLOWED_TRANSITIONS,
    RUNNING_STATUS,
    CampaignBrief,
    HandoffRecord,
    PipelineOptions,
    PipelineResult,
    PipelineStatus,
    StageTransition,
)
from .retry import RetryExecutor, RetryPolicy, SleepFn
from .specialists import SpecialistSet
from .state import GenerationState, check_preconditions, create_state, merge_stage_output
from .types import STAGE_ORDER, StageName, next_stage

if TYPE_CHECKING:
    from mailcraft.config import Settings

DEFAULT_STAGE_TIMEOUT_SECONDS = 30.0


class PipelineOrchestrator:
    """Runs campaigns through the specialist stages.

    Holds no per-run state: every call to run() builds a fresh
    GenerationState, so independent runs may proceed concurrently.
    """

    def __init__(
        self,
        specialists: SpecialistSet | Mapping[str, Any],
        policy: RetryPolicy | None = None,
        stage_timeout_seconds: float | None = DEFAULT_STAGE_TIMEOUT_SECONDS,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        sleep: SleepFn | None = None,
        max_handoff_size_bytes: int = DEFAULT_MAX_HANDOFF_SIZE_BYTES,
    ):
        if not isinstance(specialists, SpecialistSet):
            specialists = SpecialistSet(
                **{StageName(k).value: v for k, v in specialists.items()}
            )
        self.specialists = specialists
        self.policy = policy or RetryPolicy()
        self.stage_timeout_seconds = stage_timeout_seconds
        self.logger = logger or logging.getLogger(__name__)
        self.sleep = sleep or asyncio.sleep
        self.max_handoff_size_bytes = max_handoff_size_bytes

    @classmethod
    def from_settings(
        cls,
        specialists: SpecialistSet | Mapping[str, Any],
        settings: Settings,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        sleep: SleepFn | None = None,
    ) -> PipelineOrchestrator:
        return cls(
            specialists,
            policy=settings.to_retry_policy(),
            stage_timeout_seconds=settings.pipeline.stage_timeout_seconds,
            logger=logger,
            sleep=sleep,
            max_handoff_size_bytes=settings.pipeline.max_handoff_size_bytes,
        )

    async def run(
        self,
        brief: str,
        options: PipelineOptions | Mapping[str, Any] | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> PipelineResult:
        """Run one campaign end to end. Never raises for stage errors."""
        if options is None:
            options = PipelineOptions()
        elif not isinstance(options, PipelineOptions):
            options = PipelineOptions.model_validate(options)
        return await _PipelineRun(self, brief, options, cancel_event).execute()


class _PipelineRun:
    """State machine for a single invocation. Discarded once it returns."""

    def __init__(
        self,
        orchestrator: PipelineOrchestrator,
        brief: str,
        options: PipelineOptions,
        cancel_event: asyncio.Event | None,
    ):
        self.specialists = orchestrator.specialists
        self.logger = orchestrator.logger
        self.max_handoff_size_bytes = orchestrator.max_handoff_size_bytes
        self.cancel_event = cancel_event
        self.trace_id = uuid4().hex

        self.stage_timeout = (
            options.stage_timeout_seconds
            if options.stage_timeout_seconds is not None
            else orchestrator.stage_timeout_seconds
        )
        policy = orchestrator.policy.with_overrides(
            max_retries=options.max_retries,
            retry_delay_ms=options.retry_delay_ms,
            backoff_ceiling_ms=options.backoff_ceiling_ms,
        )
        self.executor = RetryExecutor(
            policy=policy,
            logger=self.logger,
            sleep=orchestrator.sleep,
            cancel_event=cancel_event,
        )

        self.state: GenerationState = create_state(brief, options.current_date)
        self.first_input = CampaignBrief.from_options(
            brief, options, self.state.current_date, self.trace_id
        )

        self.status = PipelineStatus.INITIALIZED
        self.current_stage: StageName | None = None
        self.transitions: list[StageTransition] = []
        self.handoffs: list[HandoffRecord] = []
        self.delivery_receipt: dict[str, Any] | None = None

    def _transition(self, to_status: PipelineStatus) -> None:
        if to_status not in ALLOWED_TRANSITIONS[self.status]:
            raise RuntimeError(
                f"Illegal pipeline transition {self.status.value} -> {to_status.value}"
            )
        self.transitions.append(
            StageTransition(
                from_status=self.status,
                to_status=to_status,
                at=datetime.now(timezone.utc),
            )
        )
        self.status = to_status

    def _check_cancelled(self, stage: StageName) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise PipelineCancelled(f"Cancelled before {stage.value} stage", stage=stage.value)

    async def execute(self) -> PipelineResult:
        start_time = time.perf_counter()
        stage_input: Any = self.first_input

        with logfire.span("pipeline.run", trace_id=self.trace_id, brief=self.state.brief[:100]):
            self.logger.info(f"Pipeline {self.trace_id} starting: {self.state.brief[:100]}")
            try:
                for stage in STAGE_ORDER:
                    self.current_stage = stage
                    self._check_cancelled(stage)
                    self._transition(RUNNING_STATUS[stage])
                    stage_input = await self._run_stage(stage, stage_input)
                self._transition(PipelineStatus.COMPLETED)

            except PipelineCancelled as e:
                e.stage = e.stage or (self.current_stage.value if self.current_stage else None)
                self._transition(PipelineStatus.CANCELLED)
                self.logger.warning(
                    f"Pipeline {self.trace_id} cancelled at {e.stage}",
                    extra={"stage": e.stage, "error": str(e)},
                )
                return self._result(start_time, error=e)

            except StageFailure as e:
                self._transition(PipelineStatus.FAILED)
                self.logger.error(
                    f"Pipeline {self.trace_id} failed at {e.stage}: {e.cause}",
                    extra={"stage": e.stage, "error": str(e.cause)},
                )
                return self._result(start_time, error=e)

        result = self._result(start_time)
        self.logger.info(
            f"Pipeline {self.trace_id} complete in {result.duration_ms:.0f}ms "
            f"(qa_score={self.state.qa_score:.1f})"
        )
        return result

    async def _run_stage(self, stage: StageName, stage_input: Any) -> Any:
        specialist = self.specialists.for_stage(stage)

        try:
            check_preconditions(self.state, stage)
        except PipelineError as e:
            raise StageFailure(stage.value, e) from e

        attempts = 0

        async def invoke() -> Any:
            nonlocal attempts
            attempts += 1
            # Each attempt gets its own copies; a slow or retried attempt
            # cannot reach the run's state.
            snapshot = self.state.model_copy(deep=True)
            attempt_input = (
                stage_input.model_copy(deep=True)
                if isinstance(stage_input, BaseModel)
                else stage_input
            )
            with logfire.span(
                "pipeline.stage {stage}", stage=stage.value, attempt=attempts
            ):
                call = specialist.run(attempt_input, snapshot)
                if self.stage_timeout is None:
                    return await call
                return await asyncio.wait_for(call, timeout=self.stage_timeout)

        started = time.perf_counter()
        try:
            output = await self.executor.execute(invoke, context=f"{stage.value}_specialist")
        except PipelineCancelled as e:
            e.stage = stage.value
            raise
        except Exception as e:
            raise StageFailure(stage.value, e) from e
        execution_time_ms = (time.perf_counter() - started) * 1000

        try:
            envelope = validate_stage_output(stage, output)
            self.state = merge_stage_output(self.state, stage, output)
        except PipelineError as e:
            raise StageFailure(stage.value, e) from e

        self.logger.info(
            f"Stage {stage.value} complete in {execution_time_ms:.0f}ms "
            f"after {attempts} attempt(s)"
        )

        target = next_stage(stage)
        if envelope is None or target is None:
            if isinstance(output, BaseModel):
                output = output.model_dump()
            self.delivery_receipt = dict(output)
            return None

        data_size = payload_size_bytes(output)
        if data_size > self.max_handoff_size_bytes:
            self.logger.warning(
                f"Large handoff {stage.value}->{target.value}: "
                f"{data_size / 1024 / 1024:.2f} MB",
                extra={
                    "stage": stage.value,
                    "data_size": data_size,
                    "limit": self.max_handoff_size_bytes,
                },
            )

        timestamp = datetime.now(timezone.utc)
        self.handoffs.append(
            HandoffRecord(
                handoff_id=uuid4().hex,
                from_stage=stage,
                to_stage=target,
                trace_id=self.trace_id,
                timestamp=timestamp,
                execution_time_ms=execution_time_ms,
                attempts=attempts,
                data_size_bytes=data_size,
            )
        )
        return envelope.stamped(self.trace_id, timestamp)

    def _result(self, start_time: float, error: PipelineError | None = None) -> PipelineResult:
        return PipelineResult(
            success=error is None,
            status=self.status,
            trace_id=self.trace_id,
            final_state=self.state,
            failed_stage=StageName(error.stage) if error is not None and error.stage else None,
            error=error,
            delivery_receipt=self.delivery_receipt,
            handoffs=self.handoffs,
            transitions=self.transitions,
            duration_ms=(time.perf_counter() - start_time) * 1000,
        )


async def run_pipeline(
    brief: str,
    specialists: SpecialistSet | Mapping[str, Any],
    options: PipelineOptions | Mapping[str, Any] | None = None,
    *,
    settings: Settings | None = None,
    logger: logging.Logger | logging.LoggerAdapter | None = None,
    sleep: SleepFn | None = None,
    cancel_event: asyncio.Event | None = None,
) -> PipelineResult:
    """One-shot convenience wrapper: build an orchestrator and run it once."""
    if settings is not None:
        orchestrator = PipelineOrchestrator.from_settings(
            specialists, settings, logger=logger, sleep=sleep
        )
    else:
        orchestrator = PipelineOrchestrator(specialists, logger=logger, sleep=sleep)
    return await orchestrator.run(brief, options, cancel_event=cancel_event)
