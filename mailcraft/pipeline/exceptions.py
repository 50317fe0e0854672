"""
Pipeline Exception Hierarchy

Exception Classes:
- PipelineError: Base exception (retryable=True)
- TransientFailure: Specialist error eligible for retry
- SchemaViolation: Handoff payload missing its envelope field (non-retryable)
- PreconditionViolation: Required prior state field absent (non-retryable)
- StageFailure: Terminal failure of one stage, wraps the cause
- PipelineCancelled: External cancellation at a boundary or during backoff
- RetryInvariantError: Retry loop exhausted without returning or raising

Retry Logic:
- Retryable errors are retried by the executor with exponential backoff
- Non-retryable errors fail fast and end the run
"""

from enum import Enum


class ErrorKind(str, Enum):
    TRANSIENT_FAILURE = "transient_failure"
    SCHEMA_VIOLATION = "schema_violation"
    PRECONDITION_VIOLATION = "precondition_violation"
    STAGE_FAILURE = "stage_failure"
    CANCELLED = "cancelled"
    INTERNAL = "internal"


class PipelineError(Exception):
    """Base exception for pipeline errors."""

    kind: ErrorKind = ErrorKind.TRANSIENT_FAILURE
    retryable: bool = True

    def __init__(self, message: str, stage: str | None = None):
        super().__init__(message)
        self.message = message
        self.stage = stage


class TransientFailure(PipelineError):
    """Specialist invocation failed in a way worth retrying."""

    pass


class SchemaViolation(PipelineError):
    """Handoff payload is missing its required envelope field."""

    kind = ErrorKind.SCHEMA_VIOLATION
    retryable = False

    def __init__(
        self,
        message: str,
        boundary: str | None = None,
        missing_fields: list[str] | None = None,
        stage: str | None = None,
    ):
        super().__init__(message, stage=stage)
        self.boundary = boundary
        self.missing_fields = missing_fields or []


class PreconditionViolation(PipelineError):
    """A field required by a later stage is absent, or a write-once field was rewritten."""

    kind = ErrorKind.PRECONDITION_VIOLATION
    retryable = False

    def __init__(self, message: str, field: str | None = None, stage: str | None = None):
        super().__init__(message, stage=stage)
        self.field = field


class StageFailure(PipelineError):
    """Terminal failure of a single stage. `kind` reports the kind of the cause."""

    retryable = False

    def __init__(self, stage: str, cause: BaseException):
        super().__init__(f"Stage '{stage}' failed: {cause}", stage=stage)
        self.cause = cause
        self.__cause__ = cause

    @property
    def kind(self) -> ErrorKind:  # type: ignore[override]
        if isinstance(self.cause, PipelineError):
            return self.cause.kind
        return ErrorKind.TRANSIENT_FAILURE


class PipelineCancelled(PipelineError):
    """Run was cancelled by the caller."""

    kind = ErrorKind.CANCELLED
    retryable = False


class RetryInvariantError(PipelineError):
    """Retry loop fell through; the attempt accounting is broken."""

    kind = ErrorKind.INTERNAL
    retryable = False
