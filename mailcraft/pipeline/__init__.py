"""
Campaign pipeline: four specialist stages (Content -> Design -> Quality ->
Delivery) joined by validated handoffs, with bounded retries per stage.
"""

from .exceptions import (
    ErrorKind,
    PipelineCancelled,
    PipelineError,
    PreconditionViolation,
    RetryInvariantError,
    SchemaViolation,
    StageFailure,
    TransientFailure,
)
from .handoffs import (
    ContentToDesign,
    DesignToQuality,
    QualityToDelivery,
    validate_content_to_design,
    validate_design_to_quality,
    validate_quality_to_delivery,
)
from .loader import SpecialistLoadError, load_specialist, load_specialists
from .mappers import EmailGenerationResponse, map_campaign_type, map_tone, to_generation_response
from .models import CampaignBrief, PipelineOptions, PipelineResult, PipelineStatus
from .orchestrator import PipelineOrchestrator, run_pipeline
from .retry import RetryExecutor, RetryPolicy, compute_backoff, execute_with_retry
from .specialists import FunctionSpecialist, Specialist, SpecialistSet
from .state import GenerationState, create_state, merge_stage_output
from .types import STAGE_ORDER, StageName

__all__ = [
    "CampaignBrief",
    "ContentToDesign",
    "DesignToQuality",
    "EmailGenerationResponse",
    "ErrorKind",
    "FunctionSpecialist",
    "GenerationState",
    "PipelineCancelled",
    "PipelineError",
    "PipelineOptions",
    "PipelineOrchestrator",
    "PipelineResult",
    "PipelineStatus",
    "PreconditionViolation",
    "QualityToDelivery",
    "RetryExecutor",
    "RetryInvariantError",
    "RetryPolicy",
    "STAGE_ORDER",
    "SchemaViolation",
    "Specialist",
    "SpecialistLoadError",
    "SpecialistSet",
    "StageFailure",
    "StageName",
    "TransientFailure",
    "compute_backoff",
    "create_state",
    "execute_with_retry",
    "load_specialist",
    "load_specialists",
    "map_campaign_type",
    "map_tone",
    "merge_stage_output",
    "run_pipeline",
    "to_generation_response",
    "validate_content_to_design",
    "validate_design_to_quality",
    "validate_quality_to_delivery",
]
