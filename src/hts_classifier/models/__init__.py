from .tariff import TariffCode, Candidate
from .classification import ClassificationChoice, ClassificationResult, HierarchyBreakdown, HierarchyLevel
from .llm import LLMResponse
from .outcomes import ClassifierOutcome, ValidClassification, SchemaViolation, TransportFailure
from .response import (
    ClassificationRequest,
    ClassificationResponse,
    ClassificationSummary,
    FailureKind,
    OutcomeStatus,
    PipelineOutcome,
    PipelineState,
    RetrievedCandidate,
)
