from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator

from hts_classifier.models.classification import ClassificationResult, HierarchyBreakdown
from hts_classifier.models.tariff import Candidate


class ClassificationRequest(BaseModel):
    product_description: str
    country_of_origin: Optional[str] = None

    @field_validator("product_description")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("product_description is required")
        return value.strip()


class PipelineState(str, Enum):
    RECEIVED = "received"
    RETRIEVING = "retrieving"
    CLASSIFYING = "classifying"
    SYNTHESIZING = "synthesizing"
    DONE = "done"
    NO_CANDIDATES = "no_candidates"
    FAILED = "failed"


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    NO_CANDIDATES = "no_candidates"
    INVALID_REQUEST = "invalid_request"
    FAILED = "failed"


class FailureKind(str, Enum):
    STORE_UNAVAILABLE = "store_unavailable"
    RETRIEVAL_FAILED = "retrieval_failed"
    CLASSIFICATION_TRANSPORT = "classification_transport"
    CLASSIFICATION_SCHEMA = "classification_schema"
    SYNTHESIS_FAILED = "synthesis_failed"
    CANCELLED = "cancelled"
    INTERNAL_ERROR = "internal_error"


class ClassificationSummary(BaseModel):
    hts_code: str
    description: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    structure: HierarchyBreakdown
    alternatives_considered: List[str]

    @classmethod
    def from_result(cls, result: ClassificationResult) -> "ClassificationSummary":
        return cls(
            hts_code=result.hts_code,
            description=result.description,
            confidence=result.confidence,
            structure=result.structure,
            alternatives_considered=list(result.alternatives),
        )


class RetrievedCandidate(BaseModel):
    code: str
    description: str
    similarity_percent: float = Field(..., ge=0.0, le=100.0)

    @classmethod
    def from_candidate(cls, candidate: Candidate) -> "RetrievedCandidate":
        return cls(
            code=candidate.code,
            description=candidate.description,
            similarity_percent=candidate.similarity_percent,
        )


class ClassificationResponse(BaseModel):
    classification: ClassificationSummary
    justification: str
    retrieved_candidates: List[RetrievedCandidate]
    metadata: Dict[str, Any] = Field(default_factory=dict)


class PipelineOutcome(BaseModel):
    status: OutcomeStatus
    states: List[PipelineState] = Field(default_factory=list)
    response: Optional[ClassificationResponse] = None
    failure_kind: Optional[FailureKind] = None
    message: Optional[str] = None
    violations: List[str] = Field(default_factory=list)

    @property
    def final_state(self) -> Optional[PipelineState]:
        return self.states[-1] if self.states else None

    @property
    def http_status(self) -> int:
        if self.status == OutcomeStatus.SUCCESS:
            return 200
        if self.status == OutcomeStatus.INVALID_REQUEST:
            return 400
        if self.status == OutcomeStatus.NO_CANDIDATES:
            return 404
        if self.failure_kind == FailureKind.STORE_UNAVAILABLE:
            return 503
        return 500

    def to_payload(self) -> Dict[str, Any]:
        """Render the JSON body a routing layer would return for this outcome."""
        if self.status == OutcomeStatus.SUCCESS:
            return self.response.model_dump(mode="json")
        if self.status == OutcomeStatus.INVALID_REQUEST:
            return {"error": self.message or "product_description is required"}
        if self.status == OutcomeStatus.NO_CANDIDATES:
            return {
                "error": "no_candidates_found",
                "message": self.message or "No HTS codes found in database",
            }
        payload = {
            "error": "classification_failed",
            "kind": self.failure_kind.value if self.failure_kind else None,
            "details": self.message,
        }
        if self.violations:
            payload["violations"] = list(self.violations)
        return payload
