"""
Tagged result of the structured classification step.

The classifier never raises for model-side problems; it returns exactly one of
the three variants below and the caller branches on `kind`.
"""

from typing import List, Literal, Union
from pydantic import BaseModel, Field

from hts_classifier.models.classification import ClassificationResult


class ValidClassification(BaseModel):
    kind: Literal["valid"] = "valid"
    result: ClassificationResult


class SchemaViolation(BaseModel):
    kind: Literal["schema_violation"] = "schema_violation"
    raw: str = Field("", description="Raw model output that failed validation")
    violations: List[str] = Field(default_factory=list)


class TransportFailure(BaseModel):
    kind: Literal["transport_failure"] = "transport_failure"
    cause: str


ClassifierOutcome = Union[ValidClassification, SchemaViolation, TransportFailure]
