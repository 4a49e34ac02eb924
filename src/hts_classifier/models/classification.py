from typing import List
from pydantic import BaseModel, Field, ConfigDict


class ClassificationChoice(BaseModel):
    """
    Structured output the model fills in during the selection step.
    Kept flat so it maps onto a simple JSON schema.
    """
    hts_code: str = Field(..., min_length=1, description="The selected HTS code, copied exactly from the candidates")
    hts_code_description: str = Field(..., description="Full description of the selected code")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Confidence score 0-1")
    chapter: str = Field(..., min_length=1, description="Chapter number (2 digits)")
    chapter_description: str = Field(..., description="Chapter description")
    heading: str = Field(..., min_length=1, description="Heading number (4 digits)")
    heading_description: str = Field(..., description="Heading description")
    subheading: str = Field(..., min_length=1, description="Subheading number (6+ digits)")
    subheading_description: str = Field(..., description="Subheading description")
    reasoning_brief: str = Field(..., description="One sentence why this code was selected")
    alternative_codes: List[str] = Field(default_factory=list, description="Other candidate codes that were considered")
    model_config = ConfigDict(extra="forbid")


class HierarchyLevel(BaseModel):
    code: str = Field(..., min_length=1)
    description: str


class HierarchyBreakdown(BaseModel):
    chapter: HierarchyLevel
    heading: HierarchyLevel
    subheading: HierarchyLevel


class ClassificationResult(BaseModel):
    hts_code: str = Field(..., min_length=1)
    description: str
    confidence: float = Field(
        ...,
        ge=0.0,
        le=1.0,
        description="Model self-reported confidence. Qualitative, not calibrated.",
    )
    structure: HierarchyBreakdown
    reasoning: str
    alternatives: List[str] = Field(default_factory=list)

    @classmethod
    def from_choice(cls, choice: ClassificationChoice) -> "ClassificationResult":
        return cls(
            hts_code=choice.hts_code.strip(),
            description=choice.hts_code_description,
            confidence=choice.confidence,
            structure=HierarchyBreakdown(
                chapter=HierarchyLevel(code=choice.chapter, description=choice.chapter_description),
                heading=HierarchyLevel(code=choice.heading, description=choice.heading_description),
                subheading=HierarchyLevel(code=choice.subheading, description=choice.subheading_description),
            ),
            reasoning=choice.reasoning_brief,
            alternatives=[code.strip() for code in choice.alternative_codes],
        )
