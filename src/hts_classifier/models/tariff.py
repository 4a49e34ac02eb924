from typing import List, Optional
from pydantic import BaseModel, Field


class TariffCode(BaseModel):
    """One row of the tariff_codes table."""
    id: Optional[int] = None
    code: Optional[str] = Field(None, description="Hierarchical HTS number, e.g. 8471.30")
    description: str = Field(..., description="Official description text")
    general: Optional[str] = Field(None, description="General duty rate text")
    special: Optional[str] = Field(None, description="Special duty rate text")
    indent: int = Field(..., ge=0, description="Depth in the hierarchy, 0 = chapter")
    embedding: Optional[List[float]] = None


class Candidate(BaseModel):
    """A tariff code returned by similarity search for a single request."""
    code: str
    description: str
    indent: int = 0
    general: Optional[str] = None
    special: Optional[str] = None
    similarity: float = Field(..., ge=0.0, le=1.0, description="1 - cosine distance, clamped to [0, 1]")

    @property
    def similarity_percent(self) -> float:
        return round(self.similarity * 100, 1)
