import re
import zlib
from typing import List, Optional

import numpy as np
import pytest

from hts_classifier.models import Candidate, ClassificationChoice, TariffCode
from hts_classifier.models.llm import LLMResponse


def hash_embed(texts, model_name=None, dimension: int = 64) -> np.ndarray:
    """Deterministic bag-of-words embedding: shared words -> higher cosine similarity."""
    if isinstance(texts, str):
        texts = [texts]
    vectors = []
    for text in texts:
        vec = np.zeros(dimension, dtype="float32")
        for token in re.findall(r"[a-z0-9]+", text.lower()):
            vec[zlib.crc32(token.encode()) % dimension] += 1.0
        norm = np.linalg.norm(vec)
        vectors.append(vec / norm if norm else vec)
    return np.array(vectors, dtype="float32")


class InMemoryTaxonomyDB:
    """Stand-in for TaxonomyDB that keeps tariff rows in a list."""

    def __init__(self, rows: List[TariffCode], dimension: int = 64):
        self.rows = [row.model_copy() for row in rows]
        self.dimension = dimension
        self.updates = []

    def count_unembedded(self, max_indent: int = 2) -> int:
        return len(self._unembedded(max_indent))

    def fetch_unembedded(self, limit: int, max_indent: int = 2, exclude_codes=None) -> List[TariffCode]:
        exclude = set(exclude_codes or [])
        seen, batch = set(), []
        for row in sorted(self._unembedded(max_indent), key=lambda r: (r.code, r.description, r.indent)):
            key = (row.code, row.description, row.indent)
            if key in seen or row.code in exclude:
                continue
            seen.add(key)
            batch.append(row)
        return batch[:limit]

    def update_embedding(self, code: str, embedding) -> int:
        self.updates.append(code)
        count = 0
        for row in self.rows:
            if row.code == code:
                row.embedding = [float(x) for x in embedding]
                count += 1
        return count

    def search_similar(self, query_embedding, k: int, max_indent: int = 2) -> List[Candidate]:
        query = np.asarray(query_embedding, dtype="float32")
        scored = []
        for row in self.rows:
            if row.indent > max_indent or row.embedding is None or row.code is None:
                continue
            similarity = float(np.dot(query, np.asarray(row.embedding, dtype="float32")))
            scored.append(Candidate(
                code=row.code,
                description=row.description,
                indent=row.indent,
                similarity=min(1.0, max(0.0, similarity)),
            ))
        scored.sort(key=lambda c: (-c.similarity, -c.indent))
        return scored[:k]

    def _unembedded(self, max_indent: int) -> List[TariffCode]:
        return [
            row for row in self.rows
            if row.indent <= max_indent and row.embedding is None and row.code is not None
        ]


SINK_TAXONOMY = [
    TariffCode(code="73", description="Articles of iron or steel", indent=0),
    TariffCode(code="7324", description="Sanitary ware and parts thereof, of iron or steel", indent=1),
    TariffCode(code="7324.10", description="Sinks and wash basins, of stainless steel", indent=2),
    TariffCode(code="7323.93", description="Table, kitchen or other household articles of stainless steel", indent=2),
    TariffCode(code="8471.30", description="Portable automatic data processing machines", indent=2),
    TariffCode(code="9403.40", description="Wooden furniture of a kind used in the kitchen", indent=2),
    TariffCode(code="0901.11", description="Coffee, not roasted, not decaffeinated", indent=2),
    TariffCode(code="7324.10.00", description="Sinks of stainless steel, other", indent=3),
]


@pytest.fixture
def sink_taxonomy():
    return [row.model_copy() for row in SINK_TAXONOMY]


@pytest.fixture
def embedded_taxonomy_db(sink_taxonomy):
    """Taxonomy with embeddings already computed for every eligible row."""
    db = InMemoryTaxonomyDB(sink_taxonomy)
    for row in db.rows:
        if row.indent <= 2:
            text = f"HTS Code {row.code} - {row.description}"
            row.embedding = hash_embed([text])[0].tolist()
    return db


def make_candidate(code: str, similarity: float = 0.8, indent: int = 2, description: Optional[str] = None) -> Candidate:
    return Candidate(code=code, description=description or f"Description of {code}", indent=indent, similarity=similarity)


def make_choice(hts_code: str = "7324.10", alternatives: Optional[List[str]] = None, confidence: float = 0.87) -> ClassificationChoice:
    return ClassificationChoice(
        hts_code=hts_code,
        hts_code_description="Sinks and wash basins, of stainless steel",
        confidence=confidence,
        chapter=hts_code[:2],
        chapter_description="Articles of iron or steel",
        heading=hts_code[:4],
        heading_description="Sanitary ware and parts thereof, of iron or steel",
        subheading=hts_code,
        subheading_description="Sinks and wash basins, of stainless steel",
        reasoning_brief="A stainless steel kitchen sink is sanitary ware of stainless steel.",
        alternative_codes=alternatives if alternatives is not None else [],
    )


def llm_response(content, raw: str = "{}") -> LLMResponse:
    return LLMResponse(content=content, raw_response=raw, model_name="test-model", provider="OpenAIClient")
