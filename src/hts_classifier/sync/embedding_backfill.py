"""
embedding_backfill.py

Backfill process:
    1. Count eligible tariff codes (indent <= 2) that have no embedding
    2. Fetch a bounded batch, deduplicated by (code, description, indent)
    3. Embed each row with an indent-dependent template
    4. Write the vector back, keyed by code
    5. Repeat until nothing eligible is left

Rows that already have an embedding are never touched, so the job can be
re-run at any time. A row that fails is logged, skipped for the rest of the
run, and picked up again on the next run.
"""

import time
from typing import List, Optional

from pydantic import BaseModel, Field

from hts_classifier.dbs.taxonomy_db import MAX_ELIGIBLE_INDENT, TaxonomyDB
from hts_classifier.models import TariffCode
from hts_classifier.utils.embed_texts import DEFAULT_EMBEDDING_MODEL, embed_texts
from hts_classifier.logger import get_logger
from hts_classifier.exception import CustomException

logger = get_logger(__name__)


class BackfillReport(BaseModel):
    pending_at_start: int = 0
    embedded: int = 0
    failed: int = 0
    batches: int = 0
    failed_codes: List[str] = Field(default_factory=list)


def build_embedding_text(row: TariffCode) -> str:
    """Chapters get a terse template, deeper codes a slightly richer one."""
    if row.indent == 0:
        return f"HTS {row.code}: {row.description}"
    return f"HTS Code {row.code} - {row.description}"


class EmbeddingBackfill:
    def __init__(
        self,
        taxonomy_db: TaxonomyDB,
        batch_size: int = 10,
        delay_seconds: float = 0.7,
        max_indent: int = MAX_ELIGIBLE_INDENT,
        dimension: Optional[int] = None,
        embedding_model: str = DEFAULT_EMBEDDING_MODEL,
        sleep=time.sleep,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        self.taxonomy_db = taxonomy_db
        self.batch_size = batch_size
        self.delay_seconds = delay_seconds
        self.max_indent = max_indent
        self.dimension = dimension or taxonomy_db.dimension
        self.embedding_model = embedding_model
        self._sleep = sleep

    @classmethod
    def from_config(cls, taxonomy_db: TaxonomyDB, config: dict) -> "EmbeddingBackfill":
        backfill_config = config.get("backfill", {})
        embedding_config = config.get("embedding", {})
        return cls(
            taxonomy_db,
            batch_size=backfill_config.get("batch_size", 10),
            delay_seconds=backfill_config.get("delay_seconds", 0.7),
            max_indent=backfill_config.get("max_indent", MAX_ELIGIBLE_INDENT),
            dimension=embedding_config.get("dimension"),
            embedding_model=embedding_config.get("model", DEFAULT_EMBEDDING_MODEL),
        )

    # ------------------------------------------------------
    # MAIN LOOP
    # ------------------------------------------------------
    def run(self) -> BackfillReport:
        report = BackfillReport()
        report.pending_at_start = self.taxonomy_db.count_unembedded(self.max_indent)
        logger.info(f"Found {report.pending_at_start} HTS codes (indent<={self.max_indent}) needing embeddings.")

        failed_codes: set = set()

        while True:
            rows = self.taxonomy_db.fetch_unembedded(
                limit=self.batch_size,
                max_indent=self.max_indent,
                exclude_codes=failed_codes,
            )
            if not rows:
                break

            report.batches += 1
            logger.info(f"--- Batch {report.batches} ({report.embedded}/{report.pending_at_start}) ---")

            for row in rows:
                if self._embed_row(row):
                    report.embedded += 1
                    logger.info(
                        f"{report.embedded}/{report.pending_at_start} [indent={row.indent}] "
                        f"{row.code}: {row.description[:40]}"
                    )
                    self._sleep(self.delay_seconds)
                else:
                    failed_codes.add(row.code)
                    report.failed += 1
                    report.failed_codes.append(row.code)

        logger.info(f"Backfill done. Embedded {report.embedded}, failed {report.failed}.")
        return report

    def _embed_row(self, row: TariffCode) -> bool:
        """Embed and store one row. Returns False instead of raising so the batch continues."""
        try:
            vectors = embed_texts([build_embedding_text(row)], model_name=self.embedding_model)
            if len(vectors) != 1:
                raise CustomException(f"Expected one embedding, got {len(vectors)}.")

            vector = vectors[0]
            if len(vector) != self.dimension:
                raise CustomException(
                    f"Embedding dimension {len(vector)} does not match configured {self.dimension}."
                )

            self.taxonomy_db.update_embedding(row.code, vector)
            return True

        except Exception as e:
            logger.error(f"Failed to embed {row.code}: {e}")
            return False
