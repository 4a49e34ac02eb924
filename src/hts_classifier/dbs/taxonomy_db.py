"""
taxonomy_db.py

Domain layer for the tariff_codes table (HTS taxonomy + pgvector embeddings).

Responsibilities:
    - Ensure the pgvector extension and table schema exist
    - Report store health
    - Find rows that still need an embedding and write embeddings back
    - Perform cosine similarity search over retrieval-eligible rows

Rows are inserted by an external ingestion process; this module never
creates or deletes taxonomy rows.
"""

from typing import Iterable, List, Optional

import psycopg2
from psycopg2.extras import RealDictCursor

from hts_classifier.dbs.pool import ConnectionPool
from hts_classifier.models import Candidate, TariffCode
from hts_classifier.utils.embed_texts import to_pgvector
from hts_classifier.logger import get_logger
from hts_classifier.exception import StoreUnavailableError

logger = get_logger(__name__)

# Rows deeper than this are never embedded nor returned by search
MAX_ELIGIBLE_INDENT = 2


class TaxonomyDB:
    def __init__(self, pool: ConnectionPool, dimension: int = 384):
        self.pool = pool
        self.dimension = dimension
        logger.info("Initialized TaxonomyDB (Postgres + pgvector).")

    # ----------------------------------------------------------------------
    # SCHEMA / HEALTH
    # ----------------------------------------------------------------------
    def init_schema(self):
        """Enable pgvector and create tariff_codes if it doesn't exist."""
        try:
            with self.pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("CREATE EXTENSION IF NOT EXISTS vector;")
                    cur.execute(f"""
                        CREATE TABLE IF NOT EXISTS tariff_codes (
                            id SERIAL PRIMARY KEY,
                            htsno TEXT,
                            descript TEXT NOT NULL,
                            general TEXT,
                            special TEXT,
                            indent INTEGER NOT NULL DEFAULT 0,
                            embedding vector({int(self.dimension)})
                        );
                    """)
            logger.info("tariff_codes schema verified.")
        except psycopg2.Error as e:
            logger.error("Failed to initialize tariff_codes schema.")
            raise StoreUnavailableError(e)

    def health_check(self) -> dict:
        """Run a trivial query. Never raises; reports db-unavailable instead."""
        try:
            with self.pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1;")
                    cur.fetchone()
            return {"status": "ok"}
        except Exception as e:
            logger.error(f"DB health check failed: {e}")
            return {"status": "db-unavailable", "error": str(e)}

    # ----------------------------------------------------------------------
    # BACKFILL QUERIES
    # ----------------------------------------------------------------------
    def count_unembedded(self, max_indent: int = MAX_ELIGIBLE_INDENT) -> int:
        try:
            with self.pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("""
                        SELECT COUNT(*) FROM tariff_codes
                        WHERE indent <= %s AND embedding IS NULL AND htsno IS NOT NULL;
                    """, (max_indent,))
                    row = cur.fetchone()
            return int(row[0]) if row else 0
        except psycopg2.Error as e:
            logger.error("Failed counting unembedded tariff codes.")
            raise StoreUnavailableError(e)

    def fetch_unembedded(
        self,
        limit: int,
        max_indent: int = MAX_ELIGIBLE_INDENT,
        exclude_codes: Optional[Iterable[str]] = None,
    ) -> List[TariffCode]:
        """
        Next batch of rows needing an embedding, one per distinct
        (htsno, descript, indent). Codes in exclude_codes are skipped.
        """
        exclude = list(exclude_codes or [])
        try:
            with self.pool.connection() as conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    cur.execute("""
                        SELECT DISTINCT ON (htsno, descript, indent)
                            htsno, descript, indent
                        FROM tariff_codes
                        WHERE indent <= %s
                          AND embedding IS NULL
                          AND htsno IS NOT NULL
                          AND NOT (htsno = ANY(%s))
                        ORDER BY htsno, descript, indent
                        LIMIT %s;
                    """, (max_indent, exclude, limit))
                    rows = cur.fetchall()

            return [
                TariffCode(code=row["htsno"], description=row["descript"], indent=row["indent"])
                for row in rows
            ]
        except psycopg2.Error as e:
            logger.error("Failed fetching unembedded tariff codes.")
            raise StoreUnavailableError(e)

    def update_embedding(self, code: str, embedding) -> int:
        """Write the embedding for every row with this code. Returns rows updated."""
        vector_literal = to_pgvector(embedding)
        try:
            with self.pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        "UPDATE tariff_codes SET embedding = %s::vector WHERE htsno = %s;",
                        (vector_literal, code),
                    )
                    return cur.rowcount
        except psycopg2.Error as e:
            logger.error(f"Failed writing embedding for code {code}.")
            raise StoreUnavailableError(e)

    # ----------------------------------------------------------------------
    # LOOKUPS
    # ----------------------------------------------------------------------
    def get_by_code(self, code: str) -> Optional[TariffCode]:
        try:
            with self.pool.connection() as conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    cur.execute("""
                        SELECT id, htsno, descript, general, special, indent
                        FROM tariff_codes WHERE htsno = %s
                        ORDER BY indent LIMIT 1;
                    """, (code,))
                    row = cur.fetchone()

            if not row:
                return None
            return TariffCode(
                id=row["id"],
                code=row["htsno"],
                description=row["descript"],
                general=row["general"],
                special=row["special"],
                indent=row["indent"],
            )
        except psycopg2.Error as e:
            logger.error(f"Failed to fetch tariff code {code}.")
            raise StoreUnavailableError(e)

    # ----------------------------------------------------------------------
    # VECTOR SEARCH
    # ----------------------------------------------------------------------
    def search_similar(self, query_embedding, k: int, max_indent: int = MAX_ELIGIBLE_INDENT) -> List[Candidate]:
        """Return up to k eligible rows nearest to query_embedding by cosine distance."""
        vector_literal = to_pgvector(query_embedding)
        try:
            with self.pool.connection() as conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    cur.execute("""
                        SELECT
                            htsno AS code,
                            descript AS description,
                            general,
                            special,
                            indent,
                            1 - (embedding <=> %s::vector) AS similarity
                        FROM tariff_codes
                        WHERE indent <= %s
                          AND embedding IS NOT NULL
                          AND htsno IS NOT NULL
                        ORDER BY embedding <=> %s::vector, indent DESC
                        LIMIT %s;
                    """, (vector_literal, max_indent, vector_literal, k))
                    rows = cur.fetchall()

            return [
                Candidate(
                    code=row["code"],
                    description=row["description"],
                    general=row.get("general"),
                    special=row.get("special"),
                    indent=row["indent"],
                    similarity=min(1.0, max(0.0, float(row["similarity"]))),
                )
                for row in rows
            ]
        except psycopg2.Error as e:
            logger.error("Failed vector search over tariff_codes.")
            raise StoreUnavailableError(e)
