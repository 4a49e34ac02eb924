from typing import List, Optional

from hts_classifier.dbs.taxonomy_db import MAX_ELIGIBLE_INDENT, TaxonomyDB
from hts_classifier.models import Candidate
from hts_classifier.utils.embed_texts import DEFAULT_EMBEDDING_MODEL, embed_texts
from hts_classifier.logger import get_logger
from hts_classifier.exception import RetrievalError

logger = get_logger(__name__)

QUERY_PREFIX = "Product: "


class CandidateRetriever:
    """
    Embeds a product description and returns the nearest tariff codes.

    Ordering: similarity descending, then indent descending so that on a tie the
    more specific code wins. The tie-break is a policy knob (prefer_deeper_codes);
    similarity_decimals widens what counts as a tie. When it is set, the store is
    asked for 2k rows so a deeper code just past the k-th exact distance can still
    be promoted.
    """

    def __init__(
        self,
        taxonomy_db: TaxonomyDB,
        default_k: int = 5,
        max_indent: int = MAX_ELIGIBLE_INDENT,
        prefer_deeper_codes: bool = True,
        similarity_decimals: Optional[int] = None,
        embedding_model: str = DEFAULT_EMBEDDING_MODEL,
    ):
        self.taxonomy_db = taxonomy_db
        self.default_k = default_k
        self.max_indent = max_indent
        self.prefer_deeper_codes = prefer_deeper_codes
        self.similarity_decimals = similarity_decimals
        self.embedding_model = embedding_model

    @classmethod
    def from_config(cls, taxonomy_db: TaxonomyDB, config: dict) -> "CandidateRetriever":
        retrieval_config = config.get("retrieval", {})
        return cls(
            taxonomy_db,
            default_k=retrieval_config.get("k", 5),
            max_indent=retrieval_config.get("max_indent", MAX_ELIGIBLE_INDENT),
            prefer_deeper_codes=retrieval_config.get("prefer_deeper_codes", True),
            similarity_decimals=retrieval_config.get("similarity_decimals"),
            embedding_model=config.get("embedding", {}).get("model", DEFAULT_EMBEDDING_MODEL),
        )

    def retrieve(self, description: str, k: Optional[int] = None) -> List[Candidate]:
        k = self.default_k if k is None else k
        if k < 1:
            raise ValueError("k must be at least 1")

        logger.info("Generating query embedding...")
        try:
            query_vector = embed_texts([f"{QUERY_PREFIX}{description}"], model_name=self.embedding_model)[0]
        except Exception as e:
            logger.error(f"Query embedding failed: {e}")
            raise RetrievalError(e)

        fetch_k = k if self.similarity_decimals is None else 2 * k
        logger.info(f"Searching for top {k} similar HTS codes...")
        candidates = self.taxonomy_db.search_similar(query_vector, k=fetch_k, max_indent=self.max_indent)

        ranked = sorted(candidates, key=self._rank_key)[:k]
        logger.info(f"Found {len(ranked)} candidates")
        logger.debug(f"Top candidates: {[(c.code, round(c.similarity, 4)) for c in ranked]}")
        return ranked

    def _rank_key(self, candidate: Candidate):
        similarity = candidate.similarity
        if self.similarity_decimals is not None:
            similarity = round(similarity, self.similarity_decimals)
        depth = candidate.indent if self.prefer_deeper_codes else 0
        return (-similarity, -depth)
