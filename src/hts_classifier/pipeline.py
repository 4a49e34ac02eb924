"""
pipeline.py

Request-level orchestration:

    Received -> Retrieving -> NoCandidates
                           -> Classifying -> Synthesizing -> Done
    (any stage) -> Failed

The pipeline is the only place where exceptions become outcomes. It either
returns a complete response bundle or no response at all.
"""

import threading
import time
from typing import List, Optional

from pydantic import ValidationError

from hts_classifier.agents.classifier import DEFAULT_COUNTRY, StructuredClassifier
from hts_classifier.agents.justifier import JustificationSynthesizer
from hts_classifier.agents.retriever import CandidateRetriever
from hts_classifier.dbs.pool import ConnectionPool
from hts_classifier.dbs.taxonomy_db import TaxonomyDB
from hts_classifier.llm.openai_client import OpenAIClient
from hts_classifier.models import (
    ClassificationRequest,
    ClassificationResponse,
    ClassificationSummary,
    FailureKind,
    OutcomeStatus,
    PipelineOutcome,
    PipelineState,
    RetrievedCandidate,
    SchemaViolation,
    TransportFailure,
    ValidClassification,
)
from hts_classifier.utils.load_config import load_config_file
from hts_classifier.logger import get_logger
from hts_classifier.exception import RetrievalError, StoreUnavailableError, SynthesisError

logger = get_logger(__name__)

NO_CANDIDATES_MESSAGE = "No HTS codes found in database"


class _Cancelled(Exception):
    pass


class ClassificationPipeline:
    def __init__(
        self,
        retriever: CandidateRetriever,
        classifier: StructuredClassifier,
        synthesizer: JustificationSynthesizer,
        embedding_model: Optional[str] = None,
        llm_model: Optional[str] = None,
    ):
        self.retriever = retriever
        self.classifier = classifier
        self.synthesizer = synthesizer
        self.embedding_model = embedding_model
        self.llm_model = llm_model

    @classmethod
    def from_config(cls, config: Optional[dict] = None, pool: Optional[ConnectionPool] = None) -> "ClassificationPipeline":
        """Wire pool, store, retriever and model clients from config.yaml."""
        config = load_config_file() if config is None else config
        pool = pool or ConnectionPool.from_config(config)
        taxonomy_db = TaxonomyDB(pool, dimension=config.get("embedding", {}).get("dimension", 384))
        llm_client = OpenAIClient(config=config)
        retriever = CandidateRetriever.from_config(taxonomy_db, config)

        return cls(
            retriever=retriever,
            classifier=StructuredClassifier(llm_client),
            synthesizer=JustificationSynthesizer(
                llm_client,
                max_tokens=config.get("llm", {}).get("justification_max_tokens", 900),
            ),
            embedding_model=retriever.embedding_model,
            llm_model=llm_client.model,
        )

    # ------------------------------------------------------------------
    def run(
        self,
        product_description: Optional[str],
        country_of_origin: Optional[str] = None,
        k: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> PipelineOutcome:
        states: List[PipelineState] = [PipelineState.RECEIVED]

        try:
            request = ClassificationRequest(
                product_description=product_description,
                country_of_origin=country_of_origin,
            )
        except ValidationError as e:
            logger.warning(f"Rejected request: {e.errors()[0]['msg']}")
            return PipelineOutcome(
                status=OutcomeStatus.INVALID_REQUEST,
                states=states + [PipelineState.FAILED],
                message="product_description is required",
            )

        if k is not None and k < 1:
            return PipelineOutcome(
                status=OutcomeStatus.INVALID_REQUEST,
                states=states + [PipelineState.FAILED],
                message="k must be at least 1",
            )

        description = request.product_description
        country = request.country_of_origin or DEFAULT_COUNTRY
        started = time.perf_counter()
        logger.info(f'Classifying: "{description}"')

        try:
            # Retrieval
            self._check_cancelled(cancel_event)
            states.append(PipelineState.RETRIEVING)
            candidates = self.retriever.retrieve(description, k=k)

            if not candidates:
                logger.info("No candidates retrieved; stopping without classification.")
                states.append(PipelineState.NO_CANDIDATES)
                return PipelineOutcome(
                    status=OutcomeStatus.NO_CANDIDATES,
                    states=states,
                    message=NO_CANDIDATES_MESSAGE,
                )

            # Classification
            self._check_cancelled(cancel_event)
            states.append(PipelineState.CLASSIFYING)
            outcome = self.classifier.classify(description, candidates, country)

            if isinstance(outcome, TransportFailure):
                return self._failed(states, FailureKind.CLASSIFICATION_TRANSPORT, outcome.cause)
            if isinstance(outcome, SchemaViolation):
                return self._failed(
                    states,
                    FailureKind.CLASSIFICATION_SCHEMA,
                    "Model output did not conform to the classification schema",
                    violations=outcome.violations,
                )
            if not isinstance(outcome, ValidClassification):
                raise TypeError(f"Unexpected classifier outcome: {type(outcome).__name__}")

            result = outcome.result

            # Justification
            self._check_cancelled(cancel_event)
            states.append(PipelineState.SYNTHESIZING)
            justification = self.synthesizer.synthesize(result, description)

        except _Cancelled:
            return self._failed(states, FailureKind.CANCELLED, "Request was cancelled by the caller")
        except StoreUnavailableError as e:
            return self._failed(states, FailureKind.STORE_UNAVAILABLE, str(e))
        except RetrievalError as e:
            return self._failed(states, FailureKind.RETRIEVAL_FAILED, str(e))
        except SynthesisError as e:
            return self._failed(states, FailureKind.SYNTHESIS_FAILED, str(e))
        except Exception as e:
            logger.exception("Unexpected error in classification pipeline")
            return self._failed(states, FailureKind.INTERNAL_ERROR, str(e))

        states.append(PipelineState.DONE)
        elapsed_ms = (time.perf_counter() - started) * 1000

        response = ClassificationResponse(
            classification=ClassificationSummary.from_result(result),
            justification=justification,
            retrieved_candidates=[RetrievedCandidate.from_candidate(c) for c in candidates],
            metadata={
                "rag_enabled": True,
                "retrieval_count": len(candidates),
                "embedding_model": self.embedding_model,
                "llm_model": self.llm_model,
                "country_of_origin": country,
                "elapsed_ms": round(elapsed_ms, 1),
            },
        )
        logger.info(f"Classified \"{description}\" as {result.hts_code} in {elapsed_ms:.0f} ms")
        return PipelineOutcome(status=OutcomeStatus.SUCCESS, states=states, response=response)

    # ------------------------------------------------------------------
    @staticmethod
    def _check_cancelled(cancel_event: Optional[threading.Event]):
        if cancel_event is not None and cancel_event.is_set():
            raise _Cancelled()

    @staticmethod
    def _failed(
        states: List[PipelineState],
        kind: FailureKind,
        message: str,
        violations: Optional[List[str]] = None,
    ) -> PipelineOutcome:
        failed_at = states[-1].value
        logger.error(f"Classification failed during {failed_at} ({kind.value}): {message}")
        return PipelineOutcome(
            status=OutcomeStatus.FAILED,
            states=states + [PipelineState.FAILED],
            failure_kind=kind,
            message=message,
            violations=violations or [],
        )
