from typing import List, Optional

from hts_classifier.models import (
    Candidate,
    ClassificationChoice,
    ClassificationResult,
    ClassifierOutcome,
    SchemaViolation,
    TransportFailure,
    ValidClassification,
)
from hts_classifier.logger import get_logger
from hts_classifier.exception import LLMTransportError, StructuredOutputError

logger = get_logger(__name__)

DEFAULT_COUNTRY = "Unknown"

CLASSIFIER_PROMPT = """
You are an expert HTS classifier. Select the most appropriate code from the candidates.

Product Description: {product_description}
Country of Origin: {country_of_origin}

Retrieved Candidate Codes:
{candidates_text}

Selection Criteria:
1. Most specific match to the product description
2. Consider semantic accuracy over similarity score
3. Prefer more detailed subheadings (higher indent)
4. Must select from the provided candidates only, copying the code exactly
5. alternative_codes may only contain codes from the list above

Respond with a JSON object matching the schema. Provide brief reasoning (1 sentence)
and list the alternatives considered.
"""


def format_candidates(candidates: List[Candidate]) -> str:
    return "\n".join(
        f"{i}. Code: {c.code} | {c.description} | Similarity: {c.similarity * 100:.1f}%"
        for i, c in enumerate(candidates, start=1)
    )


class StructuredClassifier:
    """
    Asks the model to pick one code out of the retrieved candidates.

    Returns a ClassifierOutcome instead of raising:
        ValidClassification  -> schema-valid, all codes drawn from the candidates
        SchemaViolation      -> unparseable output, or codes outside the candidate set
        TransportFailure     -> model unreachable / rate-limited / timed out

    The confidence value is the model's own estimate and is passed through as-is.
    """

    def __init__(self, llm_client):
        self.llm_client = llm_client

    def classify(
        self,
        description: str,
        candidates: List[Candidate],
        country_of_origin: Optional[str] = None,
    ) -> ClassifierOutcome:
        if not candidates:
            raise ValueError("classify() requires at least one candidate")

        prompt = CLASSIFIER_PROMPT.format(
            product_description=description,
            country_of_origin=country_of_origin or DEFAULT_COUNTRY,
            candidates_text=format_candidates(candidates),
        )

        try:
            response = self.llm_client.generate(prompt=prompt, response_model=ClassificationChoice)
        except StructuredOutputError as e:
            logger.warning(f"Classification output failed schema validation: {e.violations}")
            return SchemaViolation(raw=e.raw, violations=e.violations or [str(e)])
        except LLMTransportError as e:
            logger.error(f"Classification model call failed: {e}")
            return TransportFailure(cause=str(e))

        choice = response.content
        if not isinstance(choice, ClassificationChoice):
            logger.warning(f"LLM did not return ClassificationChoice instance. Content type: {type(choice)}")
            return SchemaViolation(
                raw=response.raw_response,
                violations=[f"expected ClassificationChoice, got {type(choice).__name__}"],
            )

        violations = self._candidate_violations(choice, candidates)
        if violations:
            logger.warning(f"Model selected codes outside the candidate set: {violations}")
            return SchemaViolation(raw=response.raw_response, violations=violations)

        result = ClassificationResult.from_choice(choice)
        logger.info(f"Classification: {result.hts_code} (confidence={result.confidence}) | {result.reasoning}")
        return ValidClassification(result=result)

    @staticmethod
    def _candidate_violations(choice: ClassificationChoice, candidates: List[Candidate]) -> List[str]:
        allowed = {c.code.strip() for c in candidates}
        violations = []

        selected = choice.hts_code.strip()
        if selected not in allowed:
            violations.append(f"hts_code '{selected}' is not one of the retrieved candidates")

        for alt in choice.alternative_codes:
            if alt.strip() not in allowed:
                violations.append(f"alternative code '{alt.strip()}' is not one of the retrieved candidates")

        return violations
