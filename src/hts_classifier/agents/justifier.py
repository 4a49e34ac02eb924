from hts_classifier.models import ClassificationResult
from hts_classifier.logger import get_logger
from hts_classifier.exception import LLMTransportError, SynthesisError

logger = get_logger(__name__)

JUSTIFICATION_PROMPT = """Generate a formal HTS classification justification document.

Product: {product_description}
Selected Code: {hts_code}
Code Description: {hts_code_description}
Chapter: {chapter} - {chapter_description}
Heading: {heading} - {heading_description}
Subheading: {subheading} - {subheading_description}

Alternative Codes Considered:
{alternatives}

Brief Reasoning: {reasoning_brief}

Generate a professional justification following this structure:

# Classification Justification for Code {hts_code}

## Understanding the Product
[2-3 sentences describing the product and its key classification characteristics]

## Relevant Tariff Structure
**Chapter {chapter}**: {chapter_description}
**Heading {heading}**: {heading_description}
**Subheading {subheading}**: {subheading_description}

## Why This Classification
[3-4 sentences explaining why this code is correct, referencing the HTS structure]

## Exclusion of Alternatives
[2-3 sentences explaining why alternative codes were not selected]

## Conclusion
The classification of {hts_code} is justified based on [1-2 sentences summarizing key factors].

Keep it concise (under 400 words) and professional."""


def justification_title(hts_code: str) -> str:
    return f"# Classification Justification for Code {hts_code}"


class JustificationSynthesizer:
    """Second, independent model call that turns a classification into a readable rationale."""

    def __init__(self, llm_client, max_tokens: int = 900):
        self.llm_client = llm_client
        self.max_tokens = max_tokens

    def synthesize(self, result: ClassificationResult, description: str) -> str:
        structure = result.structure
        prompt = JUSTIFICATION_PROMPT.format(
            product_description=description,
            hts_code=result.hts_code,
            hts_code_description=result.description,
            chapter=structure.chapter.code,
            chapter_description=structure.chapter.description,
            heading=structure.heading.code,
            heading_description=structure.heading.description,
            subheading=structure.subheading.code,
            subheading_description=structure.subheading.description,
            alternatives=", ".join(result.alternatives) or "None",
            reasoning_brief=result.reasoning,
        )

        try:
            response = self.llm_client.generate(prompt=prompt, max_tokens=self.max_tokens)
        except LLMTransportError as e:
            logger.error(f"Justification model call failed: {e}")
            raise SynthesisError(e)

        text = str(response.content or "").strip()
        if not text:
            raise SynthesisError("Model returned an empty justification.")

        return self._ensure_title(text, result.hts_code)

    @staticmethod
    def _ensure_title(text: str, hts_code: str) -> str:
        first_line = text.splitlines()[0]
        if first_line.lstrip().startswith("#") and hts_code in first_line:
            return text
        logger.warning("Justification is missing its title heading, prepending it.")
        return f"{justification_title(hts_code)}\n\n{text}"
