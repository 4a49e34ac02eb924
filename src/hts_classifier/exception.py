"""
exception.py

Exception hierarchy for the classification pipeline.

Every error raised by the package derives from CustomException, so callers can
catch the whole family at once. The subclasses map one-to-one onto the failure
kinds reported by the pipeline orchestrator.
"""

from typing import List, Optional


class CustomException(Exception):
    def __init__(self, error_message, error_detail=None):
        super().__init__(str(error_message))
        self.error_message = self.get_detailed_error_message(error_message, error_detail)

    @staticmethod
    def get_detailed_error_message(error_message, error_detail) -> str:
        """Append the originating file and line when `sys` is passed as error_detail."""
        if error_detail is None:
            return str(error_message)

        _, _, exc_tb = error_detail.exc_info()
        if exc_tb is None:
            return str(error_message)

        while exc_tb.tb_next is not None:
            exc_tb = exc_tb.tb_next

        file_name = exc_tb.tb_frame.f_code.co_filename
        line_number = exc_tb.tb_lineno
        return f"Error in {file_name}, line {line_number}: {error_message}"

    def __str__(self):
        return self.error_message


class StoreUnavailableError(CustomException):
    """Taxonomy store connection or query failure."""


class RetrievalError(CustomException):
    """The embedding model could not embed the query text."""


class LLMTransportError(CustomException):
    """The language model could not be reached, rate-limited us, or timed out."""


class StructuredOutputError(CustomException):
    """Model output did not conform to the required schema."""

    def __init__(self, error_message, raw: str = "", violations: Optional[List[str]] = None):
        super().__init__(error_message)
        self.raw = raw
        self.violations = list(violations or [])


class SynthesisError(CustomException):
    """The justification document could not be generated."""


__all__ = [
    "CustomException",
    "StoreUnavailableError",
    "RetrievalError",
    "LLMTransportError",
    "StructuredOutputError",
    "SynthesisError",
]
