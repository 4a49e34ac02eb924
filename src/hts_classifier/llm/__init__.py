from hts_classifier.llm.openai_client import OpenAIClient

__all__ = ["OpenAIClient"]
