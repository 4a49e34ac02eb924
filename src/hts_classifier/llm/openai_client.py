from __future__ import annotations

import os
import time
from typing import Any, Dict, Optional, Type

from openai import APIConnectionError, APIError, APITimeoutError, OpenAI, RateLimitError
from pydantic import BaseModel, ValidationError
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from hts_classifier.exception import CustomException, LLMTransportError, StructuredOutputError
from hts_classifier.logger import get_logger
from hts_classifier.models.llm import LLMResponse
from hts_classifier.utils.load_config import load_config_file

logger = get_logger(__name__)

TRANSIENT_ERRORS = (APITimeoutError, APIConnectionError, RateLimitError)


class OpenAIClient:
    """
    Wrapper around an OpenAI-compatible chat completions endpoint (OpenAI, Groq, ...)
    with per-call timeouts, optional retries and JSON schema structured output.

    Transport problems surface as LLMTransportError; output that does not parse
    into the requested response_model surfaces as StructuredOutputError.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        client: Optional[OpenAI] = None,
        base_url: Optional[str] = None,
        config: Optional[Dict[str, Any]] = None,
    ) -> None:
        config = load_config_file() if config is None else config
        llm_config = config.get("llm", {})

        self.model = model_name or llm_config.get("classification_model", "gpt-4o-mini")
        self.temperature = llm_config.get("temperature", 0.0) if temperature is None else temperature
        self.max_tokens = max_tokens or llm_config.get("max_tokens", 600)
        self.timeout = timeout or llm_config.get("timeout_seconds", 30.0)
        # 1 attempt = no retry; raise to enable backoff on transient errors
        self.max_attempts = max_attempts or llm_config.get("max_attempts", 1)

        if client is None:
            resolved_api_key = api_key or os.getenv("OPENAI_API_KEY")
            resolved_base_url = base_url or os.getenv("OPENAI_BASE_URL") or llm_config.get("base_url")
            if not resolved_api_key:
                raise CustomException("OPENAI_API_KEY is not set in the environment.")
            client = OpenAI(
                api_key=resolved_api_key,
                base_url=resolved_base_url,
                timeout=self.timeout,
                max_retries=0,
            )

        self.client = client

    # ------------------------------------------------------------------
    def generate(
        self,
        prompt: str,
        response_model: Optional[Type[BaseModel]] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """
        Send a single-turn prompt to the model.

        Args:
            prompt: User prompt to send to the model.
            response_model: Optional pydantic model. When given, the model is asked
                for JSON matching its schema and the reply is validated into it.
            max_tokens: Override the configured completion budget.

        Returns:
            LLMResponse whose content is a response_model instance or plain text.
        """
        request: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self.temperature,
            "max_tokens": max_tokens or self.max_tokens,
            "timeout": self.timeout,
        }

        if response_model is not None:
            request["response_format"] = {
                "type": "json_schema",
                "json_schema": {
                    "name": response_model.__name__,
                    "schema": response_model.model_json_schema(),
                },
            }

        started = time.perf_counter()
        try:
            logger.debug("Calling model=%s", self.model)
            completion = self._create_with_retry(request=request)
        except APIError as exc:
            logger.error("Model call failed: %s", exc)
            raise LLMTransportError(exc)

        latency_ms = (time.perf_counter() - started) * 1000
        raw = self._extract_text(completion)
        logger.info("Received response from model %s in %.0f ms", self.model, latency_ms)

        content: Any = raw
        if response_model is not None:
            content = self._validate(raw, response_model)

        usage = getattr(completion, "usage", None)
        return LLMResponse(
            content=content,
            raw_response=raw,
            model_name=self.model,
            provider=type(self).__name__,
            finish_reason=self._finish_reason(completion),
            prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
            latency_ms=latency_ms,
        )

    # ------------------------------------------------------------------
    def _create_with_retry(self, *, request: Dict[str, Any]):
        """Issue the request, with exponential backoff on transient errors when max_attempts > 1."""
        retrying = Retrying(
            reraise=True,
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=1, min=1, max=8),
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
        )
        return retrying(self.client.chat.completions.create, **request)

    # ------------------------------------------------------------------
    @staticmethod
    def _validate(raw: str, response_model: Type[BaseModel]) -> BaseModel:
        try:
            return response_model.model_validate_json(_strip_code_fence(raw))
        except ValidationError as exc:
            violations = [
                f"{'.'.join(str(part) for part in err['loc']) or '<root>'}: {err['msg']}"
                for err in exc.errors()
            ]
            logger.warning("Model output failed %s validation: %s", response_model.__name__, violations)
            raise StructuredOutputError(
                f"Model output does not match {response_model.__name__}",
                raw=raw,
                violations=violations,
            )

    @staticmethod
    def _extract_text(completion: Any) -> str:
        choices = getattr(completion, "choices", None) or []
        if not choices:
            return ""
        message = getattr(choices[0], "message", None)
        return (getattr(message, "content", None) or "").strip()

    @staticmethod
    def _finish_reason(completion: Any) -> Optional[str]:
        choices = getattr(completion, "choices", None) or []
        return getattr(choices[0], "finish_reason", None) if choices else None


def _strip_code_fence(text: str) -> str:
    """Some providers wrap JSON in ```json fences even in schema mode."""
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = stripped.split("\n", 1)[1] if "\n" in stripped else ""
        if stripped.rstrip().endswith("```"):
            stripped = stripped.rstrip()[:-3]
    return stripped.strip()
