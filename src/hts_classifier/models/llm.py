from typing import Any, Optional
from pydantic import BaseModel, Field


class LLMResponse(BaseModel):
    """
    Provider-neutral result of one model call.
    `content` holds a validated response_model instance for structured calls,
    plain text otherwise.
    """
    content: Any = Field(..., description="Parsed response model or generated text")
    raw_response: str
    model_name: str
    provider: str
    finish_reason: Optional[str] = None
    prompt_tokens: int = 0
    completion_tokens: int = 0
    latency_ms: float = 0.0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens
