from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel, Field


class CompletionOptions(BaseModel):
    system_prompt: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    timeout_seconds: Optional[float] = None


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class AICompletion(BaseModel):
    success: bool
    text: str = ""
    usage: TokenUsage = Field(default_factory=TokenUsage)
    error: Optional[str] = None
    timed_out: bool = False
    model: Optional[str] = None


class IAIService(ABC):
    """Interface for the AI completion gateway.

    Implementations report provider failures and timeouts through
    ``AICompletion.success``/``error``/``timed_out`` instead of raising.
    """

    @abstractmethod
    async def complete(self, prompt: str, options: Optional[CompletionOptions] = None) -> AICompletion:
        """Generate text for a prompt, bounded by the configured timeout"""
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass
