import asyncio
from typing import Any, Optional

import google.generativeai as genai
import structlog

from app.repositories.interfaces.ai_service import (
    AICompletion,
    CompletionOptions,
    IAIService,
    TokenUsage,
)

logger = structlog.get_logger()


class GeminiService(IAIService):
    """Google Gemini implementation of the AI gateway (alternative provider)."""

    def __init__(
        self,
        api_key: Optional[str],
        model_name: str,
        timeout_seconds: float = 30.0,
        max_tokens: int = 2000,
        temperature: float = 0.6,
    ) -> None:
        self.model_name = model_name
        self.timeout_seconds = timeout_seconds
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.model: Optional[genai.GenerativeModel] = None
        if api_key:
            genai.configure(api_key=api_key)
            self.model = genai.GenerativeModel(model_name)

    @property
    def provider_name(self) -> str:
        return "gemini"

    async def complete(self, prompt: str, options: Optional[CompletionOptions] = None) -> AICompletion:
        options = options or CompletionOptions()
        if not self.model:
            logger.error("Gemini model not configured")
            return AICompletion(success=False, error="Gemini API key not configured", model=self.model_name)

        model = self.model
        timeout = options.timeout_seconds or self.timeout_seconds
        # Gemini has no separate system role here; prepend it to the prompt
        full_prompt = f"{options.system_prompt}\n\n{prompt}" if options.system_prompt else prompt

        def sync_call():
            return model.generate_content(
                full_prompt,
                generation_config=genai.types.GenerationConfig(
                    max_output_tokens=options.max_tokens or self.max_tokens,
                    temperature=options.temperature if options.temperature is not None else self.temperature,
                ),
            )

        loop = asyncio.get_running_loop()
        try:
            response = await asyncio.wait_for(loop.run_in_executor(None, sync_call), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Gemini call timed out", model=self.model_name, timeout=timeout)
            return AICompletion(
                success=False, error=f"AI request timed out after {timeout}s", timed_out=True, model=self.model_name
            )
        except Exception as e:
            logger.error("Gemini call failed", model=self.model_name, error=str(e))
            return AICompletion(success=False, error=str(e), model=self.model_name)

        text = self._extract_text(response)
        usage = self._extract_usage(response)
        logger.info("Gemini call finished", model=self.model_name, total_tokens=usage.total_tokens, empty=not text)
        if not text:
            return AICompletion(success=False, error="Empty response from AI", usage=usage, model=self.model_name)
        return AICompletion(success=True, text=text, usage=usage, model=self.model_name)

    @staticmethod
    def _extract_text(response: Any) -> str:
        # .text raises when the candidate was blocked
        try:
            return getattr(response, "text", "") or ""
        except ValueError:
            return ""

    @staticmethod
    def _extract_usage(response: Any) -> TokenUsage:
        meta = getattr(response, "usage_metadata", None)
        if not meta:
            return TokenUsage()
        return TokenUsage(
            prompt_tokens=getattr(meta, "prompt_token_count", 0) or 0,
            completion_tokens=getattr(meta, "candidates_token_count", 0) or 0,
            total_tokens=getattr(meta, "total_token_count", 0) or 0,
        )
