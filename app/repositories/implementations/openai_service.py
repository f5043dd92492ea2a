import asyncio
from typing import Optional

import structlog
from openai import OpenAI

from app.repositories.interfaces.ai_service import (
    AICompletion,
    CompletionOptions,
    IAIService,
    TokenUsage,
)

logger = structlog.get_logger()


class OpenAIService(IAIService):
    """OpenAI chat completions implementation of the AI gateway"""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str,
        model: str,
        timeout_seconds: float = 30.0,
        max_tokens: int = 2000,
        temperature: float = 0.6,
        client: Optional[OpenAI] = None,
    ):
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.max_tokens = max_tokens
        self.temperature = temperature
        # The SDK retries on its own; the gateway reports failures instead
        self.client = client or OpenAI(
            base_url=base_url,
            api_key=api_key or "not-configured",
            timeout=timeout_seconds,
            max_retries=0,
        )
        self._configured = bool(api_key) or client is not None

    @property
    def provider_name(self) -> str:
        return "openai"

    async def complete(self, prompt: str, options: Optional[CompletionOptions] = None) -> AICompletion:
        options = options or CompletionOptions()
        if not self._configured:
            logger.error("OpenAI API key not configured")
            return AICompletion(success=False, error="OpenAI API key not configured", model=self.model)

        timeout = options.timeout_seconds or self.timeout_seconds
        messages = []
        if options.system_prompt:
            messages.append({"role": "system", "content": options.system_prompt})
        messages.append({"role": "user", "content": prompt})

        def sync_call():
            return self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=options.temperature if options.temperature is not None else self.temperature,
                max_tokens=options.max_tokens or self.max_tokens,
            )

        logger.info("OpenAI call started", model=self.model, prompt_preview=prompt[:120].replace("\n", " "))
        loop = asyncio.get_running_loop()
        try:
            response = await asyncio.wait_for(loop.run_in_executor(None, sync_call), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("OpenAI call timed out", model=self.model, timeout=timeout)
            return AICompletion(
                success=False, error=f"AI request timed out after {timeout}s", timed_out=True, model=self.model
            )
        except Exception as e:
            logger.error("OpenAI call failed", model=self.model, error=str(e), error_type=type(e).__name__)
            return AICompletion(success=False, error=str(e), model=self.model)

        text = ""
        if getattr(response, "choices", None):
            choice = response.choices[0]
            if getattr(choice, "message", None) and getattr(choice.message, "content", None):
                text = choice.message.content
        usage = TokenUsage()
        if getattr(response, "usage", None):
            usage = TokenUsage(
                prompt_tokens=response.usage.prompt_tokens or 0,
                completion_tokens=response.usage.completion_tokens or 0,
                total_tokens=response.usage.total_tokens or 0,
            )

        logger.info("OpenAI call finished", model=self.model, total_tokens=usage.total_tokens, empty=not text)
        if not text:
            return AICompletion(success=False, error="Empty response from AI", usage=usage, model=self.model)
        return AICompletion(success=True, text=text, usage=usage, model=self.model)
