"""
Gemini client used for tone-shift classification.
Single-prompt completions with retry and token tracking.
"""

import asyncio
from typing import Optional

import google.generativeai as genai
import structlog
from pydantic import BaseModel
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from repovoice.core.config import settings

logger = structlog.get_logger(__name__)


class LLMResponse(BaseModel):
    """Completion text plus token usage."""
    content: str
    model: str
    prompt_tokens: int
    completion_tokens: int

    @property
    def tokens_used(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class GeminiClient:
    """Google Gemini API client with retry logic."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        genai.configure(api_key=api_key or settings.google_api_key)
        self.model_name = model or settings.google_model_fast
        self._model = genai.GenerativeModel(
            model_name=self.model_name,
            generation_config=genai.GenerationConfig(
                temperature=settings.llm_temperature,
                max_output_tokens=settings.llm_max_tokens,
            ),
        )

    @retry(
        retry=retry_if_exception_type((TimeoutError, ConnectionError)),
        stop=stop_after_attempt(settings.llm_max_retries),
        wait=wait_exponential(multiplier=1, min=2, max=10),
    )
    async def generate(self, prompt: str) -> LLMResponse:
        """Complete a single prompt. The SDK call is blocking, so it runs in the executor."""
        logger.debug("Gemini request", model=self.model_name, prompt_chars=len(prompt))

        loop = asyncio.get_running_loop()
        response = await asyncio.wait_for(
            loop.run_in_executor(None, self._model.generate_content, prompt),
            timeout=settings.llm_timeout,
        )

        usage = response.usage_metadata
        return LLMResponse(
            content=response.text,
            model=self.model_name,
            prompt_tokens=getattr(usage, "prompt_token_count", 0),
            completion_tokens=getattr(usage, "candidates_token_count", 0),
        )
