"""OpenAI-compatible completion client shared by the router, renderer, responder and extractor."""

import logging
from typing import Optional

from openai import AsyncOpenAI
from tenacity import retry, stop_after_attempt, wait_exponential

from config import settings

logger = logging.getLogger(__name__)


class LLMCompletionClient:
    """Single-turn chat completion: system prompt + user prompt -> text."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.client = AsyncOpenAI(
            api_key=api_key or settings.router_llm_api_key,
            base_url=base_url or settings.router_llm_base_url,
            timeout=timeout_seconds or settings.router_llm_timeout_seconds,
        )
        self.model = model or settings.router_llm_model

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(multiplier=1, min=1, max=8), reraise=True)
    async def complete(self, system: str, prompt: str, temperature: float = 0.0, max_tokens: int = 800) -> str:
        """Make one completion call."""
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": prompt},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
            )
            return response.choices[0].message.content or ""
        except Exception as e:
            logger.error(f"LLM API error: {e}")
            raise


def create_llm_client() -> Optional[LLMCompletionClient]:
    """Build a client when ROUTER_LLM_PROVIDER=openai_compatible and a key is set."""
    if not settings.router_llm_enabled:
        logger.info("Router LLM not configured; using deterministic fallbacks")
        return None
    return LLMCompletionClient()
