import logging
from typing import Optional

from openai import AsyncOpenAI, OpenAIError

from config import get_settings
from models import LLMResponse

logger = logging.getLogger(__name__)


def _get_client() -> AsyncOpenAI:
    s = get_settings()
    return AsyncOpenAI(
        api_key=s.openai_api_key,
        base_url=s.openai_base_url or None,
    )


class LLMClient:
    """
    Text-completion backend. Stateless between calls, so a single instance is
    shared by concurrent generations. Backend errors are reported through
    LLMResponse.success rather than raised.
    """

    def __init__(self, client: Optional[AsyncOpenAI] = None, model: Optional[str] = None):
        self._client = client or _get_client()
        self.model = model or get_settings().chat_model

    async def generate(
        self,
        prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
    ) -> LLMResponse:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        try:
            response = await self._client.chat.completions.create(
                model=model or self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except OpenAIError as e:
            logger.warning("Completion request failed: %s", e)
            return LLMResponse(success=False, error=f"OpenAI request failed: {e}")

        content = response.choices[0].message.content if response.choices else None
        if not content:
            return LLMResponse(success=False, error="No response received from model")
        return LLMResponse(success=True, data=content)
