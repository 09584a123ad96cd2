"""Text-generation client.

One ``TextGenerationClient`` is built at startup and passed to whoever
needs it. Without an API key the client exists but is unavailable, and
every call raises ``ExternalServiceError`` so callers take their
rule-based path.
"""

import asyncio
from typing import Any

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from app.core.config import Settings
from app.core.errors import ExternalServiceError
from app.core.logging import get_logger
from app.llm.parsing import parse_llm_json_response
from app.llm.prompts import DEFAULT_SYSTEM_PROMPT, JSON_ONLY_INSTRUCTION

logger = get_logger(__name__)

SERVICE_NAME = "text-generation"


class TextGenerationClient:
    """Retrying, time-bounded wrapper around a LangChain chat model."""

    def __init__(
        self,
        chat_model: BaseChatModel | None,
        *,
        timeout: float = 30.0,
        max_attempts: int = 3,
        retry_base_delay: float = 1.0,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> None:
        self._chat_model = chat_model
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.retry_base_delay = retry_base_delay
        self.temperature = temperature
        self.max_tokens = max_tokens

    @classmethod
    def from_settings(cls, settings: Settings) -> "TextGenerationClient":
        chat_model = None
        if settings.llm_enabled:
            kwargs: dict = {
                "model": settings.OPENAI_MODEL,
                "temperature": settings.LLM_TEMPERATURE,
                "api_key": settings.OPENAI_API_KEY,
                # Retries and timeouts are handled here, not by the SDK
                "max_retries": 0,
            }
            if settings.OPENAI_API_BASE_URL:
                kwargs["base_url"] = settings.OPENAI_API_BASE_URL
            logger.info("Initializing text generation", model=settings.OPENAI_MODEL)
            chat_model = ChatOpenAI(**kwargs)
        else:
            logger.warning("OPENAI_API_KEY not configured, text generation disabled")

        return cls(
            chat_model,
            timeout=settings.LLM_TIMEOUT_SECONDS,
            max_attempts=settings.LLM_MAX_ATTEMPTS,
            retry_base_delay=settings.LLM_RETRY_BASE_DELAY,
            temperature=settings.LLM_TEMPERATURE,
            max_tokens=settings.LLM_MAX_TOKENS,
        )

    @property
    def available(self) -> bool:
        return self._chat_model is not None

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retrying after failed ``attempt`` (1-based): 1s, 2s, 4s..."""
        return self.retry_base_delay * 2 ** (attempt - 1)

    async def _attempt(
        self,
        prompt: str,
        system_prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> str:
        model = self._chat_model.bind(temperature=temperature, max_tokens=max_tokens)
        response = await asyncio.wait_for(
            model.ainvoke([SystemMessage(content=system_prompt), HumanMessage(content=prompt)]),
            timeout=self.timeout,
        )
        content = response.content if hasattr(response, "content") else response
        if not isinstance(content, str):
            content = str(content or "")
        if not content.strip():
            raise ValueError("empty response")
        return content

    async def generate(
        self,
        prompt: str,
        *,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Return the model's reply text.

        Raises:
            ExternalServiceError: No model configured, or every attempt
                failed, timed out or came back empty.
        """
        if self._chat_model is None:
            raise ExternalServiceError(SERVICE_NAME, "not configured")

        temperature = self.temperature if temperature is None else temperature
        max_tokens = self.max_tokens if max_tokens is None else max_tokens

        last_error: Exception | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                content = await self._attempt(prompt, system_prompt, temperature, max_tokens)
            except (TimeoutError, asyncio.TimeoutError) as e:
                last_error = e
                logger.warning(
                    "Text generation timed out",
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    timeout=self.timeout,
                )
            except Exception as e:
                last_error = e
                logger.warning(
                    "Text generation failed",
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    error=str(e),
                )
            else:
                logger.info("Text generation succeeded", attempt=attempt, length=len(content))
                return content

            if attempt < self.max_attempts:
                await asyncio.sleep(self.backoff_delay(attempt))

        logger.error("Text generation failed after all attempts", error=str(last_error))
        raise ExternalServiceError(SERVICE_NAME, f"failed after {self.max_attempts} attempts")

    async def generate_json(
        self,
        prompt: str,
        *,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        temperature: float | None = 0.5,
        max_tokens: int | None = None,
    ) -> Any:
        """Like ``generate`` but parses the reply as JSON.

        Raises:
            ExternalServiceError: Generation failed or the reply held no JSON.
        """
        text = await self.generate(
            f"{prompt}\n\n{JSON_ONLY_INSTRUCTION}",
            system_prompt=system_prompt,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        try:
            return parse_llm_json_response(text)
        except ValueError as e:
            raise ExternalServiceError(SERVICE_NAME, str(e)) from e
