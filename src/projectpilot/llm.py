import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

import openai
from openai import AsyncOpenAI

from .errors import LLMError
from .settings import get_settings

logger = logging.getLogger(__name__)


class LLMRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class LLMMessage:
    role: LLMRole
    content: str

    def to_openai(self) -> Dict[str, str]:
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True)
class LLMRequestConfig:
    """Per-request model parameters."""

    max_tokens: int = 4096
    temperature: float = 0.7
    model: Optional[str] = None

    @classmethod
    def from_settings(cls) -> "LLMRequestConfig":
        settings = get_settings()
        return cls(
            max_tokens=settings.max_tokens,
            temperature=settings.temperature,
            model=settings.model,
        )


@dataclass(frozen=True)
class LLMResponse:
    content: str
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None


class LLMClient(Protocol):
    """The single operation the pipeline needs from a language model backend."""

    async def send(self, messages: List[LLMMessage], config: LLMRequestConfig) -> LLMResponse: ...


class OpenAIChatClient:
    """LLMClient over the OpenAI-compatible chat completions API."""

    def __init__(self, client: AsyncOpenAI | None = None, default_model: str | None = None) -> None:
        settings = get_settings()
        self._client = client or AsyncOpenAI(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            timeout=settings.llm_request_timeout_seconds,
        )
        self._default_model = default_model or settings.model

    async def send(self, messages: List[LLMMessage], config: LLMRequestConfig) -> LLMResponse:
        """Send one chat completion request.

        Args:
            messages: Ordered system/user/assistant messages.
            config: Max tokens, temperature and optional model override.

        Returns:
            LLMResponse: Generated text plus prompt/completion token counts when reported.

        Raises:
            LLMError: On any API, network or timeout failure, or an empty reply.
        """
        model = config.model or self._default_model
        logger.debug("LLM request model=%s messages=%d", model, len(messages))
        try:
            response: Any = await self._client.chat.completions.create(
                model=model,
                messages=[m.to_openai() for m in messages],
                max_tokens=config.max_tokens,
                temperature=config.temperature,
            )
        except (openai.OpenAIError, TimeoutError, ConnectionError) as e:
            logger.error("LLM request failed: %s", e)
            raise LLMError(str(e)) from e

        if not response.choices:
            raise LLMError("LLM returned no choices")
        content = response.choices[0].message.content
        if content is None:
            raise LLMError("LLM returned an empty message")

        usage = getattr(response, "usage", None)
        return LLMResponse(
            content=content,
            input_tokens=getattr(usage, "prompt_tokens", None) if usage else None,
            output_tokens=getattr(usage, "completion_tokens", None) if usage else None,
        )
