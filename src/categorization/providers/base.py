"""Common interface for LLM providers.

Every supported provider is a ChatModelProvider subclass wrapping one
LangChain chat model. The orchestrator only depends on the AIProvider
protocol: ``await provider.generate(system_prompt, user_prompt)``.

Source:
- src/categorization/providers/gateway.py (provider registry)
- src/categorization/errors.py (ProviderSetupError, ModelInvocationError)
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar, Optional, Protocol, runtime_checkable

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage

from src.categorization.errors import ModelInvocationError, ProviderSetupError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationResult:
    """Text produced by a provider for one prompt pair."""

    text: str
    provider: str
    model_id: str


@runtime_checkable
class AIProvider(Protocol):
    """Uniform text-generation capability over any LLM provider."""

    name: str
    model_id: str

    async def generate(self, system_prompt: str, user_prompt: str) -> GenerationResult:
        ...


def content_to_text(content: Any) -> str:
    """Flatten a chat message content payload into plain text.

    Providers return either a string or a list of content blocks
    (strings or ``{"type": "text", "text": ...}`` dicts).
    """
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type", "text") == "text":
                parts.append(str(block.get("text", "")))
        return "".join(parts)
    return str(content)


class ChatModelProvider(ABC):
    """AIProvider backed by a LangChain chat model.

    Subclasses set ``name`` and implement ``_build_chat_model``. Automatic
    SDK retries are disabled; a failed generation surfaces immediately as
    ModelInvocationError.

    Attributes:
        name: Provider tag stored in organization settings.
        model_id: Model identifier requested from the provider.
        temperature: Sampling temperature.
        timeout: Request timeout in seconds (None for the SDK default).
    """

    name: ClassVar[str] = ""

    def __init__(
        self,
        model_id: str,
        api_key: str,
        temperature: float = 0.0,
        timeout: Optional[float] = None,
    ):
        """Construct the provider client and resolve the model.

        Raises:
            ProviderSetupError: If the client cannot be constructed or the
                model identifier cannot be resolved.
        """
        self.temperature = temperature
        self.timeout = timeout

        if not model_id or not model_id.strip():
            raise ProviderSetupError(
                f"Could not get model instance for {model_id}",
                provider=self.name,
            )
        self.model_id = model_id.strip()

        try:
            self._llm = self._build_chat_model(api_key)
        except Exception as e:
            logger.error(
                "AI client construction failed",
                extra={
                    "provider": self.name,
                    "model_id": self.model_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            raise ProviderSetupError(
                f"Error instantiating AI client for {self.name}",
                provider=self.name,
                cause=e,
            ) from e

        if self._llm is None:
            raise ProviderSetupError(
                f"Could not get model instance for {self.model_id}",
                provider=self.name,
            )

    @abstractmethod
    def _build_chat_model(self, api_key: str) -> BaseChatModel:
        """Construct the provider's LangChain chat model."""

    @property
    def llm(self) -> BaseChatModel:
        return self._llm

    async def generate(self, system_prompt: str, user_prompt: str) -> GenerationResult:
        """Run one chat completion.

        Args:
            system_prompt: Instructions for the model.
            user_prompt: Pull request content to categorize.

        Returns:
            GenerationResult with the model's reply text.

        Raises:
            ModelInvocationError: If the provider call fails. The provider's
                message is carried verbatim.
        """
        messages = [
            SystemMessage(content=system_prompt),
            HumanMessage(content=user_prompt),
        ]

        try:
            response = await self._llm.ainvoke(messages)
        except Exception as e:
            logger.error(
                "AI generation failed",
                extra={
                    "provider": self.name,
                    "model_id": self.model_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            raise ModelInvocationError(str(e), provider=self.name, cause=e) from e

        text = content_to_text(response.content)
        logger.debug(
            "AI generation completed",
            extra={
                "provider": self.name,
                "model_id": self.model_id,
                "response_length": len(text),
            },
        )
        return GenerationResult(text=text, provider=self.name, model_id=self.model_id)
