"""LLM provider gateway.

This package provides a uniform ``generate(system, user)`` capability over
OpenAI, Google and Anthropic chat models, selected per organization.
"""

from src.categorization.providers.anthropic import AnthropicProvider
from src.categorization.providers.base import (
    AIProvider,
    ChatModelProvider,
    GenerationResult,
    content_to_text,
)
from src.categorization.providers.gateway import PROVIDERS, create_provider
from src.categorization.providers.google import GoogleProvider
from src.categorization.providers.openai import OpenAIProvider

__all__ = [
    "AIProvider",
    "AnthropicProvider",
    "ChatModelProvider",
    "GenerationResult",
    "GoogleProvider",
    "OpenAIProvider",
    "PROVIDERS",
    "content_to_text",
    "create_provider",
]
