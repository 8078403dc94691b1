"""Dispatch from an organization's provider setting to a concrete provider.

The registry is closed: only the providers listed in PROVIDERS can be
selected. Anything else is a ConfigurationError raised before any client is
constructed.

Source:
- src/categorization/providers/base.py (AIProvider, ChatModelProvider)
- src/categorization/state/models.py (AIProviderName)
"""

import logging
from typing import Dict, Optional, Type

from src.categorization.errors import ConfigurationError
from src.categorization.providers.anthropic import AnthropicProvider
from src.categorization.providers.base import AIProvider, ChatModelProvider
from src.categorization.providers.google import GoogleProvider
from src.categorization.providers.openai import OpenAIProvider
from src.categorization.state.models import AIProviderName


logger = logging.getLogger(__name__)


PROVIDERS: Dict[AIProviderName, Type[ChatModelProvider]] = {
    AIProviderName.OPENAI: OpenAIProvider,
    AIProviderName.GOOGLE: GoogleProvider,
    AIProviderName.ANTHROPIC: AnthropicProvider,
}


def create_provider(
    provider: str,
    model_id: str,
    api_key: str,
    timeout: Optional[float] = None,
) -> AIProvider:
    """Build the provider an organization selected.

    Args:
        provider: Provider tag from organization settings.
        model_id: Model identifier from organization settings.
        api_key: The organization's API key for that provider.
        timeout: Request timeout in seconds for generation calls.

    Returns:
        A ready-to-use AIProvider.

    Raises:
        ConfigurationError: If the provider is not supported.
        ProviderSetupError: If the client cannot be built or the model
            cannot be resolved.

    Example:
        >>> provider = create_provider("openai", "gpt-4o-mini", api_key)
        >>> result = await provider.generate(system_prompt, user_prompt)
    """
    try:
        name = AIProviderName(provider)
    except ValueError:
        raise ConfigurationError(f"Unsupported AI provider: {provider}") from None

    provider_cls = PROVIDERS[name]
    instance = provider_cls(model_id=model_id, api_key=api_key, timeout=timeout)

    logger.info(
        "AI provider ready",
        extra={"provider": name.value, "model_id": instance.model_id},
    )
    return instance
