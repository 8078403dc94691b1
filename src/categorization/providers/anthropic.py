"""Anthropic Claude chat models via langchain-anthropic."""

from langchain_anthropic import ChatAnthropic

from src.categorization.providers.base import ChatModelProvider


# The reply is two short lines; this leaves room for stray preamble
MAX_OUTPUT_TOKENS = 256


class AnthropicProvider(ChatModelProvider):
    """Generates categorization replies with an Anthropic chat model."""

    name = "anthropic"

    def _build_chat_model(self, api_key: str) -> ChatAnthropic:
        return ChatAnthropic(
            model=self.model_id,
            api_key=api_key,
            temperature=self.temperature,
            max_tokens=MAX_OUTPUT_TOKENS,
            timeout=self.timeout,
            max_retries=0,
        )
