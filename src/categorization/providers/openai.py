"""OpenAI chat models via langchain-openai."""

from langchain_openai import ChatOpenAI

from src.categorization.providers.base import ChatModelProvider


class OpenAIProvider(ChatModelProvider):
    """Generates categorization replies with an OpenAI chat model."""

    name = "openai"

    def _build_chat_model(self, api_key: str) -> ChatOpenAI:
        return ChatOpenAI(
            model=self.model_id,
            api_key=api_key,
            temperature=self.temperature,
            timeout=self.timeout,
            max_retries=0,
        )
