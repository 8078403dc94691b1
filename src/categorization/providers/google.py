"""Google Gemini chat models via langchain-google-genai."""

from langchain_google_genai import ChatGoogleGenerativeAI

from src.categorization.providers.base import ChatModelProvider


class GoogleProvider(ChatModelProvider):
    """Generates categorization replies with a Gemini model."""

    name = "google"

    def _build_chat_model(self, api_key: str) -> ChatGoogleGenerativeAI:
        return ChatGoogleGenerativeAI(
            model=self.model_id,
            google_api_key=api_key,
            temperature=self.temperature,
            timeout=self.timeout,
            max_retries=0,
        )
