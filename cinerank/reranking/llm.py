"""
Chat model construction for reranking.
"""
import logging

from langchain_openai import ChatOpenAI

from cinerank.config import Settings
from cinerank.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def create_chat_model(settings: Settings) -> ChatOpenAI:
    """Create the chat model behind any OpenAI-compatible endpoint (Mistral by default).

    Raises:
        ConfigurationError: if no API key is configured
    """
    api_key = settings.llm_api_key
    if not api_key:
        raise ConfigurationError("LLM_API_KEY (or MISTRAL_API_KEY) is not configured")

    logger.info(f"Using chat model '{settings.LLM_MODEL}' at {settings.LLM_BASE_URL}")
    return ChatOpenAI(
        model=settings.LLM_MODEL,
        temperature=settings.LLM_TEMPERATURE,
        base_url=settings.LLM_BASE_URL,
        api_key=api_key,
        timeout=settings.LLM_TIMEOUT_SECONDS,
        max_retries=1,
    )
