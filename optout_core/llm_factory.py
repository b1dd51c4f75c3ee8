import logging
from typing import Any

from .exceptions import SetupError
from .llm import OpenAICompatibleClient, SimpleOllama
from .llm_config import LLMConfig

logger = logging.getLogger(__name__)


def create_llm_client(llm_config: LLMConfig) -> Any:
    """
    Create an LLM client for a supported provider.

    Returns:
        LLM client instance with ainvoke() and ainvoke_with_image() methods

    Raises:
        SetupError: unknown provider or missing API token
    """
    try:
        llm_config.validate()
    except ValueError as e:
        raise SetupError(str(e)) from e

    if llm_config.provider_name == "ollama":
        return _create_ollama_client(llm_config)
    return _create_openai_client(llm_config)


def _create_ollama_client(llm_config: LLMConfig) -> SimpleOllama:
    """Create Ollama client"""
    logger.debug(f"Using Ollama model {llm_config.model_name} at {llm_config.base_url}")
    return SimpleOllama(
        base_url=llm_config.base_url or "http://localhost:11434",
        model=llm_config.model_name,
        num_predict=llm_config.max_tokens,
        temperature=llm_config.temperature,
        timeout=llm_config.timeout,
    )


def _create_openai_client(llm_config: LLMConfig) -> OpenAICompatibleClient:
    """Create OpenAI-compatible client (OpenAI, Groq, DeepSeek)"""
    logger.debug(f"Using {llm_config.provider_name} model {llm_config.model_name}")
    return OpenAICompatibleClient(
        api_key=llm_config.resolved_api_token or "",
        base_url=llm_config.base_url,
        model=llm_config.model_name,
        temperature=llm_config.temperature,
        max_tokens=llm_config.max_tokens,
        timeout=llm_config.timeout,
    )
