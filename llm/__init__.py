"""LLM module - OpenAI client and settings."""

from llm.client.openai_client import (
    LLMError,
    NormalizationError,
    OpenAIClient,
    PermanentLLMError,
    ProviderFn,
    TransientLLMError,
)
from llm.settings import LLMSettings, get_llm_settings

__all__ = [
    "LLMError",
    "NormalizationError",
    "OpenAIClient",
    "PermanentLLMError",
    "ProviderFn",
    "TransientLLMError",
    "LLMSettings",
    "get_llm_settings",
]
