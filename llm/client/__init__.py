"""LLM client module."""

from llm.client.openai_client import (
    LLMError,
    NormalizationError,
    OpenAIClient,
    PermanentLLMError,
    ProviderFn,
    TransientLLMError,
)

__all__ = [
    "LLMError",
    "NormalizationError",
    "OpenAIClient",
    "PermanentLLMError",
    "ProviderFn",
    "TransientLLMError",
]
