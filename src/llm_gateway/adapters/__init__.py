"""
Provider adapters for the supported vendor wire protocols.
"""

from .base import HTTPProviderAdapter
from .openai_adapter import OpenAIAdapter
from .anthropic_adapter import AnthropicAdapter
from .google_adapter import GoogleAdapter
from .mistral_adapter import MistralAdapter
from .vllm_adapter import VLLMAdapter

# Closed set of vendor protocols, keyed by provider type
ADAPTERS = {
    "openai": OpenAIAdapter,
    "anthropic": AnthropicAdapter,
    "google": GoogleAdapter,
    "mistral": MistralAdapter,
    "vllm": VLLMAdapter,
}

__all__ = [
    "ADAPTERS",
    "HTTPProviderAdapter",
    "OpenAIAdapter",
    "AnthropicAdapter",
    "GoogleAdapter",
    "MistralAdapter",
    "VLLMAdapter",
]
