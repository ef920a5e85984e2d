"""Shared exports for the translation pipeline."""
from __future__ import annotations

from .config import ConfigError, ProviderConfig, get_default_config_path, load_config
from .context import ShellContext
from .prompts import PromptDocument, PromptLoader, PromptValidationError
from .providers import (
    AnthropicClient,
    CredentialMissing,
    EmptyResponse,
    MalformedResponse,
    OllamaClient,
    OpenAIClient,
    ProviderClient,
    ProviderConnectionError,
    ProviderError,
    ProviderHttpError,
    build_provider,
)
from .service import TranslationService
from .storage import CacheStore, make_key
from .types import RequestMode, TranslationRecord, TranslationRequest


__all__ = [
    "RequestMode",
    "TranslationRequest",
    "TranslationRecord",
    "ShellContext",
    "CacheStore",
    "make_key",
    "PromptLoader",
    "PromptDocument",
    "PromptValidationError",
    "ProviderConfig",
    "ConfigError",
    "load_config",
    "get_default_config_path",
    "ProviderClient",
    "OpenAIClient",
    "AnthropicClient",
    "OllamaClient",
    "build_provider",
    "ProviderError",
    "CredentialMissing",
    "ProviderHttpError",
    "EmptyResponse",
    "MalformedResponse",
    "ProviderConnectionError",
    "TranslationService",
]
