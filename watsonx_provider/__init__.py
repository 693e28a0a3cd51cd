"""IBM watsonx adapter for OpenAI-style language model provider hosts."""

from .base import BaseProvider, ProviderConfig
from .errors import MissingAPIKeyError, ProviderError, WatsonxAuthenticationError
from .models import CachedToken, ModelInfo, ModelMetadata, ProviderSetting, WatsonxCredentials
from .openai_compat import ChatModel
from .settings import ProviderContext
from .watsonx import IBMWatsonxProvider

__all__ = [
    "BaseProvider",
    "CachedToken",
    "ChatModel",
    "IBMWatsonxProvider",
    "MissingAPIKeyError",
    "ModelInfo",
    "ModelMetadata",
    "ProviderConfig",
    "ProviderContext",
    "ProviderError",
    "ProviderSetting",
    "WatsonxAuthenticationError",
    "WatsonxCredentials",
]
