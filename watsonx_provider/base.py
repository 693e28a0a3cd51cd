"""Abstract language model provider interface."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar, Mapping, Optional

from .models import ModelInfo, ProviderSetting
from .settings import ProviderContext, resolve_setting

if TYPE_CHECKING:
    from .openai_compat import ChatModel

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderConfig:
    """Names of the configuration keys a provider reads."""

    base_url_key: str
    api_token_key: str


class BaseProvider(ABC):
    """Abstract interface for language model providers.

    Subclasses declare their identity, their config keys and a static model
    list, and implement dynamic discovery plus model instance construction.

    Args:
        context: Process-wide fallback settings, consulted last.
        environ: Process environment; defaults to ``os.environ``.
    """

    name: str = ""
    get_api_key_link: Optional[str] = None
    label_for_get_api_key: Optional[str] = None
    config: ProviderConfig
    static_models: ClassVar[tuple[ModelInfo, ...]] = ()

    def __init__(
        self,
        context: Optional[ProviderContext] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._context = context or ProviderContext()
        self._environ = environ

    def resolve(
        self,
        key: str,
        *,
        api_keys: Optional[Mapping[str, str]] = None,
        setting_value: Optional[str] = None,
        server_env: Optional[Mapping[str, str]] = None,
    ) -> Optional[str]:
        """Look ``key`` up through every configuration layer."""
        return resolve_setting(
            key,
            api_keys=api_keys,
            setting_value=setting_value,
            server_env=server_env,
            environ=self._environ,
            context=self._context,
        )

    def get_provider_base_url_and_key(
        self,
        api_keys: Optional[Mapping[str, str]] = None,
        provider_settings: Optional[ProviderSetting] = None,
        server_env: Optional[Mapping[str, str]] = None,
    ) -> tuple[Optional[str], Optional[str]]:
        """Return ``(base_url, api_key)`` for this provider.

        Per-call API keys are keyed by provider name, falling back to the
        provider's config key. The base URL loses any trailing slash.
        """
        base_url = self.resolve(
            self.config.base_url_key,
            api_keys=api_keys,
            setting_value=provider_settings.base_url if provider_settings else None,
            server_env=server_env,
        )
        if base_url:
            base_url = base_url.rstrip("/")

        api_key = (api_keys or {}).get(self.name) or self.resolve(
            self.config.api_token_key, api_keys=api_keys, server_env=server_env
        )
        return base_url, api_key

    async def list_models(
        self,
        api_keys: Optional[Mapping[str, str]] = None,
        settings: Optional[ProviderSetting] = None,
        server_env: Optional[Mapping[str, str]] = None,
    ) -> list[ModelInfo]:
        """Return the static models followed by the dynamically discovered ones."""
        dynamic = await self.get_dynamic_models(api_keys, settings, server_env)
        _log.info("%s: %d static, %d dynamic models.", self.name, len(self.static_models), len(dynamic))
        return [*self.static_models, *dynamic]

    @abstractmethod
    async def get_dynamic_models(
        self,
        api_keys: Optional[Mapping[str, str]] = None,
        settings: Optional[ProviderSetting] = None,
        server_env: Optional[Mapping[str, str]] = None,
    ) -> list[ModelInfo]:
        """Fetch the models currently offered by the provider's API."""
        ...

    @abstractmethod
    def get_model_instance(
        self,
        model: str,
        server_env: Optional[Mapping[str, str]] = None,
        api_keys: Optional[Mapping[str, str]] = None,
        provider_settings: Optional[Mapping[str, ProviderSetting]] = None,
    ) -> "ChatModel":
        """Build a chat handle for ``model``."""
        ...
