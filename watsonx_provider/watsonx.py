"""IBM watsonx provider."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

import httpx

from .base import BaseProvider, ProviderConfig
from .errors import MissingAPIKeyError, WatsonxAuthenticationError
from .models import CachedToken, ModelInfo, ModelMetadata, ProviderSetting, WatsonxCredentials
from .openai_compat import ChatModel
from .schemas import FoundationModelSpec, IAMTokenResponse, LegacyModel, ResourceList
from .settings import ProviderContext
from .transport import (
    API_VERSION,
    MISSING_SCOPE_MESSAGE,
    ConfigurationErrorTransport,
    WatsonxChatTransport,
)

_log = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://us-south.ml.cloud.ibm.com"
IAM_URL = "https://iam.cloud.ibm.com/identity/token"
IAM_GRANT_TYPE = "urn:ibm:params:oauth:grant-type:apikey"

# Tokens are treated as expired this many seconds before IAM says they are.
TOKEN_EXPIRY_MARGIN_SECONDS = 300

_DEFAULT_MAX_TOKENS = 8192
_LARGE_MODEL_MAX_TOKENS = 32768
_CODE_MODEL_MAX_TOKENS = 16384
_LEGACY_MAX_TOKENS = 4096
_LARGE_MODEL_HINTS = ("70b", "90b", "405b")


@dataclass(frozen=True)
class WatsonxConfig(ProviderConfig):
    project_id_key: str
    space_id_key: str
    instance_crn_key: str


def max_tokens_for(spec: FoundationModelSpec) -> int:
    """Best-effort context size from the parameter count and task tags.

    70B-class models get 32768 tokens; code models are raised to at least
    16384; everything else gets 8192. The parameter count is read from
    ``number_params`` and the model id, as watsonx does not publish context
    sizes in this listing.
    """
    hint = f"{spec.number_params or ''} {spec.model_id}".lower()
    max_tokens = _DEFAULT_MAX_TOKENS
    if any(size in hint for size in _LARGE_MODEL_HINTS):
        max_tokens = _LARGE_MODEL_MAX_TOKENS
    if "code" in spec.task_ids:
        max_tokens = max(max_tokens, _CODE_MODEL_MAX_TOKENS)
    return max_tokens


class IBMWatsonxProvider(BaseProvider):
    """IBM watsonx provider using the watsonx REST API directly.

    Reads configuration through the layered lookup in ``settings``:
        IBM_WATSONX_API_KEY          required
        IBM_WATSONX_PROJECT_ID       one of project/space/instance required
        IBM_WATSONX_SPACE_ID
        IBM_WATSONX_INSTANCE_CRN
        IBM_WATSONX_API_BASE_URL     optional (defaults to us-south)

    Args:
        context: Process-wide fallback settings.
        environ: Process environment; defaults to ``os.environ``.
        transport: httpx transport for every outbound call. ``None`` uses
                   the default network transport.
        clock: Returns the current epoch time in seconds.
    """

    name = "IBM watsonx"
    get_api_key_link = "https://cloud.ibm.com/watsonx/overview"
    label_for_get_api_key = "Get IBM watsonx API Key"

    config = WatsonxConfig(
        base_url_key="IBM_WATSONX_API_BASE_URL",
        api_token_key="IBM_WATSONX_API_KEY",
        project_id_key="IBM_WATSONX_PROJECT_ID",
        space_id_key="IBM_WATSONX_SPACE_ID",
        instance_crn_key="IBM_WATSONX_INSTANCE_CRN",
    )

    static_models = (
        ModelInfo(
            name="mistralai/mistral-small-24b-instruct-2501",
            label="mistralai/mistral-small-24b-instruct-2501",
            provider="IBM watsonx",
            max_token_allowed=32768,
        ),
    )

    def __init__(
        self,
        context: Optional[ProviderContext] = None,
        environ: Optional[Mapping[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(context, environ)
        self._transport = transport
        self._clock = clock
        self._token_cache: Optional[CachedToken] = None

    # ── credentials ──────────────────────────────────────────────────────────

    def get_provider_settings(
        self,
        api_keys: Optional[Mapping[str, str]] = None,
        provider_settings: Optional[ProviderSetting] = None,
        server_env: Optional[Mapping[str, str]] = None,
    ) -> WatsonxCredentials:
        """Resolve base URL, API key and scope identifiers for one call."""
        base_url, api_key = self.get_provider_base_url_and_key(
            api_keys, provider_settings, server_env
        )
        credentials = WatsonxCredentials(
            base_url=base_url,
            api_key=api_key,
            project_id=self.resolve(
                self.config.project_id_key, api_keys=api_keys, server_env=server_env
            ),
            space_id=self.resolve(
                self.config.space_id_key, api_keys=api_keys, server_env=server_env
            ),
            instance_crn=self.resolve(
                self.config.instance_crn_key, api_keys=api_keys, server_env=server_env
            ),
        )
        _log.debug(
            "IBM watsonx settings - projectId: %s, spaceId: %s, instanceCrn: %s, "
            "baseUrl: %s, apiKey: %s",
            _is_set(credentials.project_id),
            _is_set(credentials.space_id),
            _is_set(credentials.instance_crn),
            base_url,
            _is_set(api_key),
        )
        return credentials

    # ── IAM token ────────────────────────────────────────────────────────────

    async def get_iam_token(self, api_key: str) -> str:
        """Return a valid IAM bearer token, exchanging the API key when stale."""
        now = self._clock()
        if self._token_cache is not None and self._token_cache.is_valid(now):
            return self._token_cache.token

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=30) as client:
                resp = await client.post(
                    IAM_URL,
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                    data={"grant_type": IAM_GRANT_TYPE, "apikey": api_key},
                )
            resp.raise_for_status()
            data = IAMTokenResponse.model_validate(resp.json())
        except (httpx.HTTPError, ValueError) as exc:
            _log.error("Error getting IBM IAM token: %s", exc)
            raise WatsonxAuthenticationError("Failed to authenticate with IBM watsonx") from exc

        self._token_cache = CachedToken(
            token=data.access_token,
            expires_at=now + data.expires_in - TOKEN_EXPIRY_MARGIN_SECONDS,
        )
        return data.access_token

    # ── model listing ────────────────────────────────────────────────────────

    async def get_dynamic_models(
        self,
        api_keys: Optional[Mapping[str, str]] = None,
        settings: Optional[ProviderSetting] = None,
        server_env: Optional[Mapping[str, str]] = None,
    ) -> list[ModelInfo]:
        """Fetch the watsonx catalog, excluding the static models.

        Tries ``foundation_model_specs`` first and falls back to the older
        ``models`` listing. Any failure after the API key check yields ``[]``.
        """
        credentials = self.get_provider_settings(api_keys, settings, server_env)
        base_url = credentials.base_url or DEFAULT_BASE_URL

        if not credentials.api_key:
            raise MissingAPIKeyError(self.name)

        if not credentials.has_scope:
            _log.warning(
                "IBM watsonx requires at least one of: project_id, space_id, or "
                "wml_instance_crn. Dynamic model loading may fail."
            )

        try:
            token = await self.get_iam_token(credentials.api_key)
            headers = {
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            }
            async with httpx.AsyncClient(transport=self._transport, timeout=30) as client:
                models = await self._fetch_foundation_models(client, base_url, headers)
                if models is not None:
                    return models
                _log.info("Falling back to models endpoint for IBM watsonx")
                return await self._fetch_legacy_models(client, base_url, headers)
        except Exception as exc:  # noqa: BLE001
            _log.error("Error getting IBM watsonx models: %s", exc)
            return []

    async def _fetch_foundation_models(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        headers: dict[str, str],
    ) -> Optional[list[ModelInfo]]:
        """Return catalog models, or None when the legacy listing should be tried."""
        resp = await client.get(
            f"{base_url}/ml/v1/foundation_model_specs",
            params={"version": API_VERSION, "limit": 200},
            headers=headers,
        )
        if not resp.is_success:
            _log.warning(
                "Error fetching IBM watsonx foundation models: %s. "
                "Falling back to models endpoint.",
                resp.reason_phrase,
            )
            return None

        specs = ResourceList.model_validate(resp.json()).parse(FoundationModelSpec)
        if not specs:
            return None
        _log.info("Found %d foundation models from IBM watsonx API", len(specs))

        static_ids = self._static_model_ids()
        return [
            self._foundation_model_info(spec)
            for spec in specs
            if spec.model_id not in static_ids
        ]

    async def _fetch_legacy_models(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        headers: dict[str, str],
    ) -> list[ModelInfo]:
        resp = await client.get(
            f"{base_url}/ml/v1/models",
            params={"version": API_VERSION},
            headers=headers,
        )
        resp.raise_for_status()

        static_ids = self._static_model_ids()
        return [
            self._legacy_model_info(model)
            for model in ResourceList.model_validate(resp.json()).parse(LegacyModel)
            if model.status == "available"
            and model.id not in static_ids
            and model.is_text_generation
        ]

    def _static_model_ids(self) -> set[str]:
        return {m.name for m in self.static_models}

    def _foundation_model_info(self, spec: FoundationModelSpec) -> ModelInfo:
        return ModelInfo(
            name=spec.model_id,
            label=spec.label or spec.model_id,
            provider=self.name,
            max_token_allowed=max_tokens_for(spec),
            metadata=ModelMetadata(
                provider=spec.provider,
                source=spec.source,
                description=spec.short_description,
                parameter_size=spec.number_params,
                tasks=tuple(spec.task_ids),
            ),
        )

    def _legacy_model_info(self, model: LegacyModel) -> ModelInfo:
        return ModelInfo(
            name=model.id,
            label=model.name or model.id,
            provider=self.name,
            max_token_allowed=model.metadata.max_sequence_length or _LEGACY_MAX_TOKENS,
        )

    # ── model instance ───────────────────────────────────────────────────────

    def get_model_instance(
        self,
        model: str,
        server_env: Optional[Mapping[str, str]] = None,
        api_keys: Optional[Mapping[str, str]] = None,
        provider_settings: Optional[Mapping[str, ProviderSetting]] = None,
    ) -> ChatModel:
        """Build an OpenAI-compatible handle that talks to watsonx chat.

        Without a project, space or instance id the handle answers every
        request with a 400 ``invalid_configuration`` error instead of
        failing here.
        """
        credentials = self.get_provider_settings(
            api_keys,
            (provider_settings or {}).get(self.name),
            server_env,
        )
        if not credentials.api_key:
            raise MissingAPIKeyError(self.name)

        _log.info(
            "IBM watsonx credentials - project_id: %s, space_id: %s, instance_crn: %s",
            _is_found(credentials.project_id),
            _is_found(credentials.space_id),
            _is_found(credentials.instance_crn),
        )

        if not credentials.has_scope:
            _log.warning("%s Model will return error messages.", MISSING_SCOPE_MESSAGE)
            return ChatModel(model, ConfigurationErrorTransport())

        api_key = credentials.api_key

        async def get_token() -> str:
            return await self.get_iam_token(api_key)

        transport = WatsonxChatTransport(
            model=model,
            credentials=credentials,
            base_url=credentials.base_url or DEFAULT_BASE_URL,
            get_token=get_token,
            transport=self._transport,
        )
        return ChatModel(model, transport)


def _is_set(value: Optional[str]) -> str:
    return "set" if value else "not set"


def _is_found(value: Optional[str]) -> str:
    return "found" if value else "missing"
