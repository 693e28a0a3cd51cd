"""Data models shared by the provider and its callers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class ModelMetadata:
    """Catalog details reported by watsonx for a foundation model."""

    provider: Optional[str] = None
    source: Optional[str] = None
    description: Optional[str] = None
    parameter_size: Optional[str] = None
    tasks: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "source": self.source,
            "description": self.description,
            "parameterSize": self.parameter_size,
            "tasks": list(self.tasks),
        }


@dataclass(frozen=True)
class ModelInfo:
    """A model the host application can offer to its users."""

    name: str
    label: str
    provider: str
    max_token_allowed: int
    metadata: Optional[ModelMetadata] = None

    def to_dict(self) -> dict[str, Any]:
        """Return the camelCase form the host application consumes."""
        data: dict[str, Any] = {
            "name": self.name,
            "label": self.label,
            "provider": self.provider,
            "maxTokenAllowed": self.max_token_allowed,
        }
        if self.metadata is not None:
            data["metadata"] = self.metadata.to_dict()
        return data


@dataclass
class ProviderSetting:
    """Per-provider settings stored by the host application."""

    enabled: bool = True
    base_url: Optional[str] = None


@dataclass
class WatsonxCredentials:
    """Credentials resolved for a single call."""

    base_url: Optional[str]
    api_key: Optional[str]
    project_id: Optional[str] = None
    space_id: Optional[str] = None
    instance_crn: Optional[str] = None

    @property
    def has_scope(self) -> bool:
        """True when at least one of project, space or instance is set."""
        return bool(self.project_id or self.space_id or self.instance_crn)


@dataclass
class CachedToken:
    """An IAM bearer token and the epoch second after which it is stale."""

    token: str
    expires_at: float

    def is_valid(self, now: float) -> bool:
        return self.expires_at > now
