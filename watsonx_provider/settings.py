"""Layered lookup of provider configuration values.

A value is taken from the first layer that has a non-empty entry:

    per-call api_keys → provider setting → server env → os.environ → context env
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional


@dataclass
class ProviderContext:
    """Process-wide fallback configuration, passed explicitly.

    Host applications typically keep a settings object alive for the whole
    process; providers receive it here instead of reaching for a global.
    """

    env: dict[str, str] = field(default_factory=dict)


def resolve_setting(
    key: str,
    *,
    api_keys: Optional[Mapping[str, str]] = None,
    setting_value: Optional[str] = None,
    server_env: Optional[Mapping[str, str]] = None,
    environ: Optional[Mapping[str, str]] = None,
    context: Optional[ProviderContext] = None,
) -> Optional[str]:
    """Return the first non-empty value for ``key`` across all layers."""
    if environ is None:
        environ = os.environ
    layers = (
        (api_keys or {}).get(key),
        setting_value,
        (server_env or {}).get(key),
        environ.get(key),
        context.env.get(key) if context is not None else None,
    )
    return next((value for value in layers if value), None)
