"""Credential and preference lookup for providers."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Protocol, Tuple


QUALITY_PREFERENCES = ("low", "medium", "high", "hd")
DEFAULT_QUALITY = "medium"
DEFAULT_STYLE = "natural"

API_KEY_ENV_VARS: Dict[str, Tuple[str, ...]] = {
    "openai": ("OPENAI_API_KEY",),
    "replicate": ("REPLICATE_API_TOKEN", "REPLICATE_API_KEY"),
}


class ConfigStore(Protocol):
    def get_api_key(self, provider_id: str) -> str:
        ...

    def get_selected_model(self, provider_id: str) -> Optional[str]:
        ...

    def get_quality_preference(self) -> str:
        ...

    def get_style_preference(self) -> str:
        ...


def _normalize_quality(value: Optional[str]) -> str:
    lowered = (value or "").strip().lower()
    return lowered if lowered in QUALITY_PREFERENCES else DEFAULT_QUALITY


def _normalize_style(value: Optional[str]) -> str:
    lowered = (value or "").strip().lower()
    return lowered if lowered in {"natural", "vivid"} else DEFAULT_STYLE


class EnvConfigStore:
    """Reads keys and preferences from environment variables."""

    def __init__(self, environ: Optional[Mapping[str, str]] = None) -> None:
        self._environ = environ if environ is not None else os.environ

    def _get(self, name: str) -> str:
        return (self._environ.get(name) or "").strip()

    def get_api_key(self, provider_id: str) -> str:
        names = API_KEY_ENV_VARS.get(provider_id, (f"{provider_id.upper()}_API_KEY",))
        for name in names:
            value = self._get(name)
            if value:
                return value
        return ""

    def get_selected_model(self, provider_id: str) -> Optional[str]:
        return self._get(f"AI_IMAGE_GEN_{provider_id.upper()}_MODEL") or None

    def get_quality_preference(self) -> str:
        return _normalize_quality(self._get("AI_IMAGE_GEN_QUALITY"))

    def get_style_preference(self) -> str:
        return _normalize_style(self._get("AI_IMAGE_GEN_STYLE"))


@dataclass
class StaticConfigStore:
    api_keys: Mapping[str, str] = field(default_factory=dict)
    models: Mapping[str, str] = field(default_factory=dict)
    quality: str = DEFAULT_QUALITY
    style: str = DEFAULT_STYLE

    def get_api_key(self, provider_id: str) -> str:
        return self.api_keys.get(provider_id, "") or ""

    def get_selected_model(self, provider_id: str) -> Optional[str]:
        return self.models.get(provider_id) or None

    def get_quality_preference(self) -> str:
        return _normalize_quality(self.quality)

    def get_style_preference(self) -> str:
        return _normalize_style(self.style)
