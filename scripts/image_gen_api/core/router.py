"""Provider routing and alias normalization."""

from __future__ import annotations

import os
import re
from typing import Dict, Optional


PROVIDER_ALIASES: Dict[str, str] = {
    "openai": "openai",
    "gpt-image-1": "openai",
    "gpt-image": "openai",
    "dall-e": "openai",
    "dall-e-3": "openai",
    "dalle": "openai",
    "replicate": "replicate",
    "flux": "replicate",
    "recraft": "replicate",
}


def normalize_provider(provider: Optional[str]) -> str:
    if not provider or not provider.strip():
        return ""
    if provider.strip().lower() in {"auto", "default"}:
        return "auto"
    slug = re.sub(r"[^a-z0-9]+", "-", provider.strip().lower()).strip("-")
    return PROVIDER_ALIASES.get(slug, slug)


def resolve_provider(provider: Optional[str]) -> str:
    normalized = normalize_provider(provider)
    if normalized != "auto":
        return normalized
    env_choice = os.getenv("AI_IMAGE_GEN_PROVIDER")
    if env_choice and normalize_provider(env_choice) != "auto":
        return normalize_provider(env_choice)
    return "openai"
