"""Built-in provider adapters."""

from __future__ import annotations

from typing import List

from image_gen_api.core.registry import ProviderRegistry

from .base import BaseAdapter, ProviderAdapter
from .openai import OpenAIAdapter
from .replicate import ReplicateAdapter


def builtin_adapters() -> List[ProviderAdapter]:
    return [OpenAIAdapter(), ReplicateAdapter()]


def build_default_registry() -> ProviderRegistry:
    return ProviderRegistry(builtin_adapters())


__all__ = [
    "BaseAdapter",
    "OpenAIAdapter",
    "ProviderAdapter",
    "ReplicateAdapter",
    "build_default_registry",
    "builtin_adapters",
]
