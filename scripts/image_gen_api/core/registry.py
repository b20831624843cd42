"""Provider registry."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional

from .config import ConfigStore
from .contracts import ProviderDescriptor

if TYPE_CHECKING:
    from image_gen_api.providers.base import ProviderAdapter

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Holds one template adapter per provider id.

    Registration happens once while the registry is built; lookups afterwards
    are pure reads, so a registry may be shared between concurrent generations.
    """

    def __init__(self, adapters: Iterable["ProviderAdapter"] = ()) -> None:
        self._adapters: Dict[str, "ProviderAdapter"] = {}
        self._descriptors: Dict[str, ProviderDescriptor] = {}
        for adapter in adapters:
            self.register(adapter)

    def register(self, adapter: "ProviderAdapter") -> None:
        key = adapter.provider_id
        existing = self._adapters.get(key)
        if existing is adapter:
            return
        if existing is not None:
            logger.warning(
                "Provider '%s' registered twice (%r replaces %r); check provider configuration.",
                key,
                adapter,
                existing,
            )
        self._adapters[key] = adapter
        self._descriptors[key] = adapter.descriptor()
        logger.debug("Registered provider: %s", key)

    def __contains__(self, provider_id: object) -> bool:
        return provider_id in self._adapters

    def get(self, provider_id: str) -> Optional["ProviderAdapter"]:
        return self._adapters.get(provider_id)

    def descriptor(self, provider_id: str) -> Optional[ProviderDescriptor]:
        return self._descriptors.get(provider_id)

    def list_descriptors(self) -> List[ProviderDescriptor]:
        return list(self._descriptors.values())

    def current_model(self, provider_id: str, config: ConfigStore) -> Optional[str]:
        """Configured model, else the provider's default for the quality preference."""
        adapter = self.get(provider_id)
        if adapter is None:
            return None
        selected = config.get_selected_model(provider_id)
        if selected:
            return selected
        return adapter.default_model(config.get_quality_preference())

    def bind(
        self,
        provider_id: str,
        config: ConfigStore,
        model: Optional[str] = None,
    ) -> Optional["ProviderAdapter"]:
        adapter = self.get(provider_id)
        if adapter is None:
            return None
        resolved_model = model or self.current_model(provider_id, config) or ""
        return adapter.bind(config.get_api_key(provider_id), resolved_model)

    def supports_image_to_image(self, provider_id: str, config: ConfigStore) -> bool:
        if provider_id not in self._adapters:
            return False
        if not config.get_api_key(provider_id):
            return False
        bound = self.bind(provider_id, config)
        return bool(bound and bound.model and bound.supports_image_to_image())

    def image_to_image_providers(self, config: ConfigStore) -> List[str]:
        return [provider_id for provider_id in self._adapters if self.supports_image_to_image(provider_id, config)]

    def configured_descriptors(self, config: ConfigStore) -> List[ProviderDescriptor]:
        return [
            descriptor
            for provider_id, descriptor in self._descriptors.items()
            if config.get_api_key(provider_id)
        ]
