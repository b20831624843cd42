"""Public API for image generation."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from image_gen_api.core.backoff import RetryPolicy
from image_gen_api.core.config import ConfigStore, EnvConfigStore
from image_gen_api.core.contracts import GenerationRequest, GenerationResult, Succeeded
from image_gen_api.core.errors import ValidationError
from image_gen_api.core.normalizer import error_for_outcome, normalize_success
from image_gen_api.core.orchestrator import GenerationOrchestrator
from image_gen_api.core.persistence import LocalMediaStore, MediaPersistenceGateway
from image_gen_api.core.registry import ProviderRegistry
from image_gen_api.core.router import resolve_provider
from image_gen_api.core.solver import resolve_request
from image_gen_api.core.utils import redact_image_urls
from image_gen_api.providers import build_default_registry

logger = logging.getLogger(__name__)


class ImageGenService:
    """Entry point used by the editor/HTTP layer.

    The registry, config store and persistence gateway are injected so callers
    (and tests) decide which providers exist and where images end up.
    """

    def __init__(
        self,
        registry: Optional[ProviderRegistry] = None,
        config: Optional[ConfigStore] = None,
        *,
        persistence: Optional[MediaPersistenceGateway] = None,
        orchestrator: Optional[GenerationOrchestrator] = None,
        policy: Optional[RetryPolicy] = None,
    ) -> None:
        self.registry = registry or build_default_registry()
        self.config = config or EnvConfigStore()
        self.persistence = persistence
        self.orchestrator = orchestrator or GenerationOrchestrator(policy)

    def list_providers(self) -> List[Dict[str, str]]:
        return [
            {"id": descriptor.id, "name": descriptor.display_name}
            for descriptor in self.registry.configured_descriptors(self.config)
        ]

    def list_image_to_image_providers(self) -> List[str]:
        return self.registry.image_to_image_providers(self.config)

    def build_request(
        self,
        prompt: str,
        provider: Optional[str] = None,
        *,
        model: Optional[str] = None,
        **params: Any,
    ) -> GenerationRequest:
        provider_id = resolve_provider(provider)
        if not provider_id:
            raise ValidationError("Provider is required", code="invalid_provider")
        if provider_id not in self.registry:
            raise ValidationError(f"Invalid provider: {provider_id}", code="invalid_provider")
        resolved_model = model or self.registry.current_model(provider_id, self.config)
        return resolve_request(
            prompt=prompt,
            provider_id=provider_id,
            model=resolved_model,
            params=params,
            quality_preference=self.config.get_quality_preference(),
            style_preference=self.config.get_style_preference(),
        )

    def generate(
        self,
        prompt: str,
        provider: Optional[str] = None,
        *,
        model: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
        **params: Any,
    ) -> GenerationResult:
        request = self.build_request(prompt, provider, model=model, **params)
        adapter = self.registry.bind(request.provider_id, self.config, request.model)
        logger.info("Starting image generation request")
        logger.debug(
            "Prompt: %s, Provider: %s, Model: %s, Params: %s",
            request.prompt,
            request.provider_id,
            request.model,
            json.dumps(redact_image_urls(_request_params(request)), default=str),
        )

        try:
            report = self.orchestrator.run(request, adapter, cancel_event=cancel_event)
        finally:
            if adapter is not None:
                adapter.close()
        if isinstance(report.outcome, Succeeded):
            return normalize_success(
                report.outcome,
                request=request,
                attempts=report.attempts,
                persistence=self.persistence,
            )
        raise error_for_outcome(
            report.outcome,
            provider=request.provider_id,
            attempts=report.attempts,
            prediction_id=report.prediction_id,
        )


def _request_params(request: GenerationRequest) -> Dict[str, Any]:
    params: Dict[str, Any] = {
        "aspect_ratio": request.aspect_ratio,
        "output_format": request.output_format,
        "output_quality": request.output_quality,
        "style": request.style,
        "moderation": request.moderation,
        "source_image_url": request.source_image_url,
        "additional_image_urls": list(request.additional_image_urls),
        "mask_url": request.mask_url,
    }
    params.update(request.provider_params)
    return params


def default_service(out_dir: Optional[str | Path] = None, *, persist: bool = True) -> ImageGenService:
    persistence = LocalMediaStore(Path(out_dir) if out_dir else None) if persist else None
    return ImageGenService(build_default_registry(), EnvConfigStore(), persistence=persistence)


def generate(
    *,
    prompt: str,
    provider: Optional[str] = None,
    model: Optional[str] = None,
    out_dir: Optional[str | Path] = None,
    persist: bool = True,
    cancel_event: Optional[threading.Event] = None,
    **params: Any,
) -> GenerationResult:
    service = default_service(out_dir, persist=persist)
    return service.generate(prompt, provider, model=model, cancel_event=cancel_event, **params)


def list_providers() -> List[Dict[str, str]]:
    return default_service(persist=False).list_providers()


def list_image_to_image_providers() -> List[str]:
    return default_service(persist=False).list_image_to_image_providers()
