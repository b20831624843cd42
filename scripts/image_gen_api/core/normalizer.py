"""Turn orchestration outcomes into a canonical result or a classified error."""

from __future__ import annotations

import logging
from typing import Optional, Tuple

from .contracts import (
    Cancelled,
    GenerationRequest,
    GenerationResult,
    Succeeded,
    Terminal,
)
from .errors import (
    GenerationCancelled,
    GenerationDeadlineExceeded,
    ImageGenError,
    PermanentProviderError,
    RetryBudgetExhausted,
    error_class_for,
)
from .persistence import MediaPersistenceGateway
from .utils import decode_base64_image

logger = logging.getLogger(__name__)


def extract_image(outcome: Succeeded) -> Tuple[Optional[str], Optional[bytes], Optional[str]]:
    """Pick the single authoritative image reference: hosted URL first, then inline data."""
    if outcome.url:
        return outcome.url, None, outcome.mime_type
    if outcome.image_bytes:
        return None, outcome.image_bytes, outcome.mime_type
    if outcome.b64_data:
        data, mime_type = decode_base64_image(outcome.b64_data)
        if not data:
            raise ValueError("Inline image payload is empty.")
        return None, data, outcome.mime_type or mime_type
    raise ValueError("Provider result carries no image.")


def normalize_success(
    outcome: Succeeded,
    *,
    request: GenerationRequest,
    attempts: int,
    persistence: Optional[MediaPersistenceGateway] = None,
) -> GenerationResult:
    try:
        url, data, mime_type = extract_image(outcome)
    except ValueError as exc:
        logger.warning("Unusable %s image payload: %s", request.provider_id, exc)
        raise PermanentProviderError(
            "Provider returned an unreadable image payload.",
            provider=request.provider_id,
            prediction_id=outcome.prediction_id,
            attempts=attempts,
        ) from exc

    result = GenerationResult(
        url=url,
        provider=request.provider_id,
        model=request.model,
        binary_data=data,
        mime_type=mime_type,
        attempts=attempts,
        prediction_id=outcome.prediction_id,
    )
    if persistence is None:
        return result

    media = persistence.persist(
        data if data is not None else url,
        request.prompt,
        mime_type=mime_type,
        metadata={
            "provider": request.provider_id,
            "model": request.model,
            "prediction_id": outcome.prediction_id,
            "source_url": url,
            "attempts": attempts,
        },
    )
    result.url = media.url
    result.media_id = media.media_id
    result.binary_data = None
    result.metadata = {"path": str(media.path) if media.path else None, "width": media.width, "height": media.height}
    logger.info("Generated image stored at %s", media.url)
    return result


def error_for_outcome(
    outcome: Terminal | Cancelled,
    *,
    provider: str,
    attempts: int,
    prediction_id: Optional[str] = None,
) -> ImageGenError:
    context = {"provider": provider, "attempts": attempts, "prediction_id": prediction_id}
    if isinstance(outcome, Cancelled):
        return GenerationCancelled(outcome.reason, **context)
    if outcome.detail:
        logger.info("%s error detail: %s", provider, outcome.detail)
    message = outcome.message
    if prediction_id and outcome.code in {"api_error", "timeout"}:
        message = f"{message} (prediction {prediction_id})"
    if outcome.code == "api_error":
        return RetryBudgetExhausted(message, last_kind=outcome.kind, **context)
    if outcome.code == "timeout":
        return GenerationDeadlineExceeded(message, **context)
    return error_class_for(outcome.kind)(message, code=outcome.code, **context)
