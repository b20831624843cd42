"""Resolve caller parameters and configured preferences into a generation request."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Sequence

from .contracts import ASPECT_RATIOS, MODERATION_LEVELS, STYLES, GenerationRequest
from .errors import ValidationError


DEFAULT_ASPECT_RATIO = "1:1"
DEFAULT_OUTPUT_FORMAT = "webp"
OUTPUT_FORMATS = ("webp", "png", "jpeg", "jpg")
HIGH_QUALITY_VALUE = 100
STANDARD_QUALITY_VALUE = 80

_KNOWN_PARAMS = {
    "aspect_ratio",
    "output_format",
    "output_quality",
    "style",
    "moderation",
    "source_image_url",
    "additional_image_urls",
    "mask_url",
}


def quality_value_for(preference: str) -> int:
    return HIGH_QUALITY_VALUE if preference in {"hd", "high"} else STANDARD_QUALITY_VALUE


def _choose_aspect_ratio(value: Optional[str]) -> str:
    if value is None or not str(value).strip():
        return DEFAULT_ASPECT_RATIO
    normalized = str(value).strip().replace("/", ":")
    if normalized not in ASPECT_RATIOS:
        raise ValidationError(
            f"Invalid aspect ratio. Must be one of: {', '.join(ASPECT_RATIOS)}",
            code="invalid_aspect_ratio",
        )
    return normalized


def _choose_output_format(value: Optional[str]) -> str:
    if not value:
        return DEFAULT_OUTPUT_FORMAT
    lowered = str(value).strip().lower()
    if lowered.startswith("image/"):
        lowered = lowered.split("/", 1)[1]
    if lowered not in OUTPUT_FORMATS:
        raise ValidationError(
            f"Invalid output format. Must be one of: {', '.join(OUTPUT_FORMATS)}",
            code="invalid_parameter",
        )
    return "jpg" if lowered == "jpeg" else lowered


def _choose_quality(value: Any, preference: str) -> int:
    if value is None or value == "":
        return quality_value_for(preference)
    try:
        quality = int(value)
    except (TypeError, ValueError):
        raise ValidationError("Output quality must be an integer.", code="invalid_parameter") from None
    if not 0 <= quality <= 100:
        raise ValidationError("Output quality must be between 0 and 100.", code="invalid_parameter")
    return quality


def _choose_enum(name: str, value: Optional[str], allowed: Sequence[str], default: str) -> str:
    if value is None or not str(value).strip():
        return default
    lowered = str(value).strip().lower()
    if lowered not in allowed:
        raise ValidationError(
            f"Invalid {name}. Must be one of: {', '.join(allowed)}",
            code="invalid_parameter",
        )
    return lowered


def _choose_image_urls(value: Any) -> tuple:
    if not value:
        return ()
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, (list, tuple)):
        raise ValidationError("additional_image_urls must be a list of URLs.", code="invalid_parameter")
    return tuple(str(item) for item in value if item)


def resolve_request(
    *,
    prompt: str,
    provider_id: str,
    model: Optional[str],
    params: Optional[Mapping[str, Any]] = None,
    quality_preference: str = "medium",
    style_preference: str = "natural",
) -> GenerationRequest:
    """Apply defaults and check enumerations; prompt/model/credential checks happen later."""
    params = dict(params or {})
    extra: Dict[str, Any] = {k: v for k, v in params.items() if k not in _KNOWN_PARAMS and v is not None}
    return GenerationRequest(
        prompt=prompt if isinstance(prompt, str) else "",
        provider_id=provider_id,
        model=model or "",
        source_image_url=params.get("source_image_url") or None,
        additional_image_urls=_choose_image_urls(params.get("additional_image_urls")),
        mask_url=params.get("mask_url") or None,
        aspect_ratio=_choose_aspect_ratio(params.get("aspect_ratio")),
        output_format=_choose_output_format(params.get("output_format")),
        output_quality=_choose_quality(params.get("output_quality"), quality_preference),
        style=_choose_enum("style", params.get("style"), STYLES, style_preference),
        moderation=_choose_enum("moderation", params.get("moderation"), MODERATION_LEVELS, "auto"),
        provider_params=extra,
    )
