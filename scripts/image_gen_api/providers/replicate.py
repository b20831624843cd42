"""Replicate adapter (asynchronous predictions)."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Mapping, Optional

import requests

from image_gen_api.core.contracts import (
    ErrorKind,
    GenerationOutcome,
    GenerationRequest,
    Pending,
    RawResponse,
    Retryable,
    Succeeded,
    Terminal,
)
from image_gen_api.core.utils import is_data_uri, is_url, redact_image_urls, truncate
from .base import BaseAdapter, error_message, headers_without_auth, http_failure_kind, raw_from_requests

logger = logging.getLogger(__name__)


API_BASE_URL = "https://api.replicate.com/v1"
PREFER_WAIT_SECONDS = 10
REQUEST_TIMEOUT = 15.0
POLL_TIMEOUT = 10.0
API_KEY_LENGTH = 40
PENDING_STATUSES = {"starting", "processing"}
SUCCESS_STATUSES = {"succeeded"}
FAILURE_STATUSES = {"failed"}
CANCELED_STATUSES = {"canceled", "cancelled"}

FLUX_SCHNELL = "black-forest-labs/flux-schnell"
FLUX_PRO = "black-forest-labs/flux-1.1-pro"
FLUX_KONTEXT = "black-forest-labs/flux-kontext-pro"
RECRAFT_V3 = "recraft-ai/recraft-v3"
IMAGEN_4 = "google/imagen-4"
SEEDREAM_3 = "bytedance/seedream-3"

QUALITY_MODELS = {
    "low": FLUX_SCHNELL,
    "medium": FLUX_PRO,
    "high": RECRAFT_V3,
    "hd": RECRAFT_V3,
}

# Input keys each model accepts; models missing here get the full input.
MODEL_INPUT_KEYS: Dict[str, frozenset] = {
    FLUX_SCHNELL: frozenset(
        {"prompt", "aspect_ratio", "output_format", "output_quality", "num_outputs", "seed", "go_fast", "megapixels"}
    ),
    FLUX_PRO: frozenset(
        {
            "prompt",
            "aspect_ratio",
            "output_format",
            "output_quality",
            "seed",
            "safety_tolerance",
            "prompt_upsampling",
            "image_prompt",
        }
    ),
    FLUX_KONTEXT: frozenset(
        {"prompt", "input_image", "aspect_ratio", "output_format", "seed", "safety_tolerance", "prompt_upsampling"}
    ),
    RECRAFT_V3: frozenset({"prompt", "aspect_ratio", "size", "style"}),
    IMAGEN_4: frozenset({"prompt", "aspect_ratio", "output_format", "safety_filter_level"}),
    SEEDREAM_3: frozenset({"prompt", "aspect_ratio", "size", "guidance_scale", "seed"}),
}
MODEL_OUTPUT_FORMATS: Dict[str, frozenset] = {
    FLUX_KONTEXT: frozenset({"jpg", "png"}),
    IMAGEN_4: frozenset({"jpg", "png"}),
}
RECRAFT_STYLES = {"natural": "realistic_image", "vivid": "digital_illustration"}
DEFAULT_STYLES = {"natural": "realistic_image/natural_light", "vivid": "digital_illustration"}
# Replicate's sensitive-content error code, matched as a whole word.
_SAFETY_CODE_RE = re.compile(r"\bE005\b", re.IGNORECASE)


def map_style(model: str, style: Optional[str]) -> str:
    styles = RECRAFT_STYLES if model == RECRAFT_V3 else DEFAULT_STYLES
    return styles.get(style or "natural", "realistic_image")


def _first_output(output: Any) -> Optional[str]:
    if isinstance(output, str):
        return output or None
    if isinstance(output, (list, tuple)):
        for item in output:
            found = _first_output(item)
            if found:
                return found
        return None
    if isinstance(output, Mapping):
        for key in ("url", "image", "output"):
            found = _first_output(output.get(key))
            if found:
                return found
    return None


class ReplicateAdapter(BaseAdapter):
    provider_id = "replicate"
    display_name = "Replicate"
    models = {
        FLUX_SCHNELL: "Flux Schnell by Black Forest Labs (low quality)",
        FLUX_PRO: "Flux 1.1 Pro by Black Forest Labs (high quality)",
        RECRAFT_V3: "Recraft V3 by Recraft AI (high quality)",
        FLUX_KONTEXT: "Flux Kontext Pro by Black Forest Labs (image editing)",
        IMAGEN_4: "Imagen 4 by Google",
        SEEDREAM_3: "Seedream 3 by ByteDance",
    }
    image_to_image_models = frozenset({FLUX_KONTEXT})
    moderation_phrases = (
        "flagged by safety filters",
        "flagged as sensitive",
        "nsfw",
        "responsible ai",
        "sensitive words",
    )

    def __init__(
        self,
        api_key: str = "",
        model: str = "",
        *,
        session: Optional[requests.Session] = None,
        base_url: str = API_BASE_URL,
        prefer_wait: int = PREFER_WAIT_SECONDS,
        request_timeout: float = REQUEST_TIMEOUT,
        poll_timeout: float = POLL_TIMEOUT,
    ) -> None:
        super().__init__(
            api_key,
            model,
            session=session,
            base_url=base_url,
            prefer_wait=prefer_wait,
            request_timeout=request_timeout,
            poll_timeout=poll_timeout,
        )
        self._base_url = base_url.rstrip("/")
        self._prefer_wait = prefer_wait
        self._request_timeout = request_timeout
        self._poll_timeout = poll_timeout

    def default_model(self, quality: str) -> Optional[str]:
        return QUALITY_MODELS.get(quality)

    def is_moderation_text(self, text: Optional[str]) -> bool:
        return super().is_moderation_text(text) or bool(text and _SAFETY_CODE_RE.search(text))

    def validate_credential_format(self) -> bool:
        return bool(self.api_key) and len(self.api_key) == API_KEY_LENGTH

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def build_input(self, request: GenerationRequest) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "prompt": request.prompt,
            "aspect_ratio": request.aspect_ratio or "1:1",
            "output_format": request.output_format,
            "num_outputs": 1,
            "style": map_style(self.model, request.style),
        }
        if request.output_quality is not None:
            payload["output_quality"] = request.output_quality
        formats = MODEL_OUTPUT_FORMATS.get(self.model)
        if formats and request.output_format not in formats:
            payload["output_format"] = "png"
        if request.source_image_url:
            payload["input_image"] = request.source_image_url
        if request.additional_image_urls and self.model not in MODEL_INPUT_KEYS:
            payload["additional_image_urls"] = list(request.additional_image_urls)
        if request.mask_url:
            payload["mask"] = request.mask_url
        payload.update(request.provider_params)

        allowed = MODEL_INPUT_KEYS.get(self.model)
        if allowed is not None:
            dropped = sorted(set(payload) - allowed)
            if dropped:
                logger.debug("Replicate model %s ignores inputs: %s", self.model, ", ".join(dropped))
            payload = {k: v for k, v in payload.items() if k in allowed}
        return payload

    def send_request(self, request: GenerationRequest) -> RawResponse:
        url = f"{self._base_url}/models/{self.model}/predictions"
        headers = dict(self._headers())
        headers["Prefer"] = f"wait={self._prefer_wait}"
        body = {"input": self.build_input(request)}
        logger.debug(
            "Sending request to Replicate API %s headers=%s body=%s",
            url,
            headers_without_auth(headers),
            json.dumps({"input": redact_image_urls(body["input"])}),
        )
        try:
            response = self.http().post(url, headers=headers, json=body, timeout=self._request_timeout)
        except requests.RequestException as exc:
            return RawResponse(transport_error=str(exc) or type(exc).__name__)
        return raw_from_requests(response)

    def check_pending_status(self, handle: str) -> GenerationOutcome:
        url = f"{self._base_url}/predictions/{handle}"
        logger.debug("Checking Replicate prediction %s", handle)
        try:
            response = self.http().get(url, headers=self._headers(), timeout=self._poll_timeout)
        except requests.RequestException as exc:
            return self.transport_failure(str(exc) or type(exc).__name__)
        return self.parse_response(raw_from_requests(response))

    def parse_response(self, raw: RawResponse) -> GenerationOutcome:
        if raw.transport_error:
            return self.transport_failure(raw.transport_error)
        payload = raw.payload
        if not raw.ok:
            return self._classify_http_error(raw.status_code, payload)
        if not isinstance(payload, Mapping):
            return self.malformed(payload, "response is not a JSON object")

        status = str(payload.get("status") or "").lower()
        prediction_id = payload.get("id")
        if status in SUCCESS_STATUSES:
            output = _first_output(payload.get("output"))
            if output and is_url(output):
                return Succeeded(url=output, prediction_id=prediction_id)
            if output and is_data_uri(output):
                return Succeeded(b64_data=output, prediction_id=prediction_id)
            return self.malformed(payload, "prediction succeeded without an image output")
        if status in PENDING_STATUSES:
            if not prediction_id:
                return self.malformed(payload, "pending prediction without an id")
            logger.info("Replicate prediction %s is %s", prediction_id, status)
            return Pending(handle=str(prediction_id), status=status)
        if status in FAILURE_STATUSES:
            detail = error_message(payload) or "Unknown error occurred"
            logger.warning("Replicate prediction %s failed: %s", prediction_id, detail)
            if self.is_moderation_text(detail):
                return self.moderation_failure(detail)
            return Retryable(f"Generation failed: {truncate(detail, 200)}", discard_handle=True)
        if status in CANCELED_STATUSES:
            return Terminal(
                ErrorKind.PERMANENT_PROVIDER,
                f"Replicate prediction {prediction_id} was canceled.",
            )
        return self.malformed(payload, f"unexpected prediction status '{status}'")

    def _classify_http_error(self, status_code: Optional[int], payload: Any) -> GenerationOutcome:
        detail = error_message(payload) or f"HTTP {status_code}"
        logger.warning("Replicate API error (%s): %s", status_code, truncate(json.dumps(payload, default=str)))
        if self.is_moderation_text(detail):
            return self.moderation_failure(detail)
        kind = http_failure_kind(status_code)
        if kind is not None:
            return Retryable(f"Replicate error ({status_code}): {truncate(detail, 200)}", kind)
        return Terminal(
            ErrorKind.PERMANENT_PROVIDER,
            f"Replicate rejected the request ({status_code}): {truncate(detail, 200)}",
            detail=detail,
        )
