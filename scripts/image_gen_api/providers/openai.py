"""OpenAI image adapter."""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, Mapping, Optional

import openai
import requests
from openai import OpenAI

from image_gen_api.core.contracts import (
    ErrorKind,
    GenerationOutcome,
    GenerationRequest,
    RawResponse,
    Retryable,
    Succeeded,
    Terminal,
)
from image_gen_api.core.utils import extension_from_mime, is_url, redact_image_urls
from .base import BaseAdapter, ImageFetchError, error_message, fetch_image, http_failure_kind

logger = logging.getLogger(__name__)


DEFAULT_MODEL = "gpt-image-1"
REQUEST_TIMEOUT = 120.0
GPT_IMAGE_HIGH_THRESHOLD = 75
DALLE3_HD_THRESHOLD = 90
VALID_KEY_PREFIXES = ("sk-proj-", "sk-None-", "sk-svcacct-", "sk-")
MODERATION_CODES = {"content_policy_violation", "moderation_blocked"}
PERMANENT_CODES = {"insufficient_quota", "billing_hard_limit_reached", "invalid_api_key"}

_GPT_IMAGE_SIZES = {
    "1:1": "1024x1024",
    "16:9": "1536x1024",
    "4:3": "1536x1024",
    "9:16": "1024x1536",
    "3:4": "1024x1536",
}
_DALLE3_SIZES = {
    "1:1": "1024x1024",
    "16:9": "1792x1024",
    "4:3": "1792x1024",
    "9:16": "1024x1792",
    "3:4": "1024x1792",
}


def _client(api_key: str, timeout: float) -> OpenAI:
    return OpenAI(api_key=api_key, timeout=timeout, max_retries=0)


def _to_plain(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Mapping):
        return {str(k): _to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_plain(v) for v in value]
    if hasattr(value, "model_dump"):
        return _to_plain(value.model_dump())
    if hasattr(value, "__dict__"):
        return {str(k): _to_plain(v) for k, v in value.__dict__.items() if not str(k).startswith("_")}
    return str(value)


def _call_with_kw_fallback(func, kwargs: Dict[str, Any], max_retries: int = 2):
    """Retry call by stripping unexpected keyword args reported by the SDK."""
    attempt = 0
    while True:
        try:
            return func(**kwargs)
        except TypeError as exc:
            message = str(exc)
            if "unexpected keyword argument" not in message or attempt >= max_retries:
                raise
            bad_key = None
            if "'" in message:
                parts = message.split("'")
                if len(parts) >= 2:
                    bad_key = parts[1]
            if not bad_key or bad_key not in kwargs:
                raise
            logger.debug("OpenAI SDK rejected %s; retrying without it", bad_key)
            kwargs = dict(kwargs)
            kwargs.pop(bad_key, None)
            attempt += 1


def _output_format(request: GenerationRequest) -> str:
    return "jpeg" if request.output_format in {"jpg", "jpeg"} else request.output_format


class OpenAIAdapter(BaseAdapter):
    provider_id = "openai"
    display_name = "OpenAI"
    models = {
        "gpt-image-1": "GPT Image 1",
        "dall-e-3": "DALL-E 3",
        "dall-e-2": "DALL-E 2",
    }
    image_to_image_models = frozenset({"gpt-image-1"})
    moderation_phrases = (
        "safety system",
        "content policy",
        "flagged by safety",
        "moderation_blocked",
    )

    def __init__(
        self,
        api_key: str = "",
        model: str = "",
        *,
        client_factory: Optional[Callable[[str, float], Any]] = None,
        session: Optional[requests.Session] = None,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        super().__init__(api_key, model, client_factory=client_factory, session=session, timeout=timeout)
        self._client_factory = client_factory or _client
        self._timeout = timeout
        self._client: Any = None

    def client(self) -> Any:
        if self._client is None:
            self._client = self._client_factory(self.api_key, self._timeout)
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
        super().close()

    def default_model(self, quality: str) -> Optional[str]:
        return DEFAULT_MODEL

    def validate_credential_format(self) -> bool:
        if not self.api_key:
            return False
        return any(self.api_key.startswith(prefix) for prefix in VALID_KEY_PREFIXES)

    def _is_gpt_image(self) -> bool:
        return self.model.startswith("gpt-image")

    def _size(self, aspect_ratio: Optional[str]) -> str:
        ratio = aspect_ratio or "1:1"
        if self._is_gpt_image():
            return _GPT_IMAGE_SIZES.get(ratio, "1024x1024")
        if self.model == "dall-e-3":
            return _DALLE3_SIZES.get(ratio, "1024x1024")
        return "1024x1024"

    def _quality(self, output_quality: Optional[int]) -> Optional[str]:
        quality = output_quality if output_quality is not None else 80
        if self._is_gpt_image():
            return "high" if quality > GPT_IMAGE_HIGH_THRESHOLD else "medium"
        if self.model == "dall-e-3":
            return "hd" if quality >= DALLE3_HD_THRESHOLD else "standard"
        return None

    def build_generate_kwargs(self, request: GenerationRequest) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "prompt": request.prompt,
            "n": 1,
            "size": self._size(request.aspect_ratio),
        }
        quality = self._quality(request.output_quality)
        if quality:
            kwargs["quality"] = quality
        if self._is_gpt_image():
            output_format = _output_format(request)
            kwargs["output_format"] = output_format
            kwargs["moderation"] = request.moderation or "auto"
            if output_format != "png" and request.output_quality is not None:
                kwargs["output_compression"] = request.output_quality
        else:
            kwargs["response_format"] = "url"
            if self.model == "dall-e-3" and request.style:
                kwargs["style"] = request.style
        kwargs.update(request.provider_params)
        return kwargs

    def _download(self, url: str, label: str) -> tuple:
        data, content_type = fetch_image(self.http(), url)
        mime = (content_type or "image/png").split(";", 1)[0].strip()
        return (f"{label}.{extension_from_mime(mime, 'png')}", data, mime)

    def build_edit_kwargs(self, request: GenerationRequest) -> Dict[str, Any]:
        images = [self._download(url, f"image-{idx}") for idx, url in enumerate(request.image_urls())]
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "prompt": request.prompt,
            "image": images if len(images) > 1 else images[0],
            "n": 1,
            "size": self._size(request.aspect_ratio),
        }
        if request.mask_url:
            kwargs["mask"] = self._download(request.mask_url, "mask")
        quality = self._quality(request.output_quality)
        if quality:
            kwargs["quality"] = quality
        kwargs["output_format"] = _output_format(request)
        kwargs.update(request.provider_params)
        return kwargs

    def send_request(self, request: GenerationRequest) -> RawResponse:
        client = self.client()
        try:
            if request.is_image_to_image:
                kwargs = self.build_edit_kwargs(request)
                logged = {k: v for k, v in kwargs.items() if k not in {"image", "mask"}}
                logger.debug(
                    "Sending edit request to OpenAI with %d image(s): %s",
                    len(request.image_urls()),
                    json.dumps(redact_image_urls(logged)),
                )
                response = _call_with_kw_fallback(client.images.edit, kwargs)
            else:
                kwargs = self.build_generate_kwargs(request)
                logger.debug("Sending request to OpenAI: %s", json.dumps(kwargs, default=str))
                response = _call_with_kw_fallback(client.images.generate, kwargs)
        except ImageFetchError as exc:
            if exc.transient:
                return RawResponse(transport_error=str(exc))
            return RawResponse(
                status_code=400,
                payload={"error": {"message": f"Source image unavailable: {exc}", "code": "invalid_image"}},
            )
        except openai.APIStatusError as exc:
            body = exc.body if isinstance(exc.body, Mapping) else {"message": exc.message}
            return RawResponse(status_code=exc.status_code, payload={"error": body})
        except openai.APIConnectionError as exc:
            return RawResponse(transport_error=str(exc) or type(exc).__name__)
        return RawResponse(status_code=200, payload=_to_plain(response))

    def parse_response(self, raw: RawResponse) -> GenerationOutcome:
        if raw.transport_error:
            return self.transport_failure(raw.transport_error)
        payload = raw.payload
        if not isinstance(payload, Mapping):
            return self.malformed(payload, "response is not a JSON object")
        if payload.get("error") or not raw.ok:
            return self._classify_error(raw.status_code, payload.get("error") or payload)

        data = payload.get("data")
        if not isinstance(data, list) or not data or not isinstance(data[0], Mapping):
            return self.malformed(payload, "missing image data")
        first = data[0]
        url = first.get("url")
        if url:
            if not is_url(url):
                return self.malformed(payload, "invalid image URL in response")
            logger.debug("Extracted image URL from OpenAI: %s", url)
            return Succeeded(url=url)
        b64 = first.get("b64_json")
        if isinstance(b64, str) and b64:
            fmt = payload.get("output_format") or "png"
            return Succeeded(b64_data=b64, mime_type=f"image/{fmt}")
        return self.malformed(payload, "image entry has neither url nor b64_json")

    def _classify_error(self, status_code: Optional[int], error: Any) -> GenerationOutcome:
        message = error_message(error) or "Unknown error occurred"
        code = error.get("code") if isinstance(error, Mapping) else None
        logger.warning("OpenAI API error (%s): %s", status_code, json.dumps(error, default=str))
        if code in MODERATION_CODES or self.is_moderation_text(message):
            return self.moderation_failure(message)
        if code in PERMANENT_CODES:
            return Terminal(ErrorKind.PERMANENT_PROVIDER, f"OpenAI rejected the request: {message}")
        kind = http_failure_kind(status_code if status_code != 200 else None)
        if kind is not None:
            return Retryable(f"OpenAI error: {message}", kind)
        return Terminal(ErrorKind.PERMANENT_PROVIDER, f"OpenAI rejected the request: {message}", detail=message)
