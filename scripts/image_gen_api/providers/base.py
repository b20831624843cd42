"""Provider adapter interfaces."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping, Optional, Protocol, Sequence

import requests

from image_gen_api.core.contracts import (
    ErrorKind,
    GenerationOutcome,
    GenerationRequest,
    ProviderDescriptor,
    RawResponse,
    Retryable,
    Terminal,
)
from image_gen_api.core.utils import truncate

logger = logging.getLogger(__name__)

MODERATION_MESSAGE = (
    "The image was flagged by the provider's safety filters. "
    "Please modify your prompt and try again."
)
DEFAULT_DOWNLOAD_TIMEOUT = 60.0


class ProviderAdapter(Protocol):
    provider_id: str
    display_name: str
    api_key: str
    model: str

    def available_models(self) -> Mapping[str, str]:
        ...

    def bind(self, api_key: str, model: str) -> "ProviderAdapter":
        ...

    def default_model(self, quality: str) -> Optional[str]:
        ...

    def supports_image_to_image(self) -> bool:
        ...

    def validate_credential_format(self) -> bool:
        ...

    def send_request(self, request: GenerationRequest) -> RawResponse:
        ...

    def parse_response(self, raw: RawResponse) -> GenerationOutcome:
        ...

    def request(self, request: GenerationRequest) -> GenerationOutcome:
        ...

    def check_pending_status(self, handle: str) -> GenerationOutcome:
        ...

    def descriptor(self) -> ProviderDescriptor:
        ...

    def close(self) -> None:
        ...


class ImageFetchError(Exception):
    """A source or mask image could not be downloaded before upload."""

    def __init__(self, message: str, *, transient: bool) -> None:
        super().__init__(message)
        self.transient = transient


class BaseAdapter:
    """Shared state and classification helpers for concrete adapters.

    An adapter constructed without credentials acts as the registry's template;
    `bind` produces the per-request instance that performs network calls.
    """

    provider_id = ""
    display_name = ""
    models: Mapping[str, str] = {}
    image_to_image_models: frozenset = frozenset()
    moderation_phrases: Sequence[str] = ()
    max_malformed = 2

    def __init__(self, api_key: str = "", model: str = "", **options: Any) -> None:
        self.api_key = api_key or ""
        self.model = model or ""
        self._options = dict(options)
        self._malformed_count = 0
        self._http_session: Optional[requests.Session] = options.get("session")
        self._owns_session = False

    def __repr__(self) -> str:
        return f"{type(self).__name__}(model={self.model!r})"

    def bind(self, api_key: str, model: str) -> "BaseAdapter":
        return type(self)(api_key, model, **self._options)

    def http(self) -> requests.Session:
        """Session given at construction, else one this adapter opens and later closes."""
        if self._http_session is None:
            self._http_session = requests.Session()
            self._owns_session = True
        return self._http_session

    def close(self) -> None:
        if self._owns_session and self._http_session is not None:
            self._http_session.close()
            self._http_session = None
            self._owns_session = False

    def available_models(self) -> Mapping[str, str]:
        return dict(self.models)

    def default_model(self, quality: str) -> Optional[str]:
        return None

    def supports_image_to_image(self) -> bool:
        return self.model in self.image_to_image_models

    def descriptor(self) -> ProviderDescriptor:
        return ProviderDescriptor(
            id=self.provider_id,
            display_name=self.display_name,
            available_models=dict(self.models),
            image_to_image_models=frozenset(self.image_to_image_models),
        )

    def validate_credential_format(self) -> bool:
        raise NotImplementedError

    def send_request(self, request: GenerationRequest) -> RawResponse:
        raise NotImplementedError

    def parse_response(self, raw: RawResponse) -> GenerationOutcome:
        raise NotImplementedError

    def request(self, request: GenerationRequest) -> GenerationOutcome:
        return self.parse_response(self.send_request(request))

    def check_pending_status(self, handle: str) -> GenerationOutcome:
        return Terminal(
            ErrorKind.PERMANENT_PROVIDER,
            f"{self.display_name} does not support status polling.",
        )

    def is_moderation_text(self, text: Optional[str]) -> bool:
        if not text:
            return False
        lowered = text.lower()
        return any(phrase in lowered for phrase in self.moderation_phrases)

    def moderation_failure(self, detail: str) -> Terminal:
        logger.warning("%s content moderation: %s", self.display_name, detail)
        return Terminal(ErrorKind.CONTENT_MODERATION, MODERATION_MESSAGE, detail=detail)

    def malformed(self, payload: Any, reason: str) -> GenerationOutcome:
        """First unexpected payload is retried; repeats are terminal."""
        self._malformed_count += 1
        detail = truncate(_dump(payload))
        logger.warning(
            "Invalid %s response format (%d/%d): %s: %s",
            self.display_name,
            self._malformed_count,
            self.max_malformed,
            reason,
            detail,
        )
        message = f"Invalid response format from {self.display_name}: {reason}"
        if self._malformed_count >= self.max_malformed:
            return Terminal(ErrorKind.PERMANENT_PROVIDER, message, detail=detail)
        return Retryable(message)

    def transport_failure(self, error: str) -> Retryable:
        logger.warning("%s transport error: %s", self.display_name, error)
        return Retryable(f"{self.display_name} request failed: {error}", ErrorKind.TRANSPORT)


def _dump(payload: Any) -> str:
    if isinstance(payload, str):
        return payload
    try:
        return json.dumps(payload, ensure_ascii=True, default=str)
    except (TypeError, ValueError):
        return repr(payload)


def raw_from_requests(response: requests.Response) -> RawResponse:
    try:
        payload: Any = response.json()
    except ValueError:
        payload = response.text
    return RawResponse(
        status_code=response.status_code,
        payload=payload,
        headers=dict(response.headers or {}),
    )


def fetch_image(
    session: requests.Session,
    url: str,
    *,
    timeout: float = DEFAULT_DOWNLOAD_TIMEOUT,
) -> tuple[bytes, Optional[str]]:
    """Download an image referenced by URL; returns bytes and content type."""
    try:
        response = session.get(url, timeout=timeout)
    except requests.RequestException as exc:
        raise ImageFetchError(f"Could not download image: {exc}", transient=True) from exc
    if response.status_code >= 500 or response.status_code == 429:
        raise ImageFetchError(f"Image download failed ({response.status_code})", transient=True)
    if response.status_code >= 400:
        raise ImageFetchError(f"Image download failed ({response.status_code})", transient=False)
    if not response.content:
        raise ImageFetchError("Downloaded image data is empty", transient=False)
    return response.content, response.headers.get("content-type")


def error_message(payload: Any, keys: Sequence[str] = ("message", "detail", "error", "title")) -> str:
    if isinstance(payload, Mapping):
        nested = payload.get("error")
        if isinstance(nested, Mapping):
            return error_message(nested, keys)
        for key in keys:
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    if isinstance(payload, str):
        return payload.strip()
    return ""


def http_failure_kind(status_code: Optional[int]) -> Optional[ErrorKind]:
    """Transient for throttling and server errors, None for permanent client errors."""
    if status_code is None:
        return ErrorKind.TRANSIENT_PROVIDER
    if status_code in {408, 409, 425, 429} or status_code >= 500:
        return ErrorKind.TRANSIENT_PROVIDER
    return None


def headers_without_auth(headers: Mapping[str, str]) -> Dict[str, str]:
    return {k: ("<redacted>" if k.lower() in {"authorization", "x-key"} else v) for k, v in headers.items()}
