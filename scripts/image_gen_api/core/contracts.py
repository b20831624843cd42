"""Core data contracts for image generation."""

from __future__ import annotations

import base64
import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Union


ASPECT_RATIOS = ("1:1", "16:9", "9:16", "4:3", "3:4")
STYLES = ("natural", "vivid")
MODERATION_LEVELS = ("auto", "low")


class ErrorKind(str, enum.Enum):
    VALIDATION = "validation"
    CONTENT_MODERATION = "content_moderation"
    TRANSIENT_PROVIDER = "transient_provider"
    PERMANENT_PROVIDER = "permanent_provider"
    TRANSPORT = "transport"


@dataclass(frozen=True)
class GenerationRequest:
    prompt: str
    provider_id: str
    model: str
    source_image_url: Optional[str] = None
    additional_image_urls: Sequence[str] = ()
    mask_url: Optional[str] = None
    aspect_ratio: Optional[str] = None
    output_format: str = "webp"
    output_quality: Optional[int] = None
    style: Optional[str] = None
    moderation: Optional[str] = None
    provider_params: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_image_to_image(self) -> bool:
        return bool(self.source_image_url or self.additional_image_urls)

    def image_urls(self) -> list[str]:
        urls: list[str] = []
        if self.source_image_url:
            urls.append(self.source_image_url)
        urls.extend(url for url in self.additional_image_urls if url)
        return urls


@dataclass(frozen=True)
class ProviderDescriptor:
    id: str
    display_name: str
    available_models: Mapping[str, str]
    image_to_image_models: frozenset = frozenset()

    def supports_image_to_image(self, model: Optional[str]) -> bool:
        return bool(model) and model in self.image_to_image_models


@dataclass
class RawResponse:
    """One provider HTTP exchange, before classification."""

    status_code: Optional[int] = None
    payload: Any = None
    transport_error: Optional[str] = None
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.transport_error is None and self.status_code is not None and 200 <= self.status_code < 300


@dataclass(frozen=True)
class Succeeded:
    url: Optional[str] = None
    image_bytes: Optional[bytes] = None
    b64_data: Optional[str] = None
    mime_type: Optional[str] = None
    prediction_id: Optional[str] = None


@dataclass(frozen=True)
class Pending:
    handle: str
    status: str = "processing"


@dataclass(frozen=True)
class Retryable:
    reason: str
    kind: ErrorKind = ErrorKind.TRANSIENT_PROVIDER
    discard_handle: bool = False


@dataclass(frozen=True)
class Terminal:
    kind: ErrorKind
    message: str
    detail: Optional[str] = None
    code: Optional[str] = None


@dataclass(frozen=True)
class Cancelled:
    reason: str = "Generation cancelled."


GenerationOutcome = Union[Succeeded, Pending, Retryable, Terminal, Cancelled]


@dataclass(frozen=True)
class PersistedMedia:
    url: str
    media_id: Optional[str] = None
    path: Optional[Path] = None
    width: Optional[int] = None
    height: Optional[int] = None


@dataclass
class GenerationResult:
    url: Optional[str]
    provider: str
    model: str
    media_id: Optional[str] = None
    binary_data: Optional[bytes] = None
    mime_type: Optional[str] = None
    attempts: int = 1
    prediction_id: Optional[str] = None
    status: str = "completed"
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        url = self.url
        if url is None and self.binary_data is not None:
            encoded = base64.b64encode(self.binary_data).decode("ascii")
            url = f"data:{self.mime_type or 'image/png'};base64,{encoded}"
        payload: Dict[str, Any] = {"url": url, "status": self.status}
        if self.media_id:
            payload["id"] = self.media_id
        return payload


Sleeper = Callable[[float], None]
Clock = Callable[[], float]
