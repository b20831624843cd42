"""Utility helpers for image generation."""

from __future__ import annotations

import base64
import binascii
import os
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Optional, Tuple

_URL_RE = re.compile(r"^https?://", re.IGNORECASE)
_DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?:;[^,]*)?,", re.IGNORECASE)
_IMAGE_URL_KEYS = {"source_image_url", "mask_url", "input_image", "image", "mask", "image_prompt"}


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def ensure_out_dir(out_dir: Optional[Path]) -> Path:
    if out_dir is None:
        root = Path(os.getenv("AI_IMAGE_GEN_OUTPUTS", "outputs"))
        out_dir = root / "ai_image_gen"
    out_dir = Path(out_dir).expanduser().resolve()
    out_dir.mkdir(parents=True, exist_ok=True)
    return out_dir


def is_url(value: Any) -> bool:
    return isinstance(value, str) and bool(_URL_RE.match(value))


def is_data_uri(value: Any) -> bool:
    return isinstance(value, str) and bool(_DATA_URI_RE.match(value))


def decode_base64_image(value: str) -> Tuple[bytes, Optional[str]]:
    """Decode a raw base64 string or a data URI into bytes and its mime type."""
    mime_type: Optional[str] = None
    payload = value.strip()
    match = _DATA_URI_RE.match(payload)
    if match:
        mime_type = match.group("mime")
        payload = payload[match.end():]
    payload = "".join(payload.split())
    padding = (-len(payload)) % 4
    try:
        return base64.b64decode(payload + "=" * padding, validate=True), mime_type
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"Invalid base64 image payload: {exc}") from exc


def extension_from_mime(mime_type: Optional[str], fallback: str = "webp") -> str:
    if mime_type:
        mime = mime_type.lower().split(";", 1)[0].strip()
        if mime.endswith("/jpeg") or mime.endswith("/jpg"):
            return "jpg"
        if mime.endswith("/png"):
            return "png"
        if mime.endswith("/webp"):
            return "webp"
        if mime.startswith("image/"):
            return mime.split("/", 1)[1]
    if fallback == "jpeg":
        return "jpg"
    return fallback


def redact_image_urls(params: Mapping[str, Any]) -> dict:
    """Copy of request params that is safe to log."""
    redacted: dict = {}
    for key, value in params.items():
        if key in _IMAGE_URL_KEYS and value:
            redacted[key] = "(image provided)"
        elif key == "additional_image_urls" and value:
            redacted[key] = f"({len(value)} images provided)"
        elif isinstance(value, str) and is_data_uri(value):
            redacted[key] = "(inline image data)"
        else:
            redacted[key] = value
    return redacted


def truncate(text: str, limit: int = 500) -> str:
    text = (text or "").strip().replace("\n", " ")
    if len(text) > limit:
        return text[:limit].rstrip() + "..."
    return text
