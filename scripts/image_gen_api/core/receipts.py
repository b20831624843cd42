"""Receipt writer for persisted images."""

from __future__ import annotations

import json
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any, Mapping, MutableMapping, Optional

from .utils import is_data_uri, utc_timestamp


def _sanitize_payload(payload: Any) -> Any:
    if payload is None:
        return None
    if isinstance(payload, (int, float, bool)):
        return payload
    if isinstance(payload, str):
        return "<inline image>" if is_data_uri(payload) else payload
    if isinstance(payload, bytes):
        return f"<bytes:{len(payload)}>"
    if isinstance(payload, Path):
        return str(payload)
    if is_dataclass(payload) and not isinstance(payload, type):
        return _sanitize_payload(asdict(payload))
    if isinstance(payload, Mapping):
        sanitized: MutableMapping[str, Any] = {}
        for key, value in payload.items():
            lowered = str(key).lower()
            if lowered in {"b64_json", "b64_data", "image_bytes", "binary_data"}:
                sanitized[str(key)] = "<omitted>"
                continue
            sanitized[str(key)] = _sanitize_payload(value)
        return sanitized
    if isinstance(payload, (list, tuple)):
        return [_sanitize_payload(item) for item in payload]
    return str(payload)


def build_receipt(
    *,
    prompt: str,
    image_path: Path,
    receipt_path: Path,
    mime_type: Optional[str],
    width: Optional[int],
    height: Optional[int],
    metadata: Mapping[str, Any],
) -> dict[str, Any]:
    return {
        "created_at": utc_timestamp(),
        "alt_text": prompt,
        "image": {
            "mime_type": mime_type,
            "width": width,
            "height": height,
        },
        "artifacts": {
            "image_path": str(image_path),
            "receipt_path": str(receipt_path),
        },
        "generation": _sanitize_payload(metadata),
    }


def write_receipt(path: Path, payload: Mapping[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2)
        handle.write("\n")
