"""Media persistence: turn a generated URL or byte payload into a durable file."""

from __future__ import annotations

import io
import logging
import uuid
from pathlib import Path
from typing import Any, Mapping, Optional, Protocol, Tuple, Union

import requests
from PIL import Image, UnidentifiedImageError

from .contracts import PersistedMedia
from .errors import PersistenceError
from .receipts import build_receipt, write_receipt
from .utils import ensure_out_dir, extension_from_mime, is_url, utc_timestamp

logger = logging.getLogger(__name__)

DEFAULT_DOWNLOAD_TIMEOUT = 60.0
_PIL_FORMATS = {"JPEG": "image/jpeg", "PNG": "image/png", "WEBP": "image/webp", "GIF": "image/gif"}


class MediaPersistenceGateway(Protocol):
    def persist(
        self,
        image: Union[bytes, str],
        prompt: str,
        *,
        mime_type: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> PersistedMedia:
        ...


def sniff_image(data: bytes) -> Tuple[Optional[str], Optional[int], Optional[int]]:
    """Return (mime type, width, height) when Pillow recognizes the payload."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            return _PIL_FORMATS.get(image.format or ""), image.width, image.height
    except (UnidentifiedImageError, OSError):
        return None, None, None


class LocalMediaStore:
    """Stores images under a directory and writes a JSON receipt beside each one."""

    def __init__(
        self,
        out_dir: Optional[Path] = None,
        *,
        session: Optional[requests.Session] = None,
        download_timeout: float = DEFAULT_DOWNLOAD_TIMEOUT,
        write_receipts: bool = True,
    ) -> None:
        self.out_dir = ensure_out_dir(out_dir)
        self._session = session or requests.Session()
        self._download_timeout = download_timeout
        self._write_receipts = write_receipts

    def download(self, url: str) -> Tuple[bytes, Optional[str]]:
        logger.debug("Downloading image from URL: %s", url)
        try:
            response = self._session.get(url, timeout=self._download_timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.error("Error downloading image: %s", exc)
            raise PersistenceError(f"Error downloading image: {exc}") from exc
        if not response.content:
            logger.error("Downloaded image data is empty")
            raise PersistenceError("Downloaded image data is empty", code="empty_image")
        return response.content, response.headers.get("content-type")

    def persist(
        self,
        image: Union[bytes, str],
        prompt: str,
        *,
        mime_type: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> PersistedMedia:
        if isinstance(image, str):
            if not is_url(image):
                raise PersistenceError("Image reference is neither a URL nor image data.")
            data, header_mime = self.download(image)
            mime_type = mime_type or header_mime
        elif isinstance(image, (bytes, bytearray)):
            data = bytes(image)
        else:
            raise PersistenceError(f"Unsupported image payload type: {type(image).__name__}")
        if not data:
            raise PersistenceError("Image data is empty", code="empty_image")

        sniffed_mime, width, height = sniff_image(data)
        if sniffed_mime is None:
            logger.warning("Could not identify image format; storing with declared type %s", mime_type)
        mime_type = sniffed_mime or mime_type
        stem = f"ai-generated-{utc_timestamp()}-{uuid.uuid4().hex[:8]}"
        path = self.out_dir / f"{stem}.{extension_from_mime(mime_type)}"
        try:
            path.write_bytes(data)
            if self._write_receipts:
                receipt_path = self.out_dir / f"{stem}.json"
                write_receipt(
                    receipt_path,
                    build_receipt(
                        prompt=prompt,
                        image_path=path,
                        receipt_path=receipt_path,
                        mime_type=mime_type,
                        width=width,
                        height=height,
                        metadata=metadata or {},
                    ),
                )
        except OSError as exc:
            logger.error("Error writing image: %s", exc)
            raise PersistenceError(f"Error writing image: {exc}") from exc

        return PersistedMedia(url=path.as_uri(), media_id=stem, path=path, width=width, height=height)
