"""Error taxonomy surfaced to callers of the generation service."""

from __future__ import annotations

from typing import Any, Dict, Optional

from .contracts import ErrorKind


class ImageGenError(RuntimeError):
    code = "generation_failed"
    kind: Optional[ErrorKind] = None

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        provider: Optional[str] = None,
        prediction_id: Optional[str] = None,
        attempts: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.provider = provider
        self.prediction_id = prediction_id
        self.attempts = attempts

    def to_payload(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class ValidationError(ImageGenError):
    code = "invalid_request"
    kind = ErrorKind.VALIDATION


class ContentModerationError(ImageGenError):
    """The provider refused the prompt; the user should rephrase it."""

    code = "content_moderation"
    kind = ErrorKind.CONTENT_MODERATION


class PermanentProviderError(ImageGenError):
    code = "provider_error"
    kind = ErrorKind.PERMANENT_PROVIDER


class TransientProviderError(ImageGenError):
    code = "provider_unavailable"
    kind = ErrorKind.TRANSIENT_PROVIDER


class TransportError(ImageGenError):
    code = "transport_error"
    kind = ErrorKind.TRANSPORT


class RetryBudgetExhausted(ImageGenError):
    code = "api_error"

    def __init__(self, message: str, *, last_kind: Optional[ErrorKind] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.kind = last_kind


class GenerationDeadlineExceeded(ImageGenError):
    code = "timeout"


class GenerationCancelled(ImageGenError):
    code = "cancelled"


class PersistenceError(ImageGenError):
    code = "upload_error"


_KIND_TO_ERROR = {
    ErrorKind.VALIDATION: ValidationError,
    ErrorKind.CONTENT_MODERATION: ContentModerationError,
    ErrorKind.PERMANENT_PROVIDER: PermanentProviderError,
    ErrorKind.TRANSIENT_PROVIDER: TransientProviderError,
    ErrorKind.TRANSPORT: TransportError,
}


def error_class_for(kind: ErrorKind) -> type[ImageGenError]:
    return _KIND_TO_ERROR.get(kind, ImageGenError)
