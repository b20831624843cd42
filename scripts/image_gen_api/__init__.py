"""AI image generation public surface."""

from .api import ImageGenService, generate, list_image_to_image_providers, list_providers
from .core import GenerationRequest, GenerationResult
from .core.errors import ContentModerationError, ImageGenError, ValidationError

__all__ = [
    "ContentModerationError",
    "GenerationRequest",
    "GenerationResult",
    "ImageGenError",
    "ImageGenService",
    "ValidationError",
    "generate",
    "list_image_to_image_providers",
    "list_providers",
]
