"""Core contracts and helpers."""

from .contracts import (
    Cancelled,
    ErrorKind,
    GenerationOutcome,
    GenerationRequest,
    GenerationResult,
    Pending,
    ProviderDescriptor,
    RawResponse,
    Retryable,
    Succeeded,
    Terminal,
)

__all__ = [
    "Cancelled",
    "ErrorKind",
    "GenerationOutcome",
    "GenerationRequest",
    "GenerationResult",
    "Pending",
    "ProviderDescriptor",
    "RawResponse",
    "Retryable",
    "Succeeded",
    "Terminal",
]
