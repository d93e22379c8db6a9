from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence


class ProviderError(Exception):
    """Base exception for provider related errors."""

    safe_message = "An error occurred"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.safe_message)


class BackendConnectionError(ProviderError, ConnectionError):
    """Raised when the provider backend refuses or drops the connection."""

    safe_message = "Connection refused. Is the service running?"


class BackendTimeoutError(ProviderError, TimeoutError):
    """Raised when a backend call exceeds its timeout."""

    safe_message = "Request timed out. Please try again."


class AuthenticationError(ProviderError):
    """Raised when the credential is missing, malformed or rejected."""

    safe_message = "Authentication failed. Please check your API key."


class RateLimitError(ProviderError):
    """Raised when the API rate limit is exceeded."""

    safe_message = "Rate limit exceeded. Please wait before retrying."


class ModelNotFoundError(ProviderError):
    """Raised when the requested model or tier does not exist."""

    safe_message = "Model not found. Please check the model name."


class ServerError(ProviderError):
    """Raised on 5xx responses from the backend."""

    safe_message = "Server error. Please try again later."


class UnknownProviderError(ProviderError):
    """Raised for failures that fit no other category."""


@dataclass
class ProviderFailure:
    """A single provider's failure inside a fallback run."""

    provider: str
    error: str
    exception: Optional[BaseException] = None


class AllProvidersFailedError(ProviderError):
    """Raised when every registered provider failed an operation."""

    def __init__(self, failures: Sequence[ProviderFailure]) -> None:
        self.failures: List[ProviderFailure] = list(failures)
        if self.failures:
            details = "\n".join(f"- {f.provider}: {f.error}" for f in self.failures)
            message = f"All providers failed:\n{details}"
        else:
            message = "All providers failed: no providers registered"
        super().__init__(message)


class ProviderNotFoundError(LookupError):
    """Raised when the registry has no provider under the requested name."""

    def __init__(self, name: Optional[str], available: Sequence[str]) -> None:
        self.name = name
        self.available = list(available)
        listing = ", ".join(self.available) if self.available else "(none)"
        super().__init__(
            f"Provider '{name}' not found. Available providers: {listing}"
        )
