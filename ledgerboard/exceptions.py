"""Exception hierarchy for the provider integration and the credential store.

Provider errors (configuration, authentication, rate limit, transport) are
caught at the safe factory / safe call boundary and turned into empty
dashboard data. Store errors propagate from write paths only.
"""
from typing import Optional


class LedgerboardError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        """Convert to dictionary for structured error responses."""
        return {"error": self.message}


class ProviderError(LedgerboardError):
    """Accounting provider returned an unexpected response."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    def to_dict(self) -> dict:
        result = super().to_dict()
        if self.status_code is not None:
            result["status_code"] = self.status_code
        return result


class ConfigurationError(ProviderError):
    """Tenant is not provisioned for the accounting provider."""


class AuthenticationError(ProviderError):
    """Provider rejected the tenant's credentials (or a bearer token)."""


class RateLimitError(ProviderError):
    """Provider answered HTTP 429."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: Optional[int] = None,
        body: Optional[str] = None,
    ) -> None:
        super().__init__(message, status_code=429, body=body)
        self.retry_after = retry_after

    def to_dict(self) -> dict:
        result = super().to_dict()
        if self.retry_after:
            result["retry_after"] = self.retry_after
        return result


class TransportError(ProviderError):
    """Network failure or timeout talking to the provider."""

    def __init__(self, message: str = "Network error occurred", original_error: Optional[Exception] = None) -> None:
        super().__init__(message)
        self.original_error = original_error


class StoreError(LedgerboardError):
    """Persistence layer still unavailable after the retry budget."""

    def __init__(self, message: str, attempts: int = 0, original_error: Optional[Exception] = None) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.original_error = original_error


class EncryptionError(LedgerboardError):
    """Credential cipher failure. Never escapes ledgerboard.crypto."""
