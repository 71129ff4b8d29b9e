"""Exception classes for API clients and the reconciliation engine."""

from typing import Optional


class APIError(Exception):
    """Base exception for API-related errors."""
    
    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_text: Optional[str] = None,
    ) -> None:
        """Initialize API error.
        
        Args:
            message: Error message
            status_code: HTTP status code if available
            response_text: Response body text if available
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response_text = response_text
    
    def __str__(self) -> str:
        """String representation of the error."""
        parts = [self.message]
        if self.status_code:
            parts.append(f"Status: {self.status_code}")
        if self.response_text:
            # Truncate response text for readability
            response_preview = self.response_text[:200]
            if len(self.response_text) > 200:
                response_preview += "..."
            parts.append(f"Response: {response_preview}")
        return " | ".join(parts)


class AuthenticationError(APIError):
    """Raised when authentication fails (401)."""
    pass


class AuthorizationError(APIError):
    """Raised when authorization fails (403)."""
    pass


class RateLimitError(APIError):
    """Raised when rate limit is exceeded (429)."""
    
    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_text: Optional[str] = None,
        retry_after: Optional[int] = None,
    ) -> None:
        super().__init__(message, status_code, response_text)
        self.retry_after = retry_after


class ClientError(APIError):
    """Raised for 4xx client errors."""
    pass


class ServerError(APIError):
    """Raised for 5xx server errors."""
    pass


class NetworkError(APIError):
    """Raised for network-related errors."""
    pass


class ResourceNotFoundError(ClientError):
    """Raised when a requested resource is not found (404)."""
    pass


class AssetError(Exception):
    """Raised when an out-of-band asset (e.g. a client logo) cannot be converged."""
    pass


class SyncError(Exception):
    """Base exception for reconciliation errors."""
    
    def __init__(
        self,
        message: str,
        kind: Optional[str] = None,
        name: Optional[str] = None,
    ) -> None:
        """Initialize sync error.
        
        Args:
            message: Error message
            kind: Kind of the declared resource being reconciled
            name: Name of the declared resource being reconciled
        """
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.name = name


class ReferenceUnresolvedError(SyncError):
    """A referenced resource has no observed identity yet. Retryable."""
    pass


class InvariantViolatedError(SyncError):
    """The remote object violates an invariant of its declared kind."""
    pass


class SelectorUnsupportedError(SyncError):
    """Selector-based references cannot be resolved."""
    pass
