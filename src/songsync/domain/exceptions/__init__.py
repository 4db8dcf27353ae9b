"""Domain exceptions."""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, message is stored as an attribute so callers can inspect it without
    # parsing str(exception). Never raise this directly - always a specific subclass!
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class EntityNotFoundException(DomainException):
    """Raised when an entity is not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(f"{entity_type} with id {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class InvalidStateException(DomainException):
    """Raised when an entity is in an invalid state for the requested operation.

    Example: starting an ingestion run for a user whose previous run is still
    in progress.
    """

    pass


class ValidationError(DomainException):
    """Input validation failed.

    Example:
        raise ValidationError("Invalid page request: empty URL")
    """

    pass


class MalformedPageError(ValidationError):
    """A catalog page could not be interpreted.

    Raised when the body is not JSON, is not an object, or its ``items`` field
    is not a list. Aborts the drain of the source that returned it.
    """

    def __init__(self, message: str, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class ConfigurationError(DomainException):
    """Application misconfiguration.

    Example:
        raise ConfigurationError("Unable to create SQLite database directory")
    """

    pass


class ExternalServiceError(DomainException):
    """External service (Spotify) returned an error or could not be reached.

    This is the "transient fetch error" of a drain: no retry, the job fails.
    """

    def __init__(
        self,
        message: str,
        url: str | None = None,
        http_status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.http_status = http_status


class RateLimitExceededError(ExternalServiceError):
    """Spotify kept answering 429 after every retry."""

    def __init__(
        self,
        message: str,
        url: str | None = None,
        retry_after: int | None = None,
    ) -> None:
        super().__init__(message, url=url, http_status=429)
        self.retry_after = retry_after


class TokenRefreshException(DomainException):
    """Raised when Spotify rejects the user's access token.

    Hey future me - refreshing tokens is NOT our job here. The owner of the OAuth
    flow has to re-authenticate the user and then start a new ingestion run.
    """

    def __init__(
        self,
        message: str = "Spotify access denied. Please re-authenticate with Spotify.",
        error_code: str | None = None,
        http_status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.http_status = http_status

    @property
    def requires_reauth(self) -> bool:
        """Check if error requires user re-authentication."""
        return self.error_code == "invalid_grant" or self.http_status in (400, 401, 403)


class IngestionFailedError(DomainException):
    """An ingestion run did not complete; the completion flag was left untouched."""

    def __init__(
        self,
        user_id: str,
        failed_sources: list[str],
        message: str | None = None,
    ) -> None:
        super().__init__(
            message
            or f"Ingestion for user {user_id} failed (sources: {', '.join(failed_sources) or 'none'})"
        )
        self.user_id = user_id
        self.failed_sources = failed_sources


class IngestionTimeoutError(IngestionFailedError):
    """An ingestion run exceeded its time budget and was cancelled."""

    def __init__(self, user_id: str, timeout_seconds: float) -> None:
        super().__init__(
            user_id,
            failed_sources=[],
            message=f"Ingestion for user {user_id} timed out after {timeout_seconds:.0f}s",
        )
        self.timeout_seconds = timeout_seconds


__all__ = [
    "DomainException",
    "EntityNotFoundException",
    "InvalidStateException",
    "ValidationError",
    "MalformedPageError",
    "ConfigurationError",
    "ExternalServiceError",
    "RateLimitExceededError",
    "TokenRefreshException",
    "IngestionFailedError",
    "IngestionTimeoutError",
]
