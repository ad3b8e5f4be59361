"""Contains exceptions raised by the Linear GraphQL client."""

from typing import Any


class LinearAPIError(Exception):
    """Raised when the Linear API returns a non-success response or GraphQL errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
        payload: Any = None,
    ) -> None:
        """Initializes the exception with the remote error details."""
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.payload = payload

    def __str__(self) -> str:
        """Render the error with its status code and GraphQL code when known."""
        parts = [self.message]
        if self.code:
            parts.append(f"code={self.code}")
        if self.status_code is not None:
            parts.append(f"status={self.status_code}")
        return " | ".join(parts)


class LinearRateLimitError(LinearAPIError):
    """Raised when Linear rejects a request because of rate limiting."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
        payload: Any = None,
        retry_after: float | None = None,
    ) -> None:
        """Initializes the exception with an optional server-provided retry delay."""
        super().__init__(message, status_code=status_code, code=code, payload=payload)
        self.retry_after = retry_after
