"""Gateway error types.

Every outcome a caller can observe other than success is a ``GatewayError``
carrying the HTTP status and the OpenAI-style error fields.
"""

from typing import Any


class ConfigurationError(Exception):
    """Raised when the providers file cannot be read at all."""


class GatewayError(Exception):
    """Base class for caller-facing gateway errors."""

    status_code: int = 500
    error_type: str = "server_error"
    code: str | None = None

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_type: str | None = None,
        code: str | None = None,
        param: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_type is not None:
            self.error_type = error_type
        if code is not None:
            self.code = code
        self.param = param

    def to_dict(self) -> dict[str, Any]:
        """Render as an OpenAI-compatible error body."""
        return {
            "error": {
                "message": self.message,
                "type": self.error_type,
                "param": self.param,
                "code": self.code,
            }
        }


class InvalidRequestError(GatewayError):
    """The request body failed validation."""

    status_code = 400
    error_type = "invalid_request_error"


class ModelNotFoundError(GatewayError):
    """No configured instance has ever declared the requested model."""

    status_code = 404
    error_type = "invalid_request_error"
    code = "model_not_found"

    def __init__(self, model: str) -> None:
        super().__init__(
            f'Model "{model}" not found. Use GET /v1/models to see available models.',
            param="model",
        )
        self.model = model


class AllProvidersRateLimitedError(GatewayError):
    """The model exists but no instance serving it is currently usable."""

    status_code = 429
    error_type = "rate_limit_error"
    code = "rate_limit_exceeded"

    def __init__(self, model: str, attempted: int = 0) -> None:
        if attempted:
            message = f'All providers for model "{model}" failed. Try again later.'
        else:
            message = (
                f'All providers for model "{model}" are currently rate-limited. '
                "Try again later."
            )
        super().__init__(message)
        self.model = model
        self.attempted = attempted


class NoProvidersAvailableError(GatewayError):
    """There is no active provider instance to route to."""

    status_code = 503
    error_type = "server_error"

    def __init__(self, message: str = "No providers available") -> None:
        super().__init__(message)


class UpstreamProviderError(GatewayError):
    """A backend failed and no further instance will be tried.

    Carries only the classified, generic message; the raw backend error is
    kept on ``cause`` for server-side logging.
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        instance_id: str,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            message,
            status_code=status_code,
            error_type="server_error" if status_code >= 500 else "invalid_request_error",
        )
        self.instance_id = instance_id
        self.cause = cause


class RateLimitExceeded(GatewayError):
    """A client exceeded its request budget at the gateway."""

    status_code = 429
    error_type = "rate_limit_error"
    code = "rate_limit_exceeded"

    def __init__(self, key: str, limit: int, retry_after: float) -> None:
        super().__init__(
            f"Too many requests: limit is {limit} per minute. "
            f"Retry in {retry_after:.0f}s."
        )
        self.key = key
        self.limit = limit
        self.retry_after = retry_after


class AuthenticationError(GatewayError):
    """Missing or invalid gateway API key."""

    status_code = 401
    error_type = "invalid_request_error"
    code = "invalid_api_key"
