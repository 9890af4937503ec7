"""Backend failure classification.

Decides whether a failed attempt should move on to the next instance and
which generic message and status the caller eventually sees.
"""

from dataclasses import dataclass

from multirouter.providers.base import ProviderError


# Statuses that take an instance out of rotation and trigger failover
RETRYABLE_STATUS_CODES = frozenset({429, 402, 503})

# Status reported when the backend failure carried no HTTP status
DEFAULT_STATUS = 502

ERROR_STATUS_MESSAGES: dict[int, str] = {
    400: "Bad request to provider",
    401: "Provider authentication failed",
    402: "Provider payment required",
    403: "Provider access denied",
    404: "Model not found on provider",
    429: "Provider rate limit exceeded",
    500: "Provider internal error",
    503: "Provider temporarily unavailable",
}


@dataclass(frozen=True)
class ErrorClassification:
    """Outcome of classifying one backend failure."""

    retryable: bool
    message: str
    status_code: int


def classify_error(error: BaseException) -> ErrorClassification:
    """Classify a backend failure.

    Anything that is not a ``ProviderError`` is treated like one without a
    status.

    Args:
        error: The exception raised by the backend.

    Returns:
        ErrorClassification with the retry decision and caller-facing
        message and status.
    """
    status = error.status_code if isinstance(error, ProviderError) else None

    if status is None:
        return ErrorClassification(
            retryable=False,
            message=f"Provider error (status {DEFAULT_STATUS})",
            status_code=DEFAULT_STATUS,
        )

    return ErrorClassification(
        retryable=status in RETRYABLE_STATUS_CODES,
        message=ERROR_STATUS_MESSAGES.get(status, f"Provider error (status {status})"),
        status_code=status,
    )


def is_retryable(error: BaseException) -> bool:
    """Whether the failure should fail over to the next instance."""
    return classify_error(error).retryable
