"""Request admission controls for the gateway."""

from multirouter.resilience.rate_limiter import (
    RateLimitInfo,
    SlidingWindowRateLimiter,
)

__all__ = [
    "RateLimitInfo",
    "SlidingWindowRateLimiter",
]
