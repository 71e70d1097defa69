"""
Rate limiting package: Redis-backed per caller, per operation limits
attached by the API façade.
"""

from .limiter import OperationRateLimiter

__all__ = ["OperationRateLimiter"]
