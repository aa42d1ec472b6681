# src/essay_grader/services/__init__.py
"""Business logic services for the essay grading application."""

from .essay_lifecycle import EssayLifecycle
from .rate_limiter import RateLimiter, RateLimitPolicy, get_rate_limiter

__all__ = [
    "EssayLifecycle",
    "RateLimiter",
    "RateLimitPolicy",
    "get_rate_limiter",
]
