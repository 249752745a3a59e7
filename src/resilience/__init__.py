"""Resilience primitives — circuit breaker, response cache, retrying client."""

from src.resilience.cache import AuthToken, ResponseCache
from src.resilience.circuit_breaker import CircuitBreaker, CircuitState, CircuitStatus
from src.resilience.client import ClientStats, ResilientClient, backoff_delay

__all__ = [
    "AuthToken",
    "CircuitBreaker",
    "CircuitState",
    "CircuitStatus",
    "ClientStats",
    "ResilientClient",
    "ResponseCache",
    "backoff_delay",
]
