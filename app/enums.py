"""Shared enums for the URL shortener application.

This module defines all status and state enums used across the codebase.
Using enums instead of string literals provides type safety and prevents typos.
"""

from enum import StrEnum

__all__ = ["HealthStatus", "RequestStatus"]


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class RequestStatus(StrEnum):
    """Outcome labels for service metrics and logging."""

    SUCCESS = "success"
    CONFLICT = "conflict"
    EXHAUSTED = "exhausted"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    ERROR = "error"
