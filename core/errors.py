from __future__ import annotations

from typing import Optional


class StreamAlertsError(Exception):
    """Base class for engine and collaborator errors."""


# ======================================================================
# Status source
# ======================================================================

class StatusSourceError(StreamAlertsError):
    """A status-source call failed; the result is unknown, not absent."""


class SourceUnavailable(StatusSourceError):
    """Transient failure talking to the status source."""


class RateLimited(StatusSourceError):
    """The status source rejected the call for quota reasons."""

    def __init__(self, message: str, *, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


# ======================================================================
# Delivery
# ======================================================================

class DeliveryFailed(StreamAlertsError):
    """Sending or editing a card at one destination failed."""


class DestinationMissing(DeliveryFailed):
    """The destination channel no longer exists or is not reachable."""


# ======================================================================
# Registry / store
# ======================================================================

class NotFound(StreamAlertsError):
    """Entity or user lookup miss."""


class AlreadyTracked(StreamAlertsError):
    """An entity with the same id is already registered."""


class SubscriptionRejected(StreamAlertsError):
    """An add-subscription request failed a uniqueness or origin check."""

    def __init__(self, message: str, *, reason: str):
        super().__init__(message)
        self.reason = reason


class PersistenceFailed(StreamAlertsError):
    """The persistent store could not complete a read or write."""


class UnsupportedOperation(StreamAlertsError):
    """The operation exists but has no policy behind it yet."""


# ======================================================================
# Boot
# ======================================================================

class ConfigError(StreamAlertsError, RuntimeError):
    """Missing or invalid mandatory startup configuration."""
