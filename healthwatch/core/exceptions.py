"""Exception hierarchy for the health-monitoring engine."""

from __future__ import annotations


class HealthwatchError(Exception):
    """Base exception for all healthwatch errors."""


class ConfigError(HealthwatchError):
    """Configuration could not be loaded or is invalid."""


class PersistenceError(HealthwatchError):
    """A failure-counter or alert write failed after all retries."""


class AlertNotFoundError(HealthwatchError):
    """No alert exists with the requested id."""


class AlertTransitionError(HealthwatchError):
    """The requested acknowledge/resolve transition is not allowed."""
