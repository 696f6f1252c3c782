"""Centralized exception hierarchy for the garden rig controller.

All domain and hardware exceptions inherit from :class:`GardenRigError` so that
callers can catch a single base class at a cycle boundary, yet still match on
specific subclasses where narrower handling is appropriate.

Hierarchy
---------
::

    GardenRigError (base)
    ├── SensorReadError        (transient; reading treated as worst case)
    ├── ActuationTimeout       (pump ran to its tick cap without confirmation)
    ├── SafetyInterlockTrip    (safety switch open; watering vetoed)
    ├── PersistenceError       (snapshot save/load failed; logged only)
    ├── DeviceError            (GPIO unavailable or write failure)
    └── ConfigurationError     (missing / invalid config, pin conflicts)
"""

from __future__ import annotations


class GardenRigError(Exception):
    """Base exception for all controller errors.

    Parameters
    ----------
    message:
        Human-readable description.
    detail:
        Optional machine-readable context dict attached to the error for
        structured logging.
    """

    def __init__(self, message: str = "", *, detail: dict | None = None) -> None:
        super().__init__(message)
        self.detail = detail or {}


class SensorReadError(GardenRigError):
    """A sensor could not be read or returned an implausible value."""


class ActuationTimeout(GardenRigError):
    """A pump did not confirm completion within its tick cap."""


class SafetyInterlockTrip(GardenRigError):
    """A safety switch reported an unsafe condition."""


class PersistenceError(GardenRigError):
    """Snapshot could not be written to or read from durable storage."""


class DeviceError(GardenRigError):
    """Hardware device could not be configured or driven."""


class ConfigurationError(GardenRigError):
    """Missing or invalid configuration."""
