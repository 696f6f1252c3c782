"""
Domain Models

Controller state, moisture readings and the exception hierarchy.
"""

from .controller_state import ControllerState, SafetyState, ThermalState
from .exceptions import (
    ActuationTimeout,
    ConfigurationError,
    DeviceError,
    GardenRigError,
    PersistenceError,
    SafetyInterlockTrip,
    SensorReadError,
)
from .moisture import BoundedHistory, MoistureSnapshot

__all__ = [
    # State
    "ControllerState",
    "SafetyState",
    "ThermalState",
    # Values
    "BoundedHistory",
    "MoistureSnapshot",
    # Errors
    "ActuationTimeout",
    "ConfigurationError",
    "DeviceError",
    "GardenRigError",
    "PersistenceError",
    "SafetyInterlockTrip",
    "SensorReadError",
]
