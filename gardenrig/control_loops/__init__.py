"""
Control Loops Package

Contains the moisture sampler, the watering state machines, the safety
interlock and the thermal controller.
"""

from gardenrig.control_loops.moisture_sampler import MoistureSampler
from gardenrig.control_loops.safety_interlock import SafetyInterlock
from gardenrig.control_loops.thermal_controller import ThermalController
from gardenrig.control_loops.watering_actuator import EdgeWatch, WateringActuator

__all__ = [
    "EdgeWatch",
    "MoistureSampler",
    "SafetyInterlock",
    "ThermalController",
    "WateringActuator",
]
