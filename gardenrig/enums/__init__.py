"""
Enums Module
============

Enumeration types shared by the control loops and the scheduler.
"""

from gardenrig.enums.irrigation import CycleKind, Edge, FillOutcome, IrrigationSkipReason

__all__ = [
    "CycleKind",
    "Edge",
    "FillOutcome",
    "IrrigationSkipReason",
]
