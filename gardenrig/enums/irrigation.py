"""
Irrigation-related Enumerations
===============================

Outcomes and reasons reported by the watering state machines and the
irrigation cycle, plus the GPIO edge kinds they watch.
"""

from enum import Enum


class FillOutcome(str, Enum):
    """Terminal state of a tank refill or pot fill."""

    FULL = "full"
    TIMED_OUT = "timed_out"
    INTERLOCKED = "interlocked"


class IrrigationSkipReason(str, Enum):
    """Why a pot was not watered during a cycle."""

    WET = "wet"
    TANK_EMPTY = "tank_empty"
    DAILY_LIMIT = "daily_limit"
    INTERLOCKED = "interlocked"
    PAUSED = "paused"
    REFILL_INTERLOCKED = "refill_interlocked"


class Edge(str, Enum):
    """Pin transitions an edge watch can react to."""

    RISING = "rising"
    FALLING = "falling"
    BOTH = "both"


class CycleKind(str, Enum):
    """The periodic controller tasks owned by the scheduler."""

    IRRIGATION = "irrigation"
    THERMAL = "thermal"
    SAFETY = "safety"
    HISTORY_FLUSH = "history_flush"
