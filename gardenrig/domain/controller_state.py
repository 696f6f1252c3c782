"""
Controller State

All mutable controller state lives here and is owned by the
IrrigationController. Cycles receive the pieces they need explicitly instead
of reaching into shared object fields.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime

from gardenrig.domain.moisture import BoundedHistory, MoistureSnapshot


@dataclass
class SafetyState:
    """
    Interlock state.

    Invariant: ``reenable_at`` is set iff ``shutdown_active`` is true and a
    re-enable timer is pending.
    """

    shutdown_active: bool = False
    reenable_at: datetime | None = None
    reenable_handle: asyncio.TimerHandle | None = field(default=None, repr=False)

    @property
    def reenable_pending(self) -> bool:
        return self.reenable_handle is not None

    def to_dict(self) -> dict:
        return {
            "shutdown_active": self.shutdown_active,
            "reenable_at": self.reenable_at.isoformat() if self.reenable_at else None,
        }


@dataclass
class ThermalState:
    """Mutated only by the ThermalController."""

    cooling_active: bool = False
    last_humidity: float | None = None
    last_temperature: float | None = None

    def to_dict(self) -> dict:
        return {
            "cooling_active": self.cooling_active,
            "last_humidity": self.last_humidity,
            "last_temperature": self.last_temperature,
        }


@dataclass
class ControllerState:
    """Process-lifetime state of the controller."""

    moisture_history: BoundedHistory[MoistureSnapshot]
    shutdown_log: BoundedHistory[bool]
    safety: SafetyState = field(default_factory=SafetyState)
    thermal: ThermalState = field(default_factory=ThermalState)
    paused_until: datetime | None = None

    @classmethod
    def create(cls, history_capacity: int, shutdown_log_capacity: int) -> "ControllerState":
        return cls(
            moisture_history=BoundedHistory(history_capacity),
            shutdown_log=BoundedHistory(shutdown_log_capacity),
        )

    def is_paused(self, now: datetime) -> bool:
        return self.paused_until is not None and now < self.paused_until

    def watering_blocked(self, now: datetime) -> bool:
        """True while the interlock or a manual pause forbids any pump run."""
        return self.safety.shutdown_active or self.is_paused(now)
