"""
Safety interlock for the main tank pump.

Features:
    - Two independent float/leak switches checked every safety tick
    - Immediate main pump shutoff on trip
    - Single cooldown timer before watering is re-enabled
    - Trip and re-enable events in the shutdown log and audit trail
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta

from gardenrig.constants import Intervals
from gardenrig.domain.controller_state import SafetyState
from gardenrig.domain.exceptions import DeviceError, SafetyInterlockTrip
from gardenrig.hardware.actuators.relay_base import RelayBase
from gardenrig.hardware.gpio.pin import LOW, DigitalPin
from gardenrig.services.history_store import HistoryStore
from gardenrig.utils.time import utc_now
from infrastructure.logging.audit import AuditLogger

logger = logging.getLogger(__name__)


class SafetyInterlock:
    """
    Watches the safety switches and vetoes watering while any is open.

    A switch reads logic-low when safe. A switch that cannot be read counts
    as unsafe.
    """

    def __init__(
        self,
        switches: Sequence[DigitalPin],
        main_pump: RelayBase,
        state: SafetyState,
        history: HistoryStore,
        reenable_interval: float = Intervals.SAFETY_REENABLE,
        audit: AuditLogger | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize safety interlock.

        Args:
            switches: Safety switch input pins
            main_pump: Relay of the pump filling the small tank
            state: Interlock state owned by the controller
            history: Store receiving the shutdown log entries
            reenable_interval: Seconds before watering is allowed again
            audit: Optional audit trail for trips and re-enables
            clock: UTC clock
        """
        self.switches = list(switches)
        self.main_pump = main_pump
        self.state = state
        self.history = history
        self.reenable_interval = reenable_interval
        self.audit = audit
        self.clock = clock
        self.trip_count = 0
        self.last_trip: SafetyInterlockTrip | None = None

    @property
    def is_active(self) -> bool:
        return self.state.shutdown_active

    def check(self) -> bool:
        """
        Read every switch once; trip if any is unsafe.

        Returns:
            True if this check tripped the interlock
        """
        unsafe = [switch.role for switch in self.switches if not self._is_safe(switch)]
        if not unsafe:
            return False
        self.trip(unsafe)
        return True

    def trip(self, reasons: Sequence[str] = ()) -> None:
        """Force watering off and arm the re-enable timer if none is pending."""
        self.state.shutdown_active = True
        self.main_pump.turn_off()
        tripped_at = self.clock()
        self.history.record_shutdown(at=tripped_at)
        self.trip_count += 1
        cause = ", ".join(reasons) or "request"

        if self.state.reenable_pending:
            self.last_trip = SafetyInterlockTrip(
                f"Safety interlock tripped again by {cause} while shut down",
                detail={"reasons": list(reasons), "tripped_at": tripped_at.isoformat(), "reenable_at": None},
            )
            logger.warning("%s", self.last_trip, extra={"detail": self.last_trip.detail})
            self._audit("trip", "already_active", reasons=list(reasons))
            return

        loop = asyncio.get_running_loop()
        self.state.reenable_handle = loop.call_later(self.reenable_interval, self._reenable)
        self.state.reenable_at = tripped_at + timedelta(seconds=self.reenable_interval)
        self.last_trip = SafetyInterlockTrip(
            f"Safety interlock tripped by {cause}; watering disabled until {self.state.reenable_at.isoformat()}",
            detail={
                "reasons": list(reasons),
                "tripped_at": tripped_at.isoformat(),
                "reenable_at": self.state.reenable_at.isoformat(),
            },
        )
        logger.warning("%s", self.last_trip, extra={"detail": self.last_trip.detail})
        self._audit("trip", "shutdown", **self.last_trip.detail)

    def _reenable(self) -> None:
        self.state.shutdown_active = False
        self.state.reenable_at = None
        self.state.reenable_handle = None
        logger.info("Safety interlock cooldown elapsed; watering re-enabled")
        self._audit("reenable", "ok")

    def cancel(self) -> None:
        """Drop a pending re-enable timer (controller shutdown). The shutdown flag is kept."""
        handle = self.state.reenable_handle
        if handle is not None:
            handle.cancel()
            self.state.reenable_handle = None
            self.state.reenable_at = None

    def _is_safe(self, switch: DigitalPin) -> bool:
        try:
            return switch.read() == LOW
        except DeviceError as e:
            logger.error("Safety switch %s unreadable, treating as unsafe: %s", switch.role, e)
            return False

    def _audit(self, action: str, outcome: str, **metadata) -> None:
        if self.audit is not None:
            self.audit.log_event("safety_interlock", action, "main_pump", outcome, **metadata)
