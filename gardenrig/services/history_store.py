"""
History store service.

Keeps the bounded moisture history and safety shutdown log, answers the
per-pot daily irrigation count used to cap watering, and snapshots both to
durable storage.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any, Protocol

from pydantic import ValidationError

from gardenrig.domain.controller_state import ControllerState
from gardenrig.domain.exceptions import PersistenceError
from gardenrig.domain.moisture import MoistureSnapshot
from gardenrig.schemas.history import MoistureHistoryPayload, ShutdownLogPayload
from gardenrig.utils.time import LOCAL_UTC_OFFSET_HOURS, local_day, utc_now

logger = logging.getLogger(__name__)

MOISTURE_HISTORY = "moisture_history"
SAFETY_SHUTDOWN_LOG = "safety_shutdown_log"


class SnapshotStore(Protocol):
    def save(self, name: str, payload: dict[str, Any]) -> None: ...

    def load(self, name: str) -> dict[str, Any] | None: ...


class HistoryStore:
    """
    Moisture history and shutdown log backed by the controller state.

    Usage:
        store = HistoryStore(state, JsonFileStore("var"), pot_count=6)
        store.restore()
        store.record(snapshot)
        counts = store.daily_counts()
    """

    def __init__(
        self,
        state: ControllerState,
        persistence: SnapshotStore | None = None,
        pot_count: int = 6,
        offset_hours: float = LOCAL_UTC_OFFSET_HOURS,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.state = state
        self.persistence = persistence
        self.pot_count = pot_count
        self.offset_hours = offset_hours
        self.clock = clock
        self._dirty = False

    @property
    def moisture(self):
        return self.state.moisture_history

    @property
    def shutdowns(self):
        return self.state.shutdown_log

    def record(self, snapshot: MoistureSnapshot, at: datetime | None = None) -> datetime:
        """Append a cycle's snapshot; the oldest entry is evicted at capacity."""
        if len(snapshot) != self.pot_count:
            raise ValueError(f"snapshot has {len(snapshot)} readings, expected {self.pot_count}")
        timestamp = at or self.clock()
        evicted = self.moisture.record(timestamp, snapshot)
        if evicted is not None:
            logger.debug("Moisture history full, evicted %s", evicted.isoformat())
        self._dirty = True
        return timestamp

    def daily_counts(self, now: datetime | None = None) -> list[int]:
        """Per pot, how many of today's recorded cycles found it dry."""
        today = local_day(now or self.clock(), self.offset_hours)
        counts = [0] * self.pot_count
        for timestamp, snapshot in self.moisture.items():
            if local_day(timestamp, self.offset_hours) != today:
                continue
            for pot in snapshot.dry_pots:
                if pot < self.pot_count:
                    counts[pot] += 1
        return counts

    def record_shutdown(self, at: datetime | None = None) -> datetime:
        timestamp = at or self.clock()
        self.shutdowns.record(timestamp, True)
        self._dirty = True
        return timestamp

    def flush(self, force: bool = False) -> bool:
        """
        Snapshot both histories to persistence.

        Returns False when the write failed; the failure is logged and never
        raised. Nothing is written when nothing changed since the last flush,
        unless ``force`` is set.
        """
        if self.persistence is None:
            return False
        if not (self._dirty or force):
            return True
        return self._write(self._take_payloads())

    async def flush_async(self, force: bool = False) -> bool:
        """Same as ``flush`` with the file I/O on a worker thread."""
        if self.persistence is None:
            return False
        if not (self._dirty or force):
            return True
        return await asyncio.to_thread(self._write, self._take_payloads())

    def _take_payloads(self) -> dict[str, dict[str, Any]]:
        # Built on the caller's thread; records made while a write is in
        # flight mark the store dirty again.
        saved_at = self.clock()
        moisture_payload = MoistureHistoryPayload(
            saved_at=saved_at,
            capacity=self.moisture.capacity,
            pot_count=self.pot_count,
            entries={timestamp: snapshot.to_list() for timestamp, snapshot in self.moisture.items()},
        )
        shutdown_payload = ShutdownLogPayload(
            saved_at=saved_at,
            capacity=self.shutdowns.capacity,
            entries=dict(self.shutdowns.items()),
        )
        self._dirty = False
        return {
            MOISTURE_HISTORY: moisture_payload.model_dump(mode="json"),
            SAFETY_SHUTDOWN_LOG: shutdown_payload.model_dump(mode="json"),
        }

    def _write(self, payloads: dict[str, dict[str, Any]]) -> bool:
        try:
            for name, payload in payloads.items():
                self.persistence.save(name, payload)
        except PersistenceError as e:
            self._dirty = True
            logger.error("History flush failed: %s", e, extra={"detail": e.detail})
            return False

        logger.debug(
            "Flushed %s moisture entries and %s shutdown entries",
            len(payloads[MOISTURE_HISTORY]["entries"]),
            len(payloads[SAFETY_SHUTDOWN_LOG]["entries"]),
        )
        return True

    def restore(self) -> bool:
        """
        Load both histories from the last snapshot.

        A missing, unreadable or invalid snapshot leaves that history empty.
        Returns True when anything was restored.
        """
        if self.persistence is None:
            return False
        return self._apply(self._read_all())

    async def restore_async(self) -> bool:
        """Same as ``restore`` with the file I/O on a worker thread."""
        if self.persistence is None:
            return False
        return self._apply(await asyncio.to_thread(self._read_all))

    def _read_all(self) -> dict[str, dict[str, Any] | None]:
        return {name: self._read(name) for name in (MOISTURE_HISTORY, SAFETY_SHUTDOWN_LOG)}

    def _read(self, name: str) -> dict[str, Any] | None:
        try:
            return self.persistence.load(name)
        except PersistenceError as e:
            logger.warning("Could not read %s snapshot: %s", name, e)
            return None

    def _apply(self, raw: dict[str, dict[str, Any] | None]) -> bool:
        restored = False
        moisture = self._validate(MOISTURE_HISTORY, raw.get(MOISTURE_HISTORY), MoistureHistoryPayload)
        if moisture is not None:
            if moisture.pot_count != self.pot_count:
                logger.warning(
                    "Ignoring moisture history for %s pots, rig has %s", moisture.pot_count, self.pot_count
                )
            else:
                self.moisture.clear()
                for timestamp in sorted(moisture.entries):
                    self.moisture.record(timestamp, MoistureSnapshot(tuple(moisture.entries[timestamp])))
                restored = True

        shutdowns = self._validate(SAFETY_SHUTDOWN_LOG, raw.get(SAFETY_SHUTDOWN_LOG), ShutdownLogPayload)
        if shutdowns is not None:
            self.shutdowns.clear()
            for timestamp in sorted(shutdowns.entries):
                self.shutdowns.record(timestamp, shutdowns.entries[timestamp])
            restored = True

        if restored:
            logger.info(
                "Restored %s moisture entries and %s shutdown entries", len(self.moisture), len(self.shutdowns)
            )
        return restored

    def _validate(self, name: str, data: dict[str, Any] | None, model):
        if data is None:
            return None
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.warning("Discarding invalid %s snapshot: %s", name, e.errors()[:3])
            return None
