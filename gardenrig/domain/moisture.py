"""
Moisture Domain Models

Per-cycle moisture readings and the bounded, insertion-ordered history
container shared by the moisture history and the safety shutdown log.
"""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Generic, TypeVar

V = TypeVar("V")


@dataclass(frozen=True)
class MoistureSnapshot:
    """
    One irrigation cycle's moisture readings, one entry per pot.

    ``True`` means the pot is dry (sensor pin read logic-high).
    """

    readings: tuple[bool, ...]

    @classmethod
    def from_levels(cls, levels: Sequence[int]) -> "MoistureSnapshot":
        """Build a snapshot from raw pin levels (HIGH = dry)."""
        return cls(tuple(bool(level) for level in levels))

    def __len__(self) -> int:
        return len(self.readings)

    def __iter__(self) -> Iterator[bool]:
        return iter(self.readings)

    def __getitem__(self, index: int) -> bool:
        return self.readings[index]

    def is_dry(self, pot: int) -> bool:
        return self.readings[pot]

    @property
    def dry_pots(self) -> list[int]:
        return [index for index, dry in enumerate(self.readings) if dry]

    def to_list(self) -> list[bool]:
        return list(self.readings)


class BoundedHistory(Generic[V]):
    """
    Timestamp-keyed history with a fixed capacity.

    Entries keep insertion order, which equals timestamp order because cycles
    are strictly sequential. Recording past capacity evicts the oldest entry.
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._entries: OrderedDict[datetime, V] = OrderedDict()

    def record(self, timestamp: datetime, value: V) -> datetime | None:
        """Append an entry; returns the evicted timestamp, if any."""
        if timestamp in self._entries:
            self._entries.move_to_end(timestamp)
        self._entries[timestamp] = value
        if len(self._entries) > self.capacity:
            evicted, _ = self._entries.popitem(last=False)
            return evicted
        return None

    def items(self) -> list[tuple[datetime, V]]:
        return list(self._entries.items())

    def oldest(self) -> datetime | None:
        return next(iter(self._entries), None)

    def newest(self) -> datetime | None:
        return next(reversed(self._entries), None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, timestamp: object) -> bool:
        return timestamp in self._entries

    def __iter__(self) -> Iterator[datetime]:
        return iter(self._entries)
