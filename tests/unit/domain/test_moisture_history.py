from datetime import datetime, timedelta, timezone

import pytest

from gardenrig.domain.controller_state import ControllerState
from gardenrig.domain.moisture import BoundedHistory, MoistureSnapshot

T0 = datetime(2026, 6, 15, 8, 0, tzinfo=timezone.utc)


def test_snapshot_from_levels_maps_high_to_dry():
    snapshot = MoistureSnapshot.from_levels([1, 0, 1, 0])
    assert snapshot.to_list() == [True, False, True, False]
    assert snapshot.dry_pots == [0, 2]
    assert len(snapshot) == 4
    assert snapshot.is_dry(2) is True
    assert snapshot[1] is False


def test_bounded_history_never_exceeds_capacity_and_evicts_oldest():
    history: BoundedHistory[int] = BoundedHistory(3)
    evicted = []
    for i in range(10):
        dropped = history.record(T0 + timedelta(minutes=i), i)
        if dropped is not None:
            evicted.append(dropped)
        assert len(history) <= 3

    assert [value for _, value in history.items()] == [7, 8, 9]
    assert history.oldest() == T0 + timedelta(minutes=7)
    assert history.newest() == T0 + timedelta(minutes=9)
    assert evicted[0] == T0


def test_bounded_history_same_timestamp_replaces_and_moves_to_end():
    history: BoundedHistory[str] = BoundedHistory(5)
    history.record(T0, "a")
    history.record(T0 + timedelta(seconds=1), "b")
    history.record(T0, "c")

    assert len(history) == 2
    assert history.items() == [(T0 + timedelta(seconds=1), "b"), (T0, "c")]


def test_bounded_history_rejects_zero_capacity():
    with pytest.raises(ValueError):
        BoundedHistory(0)


def test_controller_state_pause_and_interlock_block_watering():
    state = ControllerState.create(history_capacity=60, shutdown_log_capacity=300)
    assert state.watering_blocked(T0) is False

    state.paused_until = T0 + timedelta(seconds=60)
    assert state.is_paused(T0) is True
    assert state.watering_blocked(T0) is True
    assert state.watering_blocked(T0 + timedelta(seconds=61)) is False

    state.paused_until = None
    state.safety.shutdown_active = True
    assert state.watering_blocked(T0) is True


def test_safety_state_to_dict():
    state = ControllerState.create(1, 1)
    assert state.safety.to_dict() == {"shutdown_active": False, "reenable_at": None}
    assert state.safety.reenable_pending is False
