from __future__ import annotations

from conftest import at

from campus_reservations.conflicts import ScheduledInterval, find_conflicts, overlaps
from campus_reservations.models import ReservationStatus


def interval(rid: str, start, end, status=ReservationStatus.CONFIRMED) -> ScheduledInterval:
    return ScheduledInterval(rid, start, end, status)


def test_back_to_back_windows_do_not_overlap():
    assert not overlaps(at(11), at(12), at(10), at(11))
    assert not overlaps(at(10), at(11), at(11), at(12))


def test_partial_overlap():
    assert overlaps(at(10, 30), at(11, 30), at(10), at(11))


def test_nested_and_identical_windows_overlap():
    assert overlaps(at(10, 15), at(10, 45), at(10), at(11))
    assert overlaps(at(9), at(12), at(10), at(11))
    assert overlaps(at(10), at(11), at(10), at(11))


def test_disjoint_windows():
    assert not overlaps(at(8), at(9), at(10), at(11))


def test_find_conflicts_returns_ids_in_input_order():
    existing = [
        interval("a", at(9), at(10)),
        interval("b", at(10), at(11)),
        interval("c", at(10, 30), at(12)),
    ]
    assert find_conflicts(at(10, 15), at(10, 45), existing) == ["b", "c"]


def test_find_conflicts_ignores_inactive_reservations():
    existing = [
        interval("cancelled", at(10), at(11), ReservationStatus.CANCELLED),
        interval("rejected", at(10), at(11), ReservationStatus.REJECTED),
        interval("pending", at(10, 30), at(11), ReservationStatus.PENDING),
    ]
    assert find_conflicts(at(10), at(11), existing) == ["pending"]


def test_find_conflicts_empty_when_free():
    assert find_conflicts(at(10), at(11), []) == []
    assert find_conflicts(at(11), at(12), [interval("a", at(10), at(11))]) == []
