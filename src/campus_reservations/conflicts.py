"""Interval overlap rules for reservations on a single resource."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import NamedTuple, Protocol

from .models import ACTIVE_STATUSES, ReservationStatus


class Booked(Protocol):
    reservation_id: str
    start_time: datetime
    end_time: datetime
    status: ReservationStatus


class ScheduledInterval(NamedTuple):
    reservation_id: str
    start_time: datetime
    end_time: datetime
    status: ReservationStatus


def overlaps(start: datetime, end: datetime, other_start: datetime, other_end: datetime) -> bool:
    """Return True when ``[start, end)`` and ``[other_start, other_end)`` share any instant.

    Back-to-back windows (10:00-11:00 and 11:00-12:00) do not overlap;
    nested and identical windows do.
    """
    return start < other_end and other_start < end


def find_conflicts(start: datetime, end: datetime, reservations: Iterable[Booked]) -> list[str]:
    """Return ids of active reservations overlapping ``[start, end)``, in input order."""
    return [
        r.reservation_id
        for r in reservations
        if r.status in ACTIVE_STATUSES and overlaps(start, end, r.start_time, r.end_time)
    ]
