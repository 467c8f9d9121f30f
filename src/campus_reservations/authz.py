"""Who may see or change which reservation.

Every check either returns silently or raises :class:`UnauthorizedError`.
Callers look a record up (and raise NotFound) before asking here, so a
denial says nothing about the record beyond "not permitted".
"""

from __future__ import annotations

from .errors import UnauthorizedError
from .models import Caller, ListScope, Reservation, ReservationStatus


def is_owner(caller: Caller, reservation: Reservation) -> bool:
    return reservation.requester_id == caller.caller_id


def can_view(caller: Caller, reservation: Reservation) -> bool:
    return caller.is_adjudicator or is_owner(caller, reservation)


def require_view(caller: Caller, reservation: Reservation) -> None:
    if not can_view(caller, reservation):
        raise UnauthorizedError()


def require_list(caller: Caller, scope: ListScope) -> None:
    if scope is ListScope.ALL and not caller.is_adjudicator:
        raise UnauthorizedError()


def require_status_change(caller: Caller, reservation: Reservation, target: ReservationStatus) -> None:
    if caller.is_adjudicator:
        return
    # Members may only cancel what they own.
    if target is not ReservationStatus.CANCELLED or not is_owner(caller, reservation):
        raise UnauthorizedError()


def require_modify(caller: Caller, reservation: Reservation) -> None:
    """Editing the purpose or deleting the record: owner or adjudicator."""
    if not (caller.is_adjudicator or is_owner(caller, reservation)):
        raise UnauthorizedError()
