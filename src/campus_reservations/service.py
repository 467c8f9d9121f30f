"""Reservation operations exposed at the API boundary.

Create: validate -> conflict check against the resource schedule -> atomic
insert. Status changes: lookup -> authorization -> state machine -> store.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from aws_lambda_powertools import Logger

from . import authz, dal, state_machine
from .conflicts import find_conflicts
from .errors import (
    ConflictError,
    FieldError,
    InternalError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from .models import (
    Caller,
    ListScope,
    Reservation,
    ReservationRequest,
    ReservationStatus,
    ResourceType,
)
from .validator import validate_request

logger = Logger()

# Full check-and-insert passes before a create gives up on a busy schedule.
CREATE_ATTEMPTS = 2


def _now(now: datetime | None) -> datetime:
    return now or datetime.now(UTC)


def _audit(action: str, caller: Caller, reservation: Reservation, **details: Any) -> None:
    logger.info(
        "Reservation audit",
        extra={
            "audit_action": action,
            "actor_id": caller.caller_id,
            "actor_role": str(caller.role),
            "reservation_id": reservation.reservation_id,
            "resource": f"{reservation.resource_type}#{reservation.resource_id}",
            **details,
        },
    )


def _load(reservation_id: str) -> Reservation:
    try:
        return dal.get_reservation(reservation_id)
    except KeyError as exc:
        raise NotFoundError(dal.RESERVATION_NOT_FOUND) from exc


def create_reservation(request: ReservationRequest, caller: Caller, now: datetime | None = None) -> Reservation:
    now = _now(now)
    candidate, resource = validate_request(request, caller, now)
    status = state_machine.initial_status(caller.role)

    for attempt in range(1, CREATE_ATTEMPTS + 1):
        # Each attempt is a complete check-and-insert against a fresh snapshot;
        # a cancelled transaction has written nothing.
        schedule = dal.read_schedule(candidate.resource_type, candidate.resource_id)
        conflicting = find_conflicts(candidate.start_time, candidate.end_time, schedule.intervals)
        if conflicting:
            logger.info("Reservation conflicts", extra={"conflicting_ids": conflicting, "attempt": attempt})
            raise ConflictError(conflicting)
        try:
            reservation = dal.insert_reservation(candidate, status, schedule, now, resource=resource)
            break
        except dal.ScheduleChangedError:
            logger.info(
                "Resource schedule changed during create",
                extra={"schedule_key": schedule.key, "attempt": attempt},
            )
    else:
        raise InternalError("Resource schedule changed concurrently, retry the request")

    _audit("create", caller, reservation, status_after=str(reservation.status))
    return reservation


def get_reservation(reservation_id: str, caller: Caller) -> Reservation:
    reservation = _load(reservation_id)
    authz.require_view(caller, reservation)
    return reservation


def list_reservations(caller: Caller, scope: ListScope = ListScope.MINE) -> list[Reservation]:
    authz.require_list(caller, scope)
    if scope is ListScope.ALL:
        return dal.list_all()
    return dal.list_for_requester(caller.caller_id)


def list_for_resource(
    resource_id: str,
    resource_type: ResourceType | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[Reservation]:
    # Bounds without an offset are read as UTC, like request times.
    start, end = (t.replace(tzinfo=UTC) if t is not None and t.tzinfo is None else t for t in (start, end))
    if start is not None and end is not None and start >= end:
        raise ValidationError([FieldError("end", "End must be later than start")])
    return dal.list_for_resource(resource_id, resource_type, start, end)


def set_status(
    reservation_id: str,
    caller: Caller,
    target: ReservationStatus,
    now: datetime | None = None,
) -> Reservation:
    now = _now(now)
    reservation = _load(reservation_id)
    authz.require_status_change(caller, reservation, target)
    state_machine.validate_transition(reservation, target, caller.role, now)

    try:
        updated = dal.update_status(reservation, target, now)
    except dal.StatusChangedError:
        current = _load(reservation_id)
        raise InvalidTransitionError(current.status, target, "status changed concurrently") from None

    _audit("set_status", caller, updated, status_before=str(reservation.status), status_after=str(target))
    return updated


def cancel_reservation(reservation_id: str, caller: Caller, now: datetime | None = None) -> Reservation:
    return set_status(reservation_id, caller, ReservationStatus.CANCELLED, now)


def update_purpose(reservation_id: str, caller: Caller, purpose: str, now: datetime | None = None) -> Reservation:
    now = _now(now)
    purpose = purpose.strip()
    if not purpose:
        raise ValidationError([FieldError("purpose", "Purpose is required")])
    reservation = _load(reservation_id)
    authz.require_modify(caller, reservation)
    if not state_machine.is_editable(reservation.status):
        raise InvalidTransitionError(reservation.status, "edit", f"{reservation.status} reservations are not editable")

    try:
        updated = dal.update_purpose(reservation, purpose, now)
    except dal.StatusChangedError:
        current = _load(reservation_id)
        raise InvalidTransitionError(current.status, "edit", "status changed concurrently") from None

    _audit("update_purpose", caller, updated)
    return updated


def delete_reservation(reservation_id: str, caller: Caller, now: datetime | None = None) -> None:
    reservation = _load(reservation_id)
    authz.require_modify(caller, reservation)
    try:
        dal.delete_reservation(reservation, _now(now))
    except dal.StatusChangedError as exc:
        raise NotFoundError(dal.RESERVATION_NOT_FOUND) from exc
    _audit("delete", caller, reservation, status_before=str(reservation.status))
