from __future__ import annotations

from datetime import datetime

from .errors import InvalidTransitionError
from .models import Reservation, ReservationStatus, Role

Status = ReservationStatus

# (current, target) -> roles that may request it. Cancellation is further
# limited to the owner or an adjudicator by the authorization guard.
TRANSITIONS: dict[tuple[Status, Status], frozenset[Role]] = {
    (Status.PENDING, Status.CONFIRMED): frozenset({Role.ADJUDICATOR}),
    (Status.PENDING, Status.REJECTED): frozenset({Role.ADJUDICATOR}),
    (Status.PENDING, Status.CANCELLED): frozenset({Role.MEMBER, Role.ADJUDICATOR}),
    (Status.CONFIRMED, Status.CANCELLED): frozenset({Role.MEMBER, Role.ADJUDICATOR}),
}

TERMINAL_STATUSES = frozenset({Status.CANCELLED, Status.REJECTED})
EDITABLE_STATUSES = frozenset({Status.PENDING})


def initial_status(role: Role) -> Status:
    # An adjudicator's own request is adjudicated on creation.
    return Status.CONFIRMED if role is Role.ADJUDICATOR else Status.PENDING


def is_editable(status: Status) -> bool:
    return status in EDITABLE_STATUSES


def validate_transition(reservation: Reservation, target: Status, role: Role, now: datetime) -> None:
    """Raise InvalidTransitionError unless ``role`` may move ``reservation`` to ``target`` at ``now``.

    Nothing is mutated here; callers apply the change only after this returns.
    """
    current = reservation.status
    if current in TERMINAL_STATUSES:
        raise InvalidTransitionError(current, target, f"{current} is terminal")

    allowed = TRANSITIONS.get((current, target))
    if allowed is None:
        raise InvalidTransitionError(current, target)
    if role not in allowed:
        raise InvalidTransitionError(current, target, f"requires {' or '.join(sorted(allowed))}")

    if target is Status.CANCELLED and now >= reservation.end_time:
        raise InvalidTransitionError(current, target, "reservation window has already ended")
