"""Structured errors raised by the reservation core.

Every error carries a ``kind`` and a human-readable ``detail``; the API layer
renders :meth:`ReservationError.to_dict` and uses ``status_code`` as-is.
Only :class:`InternalError` is eligible for a caller-side retry.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str


class ReservationError(Exception):
    kind = "Error"
    status_code = 500
    retryable = False

    def __init__(self, detail: str, field: str | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.field = field

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"kind": self.kind, "detail": self.detail, "retryable": self.retryable}
        if self.field is not None:
            body["field"] = self.field
        return body


class ValidationError(ReservationError):
    """Malformed or missing request fields; lists every failing field."""

    kind = "ValidationError"
    status_code = 400

    def __init__(self, fields: Iterable[FieldError]) -> None:
        self.fields = list(fields)
        summary = "; ".join(f"{f.field}: {f.message}" for f in self.fields) or "invalid request"
        super().__init__(summary)

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        body["fields"] = [asdict(f) for f in self.fields]
        return body


class NotFoundError(ReservationError):
    kind = "NotFound"
    status_code = 404


class ConflictError(ReservationError):
    """The requested window overlaps one or more active reservations."""

    kind = "Conflict"
    status_code = 409

    def __init__(self, conflicting_ids: Iterable[str]) -> None:
        self.conflicting_ids = list(conflicting_ids)
        super().__init__("Resource is not available for the requested time")

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        body["conflicting_ids"] = self.conflicting_ids
        return body


class UnauthorizedError(ReservationError):
    kind = "Unauthorized"
    status_code = 403

    def __init__(self) -> None:
        # Fixed wording so a denial never reveals anything about the record.
        super().__init__("not permitted")


class AuthenticationRequiredError(ReservationError):
    kind = "AuthenticationRequired"
    status_code = 401

    def __init__(self, detail: str = "Authentication required") -> None:
        super().__init__(detail)


class InvalidTransitionError(ReservationError):
    kind = "InvalidTransition"
    status_code = 400

    def __init__(self, current: str, attempted: str, reason: str | None = None) -> None:
        self.current = current
        self.attempted = attempted
        detail = f"Cannot move reservation from {current} to {attempted}"
        if reason:
            detail = f"{detail}: {reason}"
        super().__init__(detail, field="status")

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        body["current"] = self.current
        body["attempted"] = self.attempted
        return body


class InternalError(ReservationError):
    """Storage timeout or unavailability. Safe to retry with backoff."""

    kind = "Internal"
    status_code = 503
    retryable = True
