from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, cast

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from . import directory
from .errors import FieldError, NotFoundError, ValidationError
from .models import Caller, ReservationCandidate, ReservationRequest, Resource, ResourceType

_datetime = TypeAdapter(datetime)
_VALID_TYPES = ", ".join(t.value for t in ResourceType)


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _parse_time(value: Any) -> datetime | None:
    try:
        parsed = _datetime.validate_python(value)
    except PydanticValidationError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def validate_request(
    request: ReservationRequest, caller: Caller, now: datetime | None = None
) -> tuple[ReservationCandidate, Resource]:
    """Check a raw create request and resolve its resource.

    Field problems are collected and raised together as one ValidationError.
    When ``now`` is given, windows starting before it are refused. The
    resource catalog is only consulted once the request is well formed.
    """
    errors: list[FieldError] = []

    resource_type: ResourceType | None = None
    if _blank(request.resource_type):
        errors.append(FieldError("resource_type", "Resource type is required"))
    else:
        try:
            resource_type = ResourceType(str(request.resource_type).strip().lower())
        except ValueError:
            errors.append(FieldError("resource_type", f"Resource type must be one of: {_VALID_TYPES}"))

    for name, label in (("resource_id", "Resource ID"), ("purpose", "Purpose")):
        if _blank(getattr(request, name)):
            errors.append(FieldError(name, f"{label} is required"))

    times: dict[str, datetime] = {}
    for name, label in (("start_time", "Start time"), ("end_time", "End time")):
        raw = getattr(request, name)
        if _blank(raw):
            errors.append(FieldError(name, f"{label} is required"))
            continue
        parsed = _parse_time(raw)
        if parsed is None:
            errors.append(FieldError(name, f"{label} is not a valid timestamp"))
        else:
            times[name] = parsed

    if now is not None and "start_time" in times and times["start_time"] < now:
        errors.append(FieldError("start_time", "Start time must not be in the past"))
    if len(times) == 2 and times["start_time"] >= times["end_time"]:
        errors.append(FieldError("end_time", "End time must be later than start time"))

    if errors:
        raise ValidationError(errors)

    candidate = ReservationCandidate(
        requester_id=caller.caller_id,
        resource_type=cast(ResourceType, resource_type),
        resource_id=str(request.resource_id).strip(),
        start_time=times["start_time"],
        end_time=times["end_time"],
        purpose=str(request.purpose).strip(),
    )

    resource = directory.get_resource(candidate.resource_type, candidate.resource_id)
    if resource is None:
        raise NotFoundError("Resource not found", field="resource_id")
    return candidate, resource
