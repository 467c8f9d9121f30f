from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ResourceType(StrEnum):
    CLASSROOM = "classroom"
    FACILITY = "facility"
    VENUE = "venue"


class ReservationStatus(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


ACTIVE_STATUSES = frozenset({ReservationStatus.PENDING, ReservationStatus.CONFIRMED})


class Role(StrEnum):
    MEMBER = "member"
    ADJUDICATOR = "adjudicator"


class ListScope(StrEnum):
    MINE = "mine"
    ALL = "all"


class Caller(BaseModel):
    model_config = ConfigDict(frozen=True)

    caller_id: str = Field(..., min_length=1)
    role: Role = Role.MEMBER

    @property
    def is_adjudicator(self) -> bool:
        return self.role is Role.ADJUDICATOR


class Resource(BaseModel):
    resource_type: ResourceType
    resource_id: str
    name: str | None = None
    location: str | None = None
    capacity: int | None = None


class ReservationRequest(BaseModel):
    # Unparsed input; validator.validate_request checks every field.
    resource_type: Any = None
    resource_id: Any = None
    start_time: Any = None
    end_time: Any = None
    purpose: Any = None


class ReservationCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    requester_id: str
    resource_type: ResourceType
    resource_id: str
    start_time: datetime
    end_time: datetime
    purpose: str


class StatusUpdate(BaseModel):
    status: ReservationStatus


class PurposeUpdate(BaseModel):
    purpose: str = Field(..., min_length=1)


class Reservation(BaseModel):
    reservation_id: str
    requester_id: str
    resource_type: ResourceType
    resource_id: str
    start_time: datetime
    end_time: datetime
    purpose: str
    status: ReservationStatus = ReservationStatus.PENDING
    created_at: datetime
    updated_at: datetime
    resource: Resource | None = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES
