from __future__ import annotations

import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, TypedDict, cast

import boto3
from aws_lambda_powertools import Logger
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import BotoCoreError, ClientError

if TYPE_CHECKING:
    # Only for static type checking; not imported at runtime
    from mypy_boto3_dynamodb.client import DynamoDBClient
    from mypy_boto3_dynamodb.service_resource import DynamoDBServiceResource
    from mypy_boto3_dynamodb.service_resource import Table as DynamoDBTable
else:
    DynamoDBClient = Any  # type: ignore[assignment]
    DynamoDBServiceResource = Any  # type: ignore[assignment]
    DynamoDBTable = Any  # type: ignore[assignment]

from . import config
from .conflicts import ScheduledInterval
from .errors import InternalError
from .models import ACTIVE_STATUSES, Reservation, ReservationCandidate, ReservationStatus, Resource, ResourceType

logger = Logger()

_dynamodb: DynamoDBServiceResource = boto3.resource("dynamodb", config=config.AWS_CLIENT_CONFIG)
_table: DynamoDBTable = _dynamodb.Table(config.TABLE_NAME)
_client: DynamoDBClient = _dynamodb.meta.client
_serializer = TypeSerializer()

RESERVATION_NOT_FOUND = "Reservation not found"
SCHEDULE_PREFIX = "schedule#"
REQUESTER_INDEX = "requester_index"
RESOURCE_INDEX = "resource_index"
# Attempts at rewriting a schedule item when unrelated writers keep bumping its version.
MAX_SCHEDULE_ATTEMPTS = 3


class ScheduleChangedError(Exception):
    """The resource schedule was rewritten between our read and our write."""


class StatusChangedError(Exception):
    """The reservation no longer has the status the write was conditioned on."""


class ReservationItem(TypedDict, total=False):
    reservation_id: str
    requester_id: str
    resource_type: str
    resource_id: str
    start_time: str
    end_time: str
    purpose: str
    status: str
    created_at: str
    updated_at: str
    resource: dict[str, Any]


@dataclass
class Schedule:
    """Active intervals of one resource plus the version they were read at.

    Version 0 means the schedule item does not exist yet.
    """

    key: str
    version: int = 0
    intervals: list[ScheduledInterval] = field(default_factory=list)


def _dt_to_iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    # Fixed width keeps lexicographic order equal to chronological order.
    return dt.astimezone(UTC).isoformat(timespec="microseconds")


def _iso_to_dt(s: str) -> datetime:
    return datetime.fromisoformat(s)


def schedule_key(resource_type: ResourceType, resource_id: str) -> str:
    return f"{SCHEDULE_PREFIX}{resource_type}#{resource_id}"


@contextmanager
def _store_errors(action: str, **context: Any) -> Iterator[None]:
    try:
        yield
    except (BotoCoreError, ClientError) as exc:
        logger.exception("Reservation store call failed", extra={"action": action, **context})
        raise InternalError(f"Reservation store unavailable during {action}, retry later") from exc


def _serialize(item: dict[str, Any]) -> dict[str, Any]:
    return {k: _serializer.serialize(v) for k, v in item.items()}


def _transact(operations: list[dict[str, Any]]) -> None:
    """Run a write transaction.

    An operation may carry an ``on_condition_failure`` exception type (stripped
    before sending); it is raised when that operation's condition fails.
    """
    items = [{k: v for k, v in op.items() if k != "on_condition_failure"} for op in operations]
    try:
        _client.transact_write_items(TransactItems=items)  # type: ignore[arg-type]
    except ClientError as exc:
        if exc.response.get("Error", {}).get("Code") != "TransactionCanceledException":
            raise
        reasons = cast(list[dict[str, Any]], exc.response.get("CancellationReasons") or [])
        for op, reason in zip(operations, reasons, strict=False):
            error_type = op.get("on_condition_failure")
            if reason.get("Code") == "ConditionalCheckFailed" and error_type is not None:
                raise error_type() from exc
        raise


def _schedule_put(schedule: Schedule, intervals: list[ScheduledInterval], now: datetime) -> dict[str, Any]:
    # Windows that ended by ``now`` are dropped. New reservations never start
    # before ``now``, so they cannot overlap a dropped window.
    live = [it for it in intervals if it.end_time > now]
    item = {
        "reservation_id": schedule.key,
        "version": schedule.version + 1,
        "updated_at": _dt_to_iso(now),
        "intervals": {
            it.reservation_id: {
                "start_time": _dt_to_iso(it.start_time),
                "end_time": _dt_to_iso(it.end_time),
                "status": str(it.status),
            }
            for it in live
        },
    }
    put: dict[str, Any] = {"TableName": config.TABLE_NAME, "Item": _serialize(item)}
    if schedule.version == 0:
        put["ConditionExpression"] = "attribute_not_exists(reservation_id)"
    else:
        put["ConditionExpression"] = "#version = :version"
        put["ExpressionAttributeNames"] = {"#version": "version"}
        put["ExpressionAttributeValues"] = _serialize({":version": schedule.version})
    return {"Put": put, "on_condition_failure": ScheduleChangedError}


def read_schedule(resource_type: ResourceType, resource_id: str) -> Schedule:
    key = schedule_key(resource_type, resource_id)
    with _store_errors("read_schedule", schedule_key=key):
        resp = cast(dict[str, Any], _table.get_item(Key={"reservation_id": key}, ConsistentRead=True))
    item = resp.get("Item")
    if not isinstance(item, dict):
        return Schedule(key=key)

    intervals = [
        ScheduledInterval(
            reservation_id=rid,
            start_time=_iso_to_dt(raw["start_time"]),
            end_time=_iso_to_dt(raw["end_time"]),
            status=ReservationStatus(raw["status"]),
        )
        for rid, raw in (item.get("intervals") or {}).items()
    ]
    intervals.sort(key=lambda it: it.start_time)
    return Schedule(key=key, version=int(item.get("version", 0)), intervals=intervals)


def insert_reservation(
    candidate: ReservationCandidate,
    status: ReservationStatus,
    schedule: Schedule,
    now: datetime,
    resource: Resource | None = None,
) -> Reservation:
    """Write a reservation together with its slot in the resource schedule.

    ``schedule`` must be the snapshot the caller checked for conflicts; the
    write only lands if nobody has rewritten it since. Otherwise
    ScheduleChangedError is raised and nothing is written.
    """
    reservation_id = str(uuid.uuid4())
    item: ReservationItem = {
        "reservation_id": reservation_id,
        "requester_id": candidate.requester_id,
        "resource_type": str(candidate.resource_type),
        "resource_id": candidate.resource_id,
        "start_time": _dt_to_iso(candidate.start_time),
        "end_time": _dt_to_iso(candidate.end_time),
        "purpose": candidate.purpose,
        "status": str(status),
        "created_at": _dt_to_iso(now),
        "updated_at": _dt_to_iso(now),
    }
    if resource is not None:
        item["resource"] = resource.model_dump(
            mode="json", include={"name", "location", "capacity"}, exclude_none=True
        )

    intervals = [
        *schedule.intervals,
        ScheduledInterval(reservation_id, candidate.start_time, candidate.end_time, status),
    ]
    logger.info(
        "Creating reservation",
        extra={"reservation_id": reservation_id, "schedule_key": schedule.key, "version": schedule.version},
    )
    with _store_errors("insert_reservation", reservation_id=reservation_id):
        _transact(
            [
                _schedule_put(schedule, intervals, now),
                {"Put": {"TableName": config.TABLE_NAME, "Item": _serialize(dict(item))}},
            ]
        )
    return _to_model(item)


def get_reservation(reservation_id: str) -> Reservation:
    if reservation_id.startswith(SCHEDULE_PREFIX):
        raise KeyError(RESERVATION_NOT_FOUND)
    with _store_errors("get_reservation", reservation_id=reservation_id):
        resp = cast(
            dict[str, Any],
            _table.get_item(Key={"reservation_id": reservation_id}, ConsistentRead=True),
        )
    item = resp.get("Item")
    if not isinstance(item, dict):
        raise KeyError(RESERVATION_NOT_FOUND)
    return _to_model(cast(ReservationItem, item))


def _query_index(
    index_name: str,
    key_name: str,
    value: str,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[Reservation]:
    # ``end`` bounds the index sort key; ``start`` can only be applied as a
    # filter because a window that began earlier may still be running.
    kwargs: dict[str, Any] = {
        "IndexName": index_name,
        "KeyConditionExpression": f"{key_name} = :key",
        "ExpressionAttributeValues": {":key": value},
        "ScanIndexForward": True,
    }
    if end is not None:
        kwargs["KeyConditionExpression"] += " AND start_time < :end"
        kwargs["ExpressionAttributeValues"][":end"] = _dt_to_iso(end)
    if start is not None:
        kwargs["FilterExpression"] = "end_time > :start"
        kwargs["ExpressionAttributeValues"][":start"] = _dt_to_iso(start)

    items: list[ReservationItem] = []
    with _store_errors("query", index=index_name):
        while True:
            resp = cast(dict[str, Any], _table.query(**kwargs))
            items.extend(cast(ReservationItem, it) for it in resp.get("Items", []) if isinstance(it, dict))
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                break
            kwargs["ExclusiveStartKey"] = last_key
    return sorted((_to_model(it) for it in items), key=lambda r: r.start_time)


def list_for_requester(requester_id: str) -> list[Reservation]:
    return _query_index(REQUESTER_INDEX, "requester_id", requester_id)


def list_for_resource(
    resource_id: str,
    resource_type: ResourceType | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[Reservation]:
    """Active reservations on a resource, earliest first.

    With ``start``/``end`` only reservations overlapping ``[start, end)`` are
    returned; either bound may be left open.
    """
    return [
        r
        for r in _query_index(RESOURCE_INDEX, "resource_id", resource_id, start, end)
        if r.is_active and (resource_type is None or r.resource_type == resource_type)
    ]


def list_all() -> list[Reservation]:
    kwargs: dict[str, Any] = {"FilterExpression": "attribute_exists(requester_id)"}
    items: list[ReservationItem] = []
    with _store_errors("scan"):
        while True:
            resp = cast(dict[str, Any], _table.scan(**kwargs))
            items.extend(cast(ReservationItem, it) for it in resp.get("Items", []) if isinstance(it, dict))
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                break
            kwargs["ExclusiveStartKey"] = last_key
    return sorted((_to_model(it) for it in items), key=lambda r: r.start_time)


def update_status(reservation: Reservation, target: ReservationStatus, now: datetime) -> Reservation:
    """Move ``reservation`` to ``target``, keeping its resource schedule in step.

    The write is conditioned on the status we read; if it moved underneath
    us StatusChangedError is raised and nothing is written.
    """
    rid = reservation.reservation_id
    update = {
        "Update": {
            "TableName": config.TABLE_NAME,
            "Key": _serialize({"reservation_id": rid}),
            "UpdateExpression": "SET #status = :status, #updated_at = :updated_at",
            "ConditionExpression": "#current = :current",
            "ExpressionAttributeNames": {"#status": "status", "#updated_at": "updated_at", "#current": "status"},
            "ExpressionAttributeValues": _serialize(
                {":status": str(target), ":updated_at": _dt_to_iso(now), ":current": str(reservation.status)}
            ),
        },
        "on_condition_failure": StatusChangedError,
    }

    def rewrite(intervals: list[ScheduledInterval]) -> list[ScheduledInterval]:
        kept = [it for it in intervals if it.reservation_id != rid]
        if target in ACTIVE_STATUSES:
            kept.append(ScheduledInterval(rid, reservation.start_time, reservation.end_time, target))
        return kept

    _write_with_schedule(reservation, update, rewrite, now)
    logger.info("Reservation status updated", extra={"reservation_id": rid, "status": str(target)})
    return reservation.model_copy(update={"status": target, "updated_at": now})


def delete_reservation(reservation: Reservation, now: datetime) -> None:
    rid = reservation.reservation_id
    delete = {
        "Delete": {
            "TableName": config.TABLE_NAME,
            "Key": _serialize({"reservation_id": rid}),
            "ConditionExpression": "attribute_exists(reservation_id)",
        },
        "on_condition_failure": StatusChangedError,
    }
    _write_with_schedule(
        reservation, delete, lambda intervals: [it for it in intervals if it.reservation_id != rid], now
    )
    logger.info("Reservation deleted", extra={"reservation_id": rid})


def _write_with_schedule(
    reservation: Reservation,
    operation: dict[str, Any],
    rewrite: Callable[[list[ScheduledInterval]], list[ScheduledInterval]],
    now: datetime,
) -> None:
    # The reservation write is conditioned on its own state, so repeating it
    # after a schedule version clash cannot apply the change twice.
    for attempt in range(1, MAX_SCHEDULE_ATTEMPTS + 1):
        schedule = read_schedule(reservation.resource_type, reservation.resource_id)
        try:
            with _store_errors("update_reservation", reservation_id=reservation.reservation_id):
                _transact([_schedule_put(schedule, rewrite(schedule.intervals), now), operation])
            return
        except ScheduleChangedError:
            logger.warning(
                "Schedule changed during write, retrying",
                extra={"reservation_id": reservation.reservation_id, "attempt": attempt},
            )
    raise InternalError("Resource schedule is busy, retry later")


def update_purpose(reservation: Reservation, purpose: str, now: datetime) -> Reservation:
    with _store_errors("update_purpose", reservation_id=reservation.reservation_id):
        try:
            _table.update_item(
                Key={"reservation_id": reservation.reservation_id},
                UpdateExpression="SET #purpose = :purpose, #updated_at = :updated_at",
                ConditionExpression="#current = :current",
                ExpressionAttributeNames={"#purpose": "purpose", "#updated_at": "updated_at", "#current": "status"},
                ExpressionAttributeValues={
                    ":purpose": purpose,
                    ":updated_at": _dt_to_iso(now),
                    ":current": str(reservation.status),
                },
            )
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                raise StatusChangedError() from exc
            raise
    return reservation.model_copy(update={"purpose": purpose, "updated_at": now})


def _to_model(item: ReservationItem) -> Reservation:
    resource = None
    raw_resource = item.get("resource")
    if isinstance(raw_resource, dict):
        capacity = raw_resource.get("capacity")
        resource = Resource(
            resource_type=ResourceType(item["resource_type"]),
            resource_id=item["resource_id"],
            name=raw_resource.get("name"),
            location=raw_resource.get("location"),
            capacity=int(capacity) if capacity is not None else None,
        )
    return Reservation(
        reservation_id=item["reservation_id"],
        requester_id=item["requester_id"],
        resource_type=ResourceType(item["resource_type"]),
        resource_id=item["resource_id"],
        start_time=_iso_to_dt(item["start_time"]),
        end_time=_iso_to_dt(item["end_time"]),
        purpose=item.get("purpose", ""),
        status=ReservationStatus(item.get("status", ReservationStatus.PENDING)),
        created_at=_iso_to_dt(item["created_at"]),
        updated_at=_iso_to_dt(item["updated_at"]),
        resource=resource,
    )
