from __future__ import annotations

import json
from typing import Any

import boto3
from aws_lambda_powertools import Logger, Tracer
from aws_lambda_powertools.utilities.typing import LambdaContext

from campus_reservations import config
from campus_reservations.dal import SCHEDULE_PREFIX

logger = Logger()
tracer = Tracer()

_events = boto3.client("events", config=config.AWS_CLIENT_CONFIG)

EVENT_SOURCE = "campus.reservations"
# PutEvents accepts at most this many entries per call.
MAX_ENTRIES_PER_CALL = 10


def _attr(image: dict[str, Any], name: str) -> str | None:
    value = image.get(name, {}).get("S")
    return value if isinstance(value, str) else None


def _summary(image: dict[str, Any]) -> dict[str, Any]:
    return {
        name: _attr(image, name)
        for name in (
            "reservation_id",
            "requester_id",
            "resource_type",
            "resource_id",
            "start_time",
            "end_time",
            "status",
        )
    }


def build_event(record: dict[str, Any]) -> dict[str, Any] | None:
    """Turn one DynamoDB stream record into a lifecycle event, or None to skip it."""
    name = record.get("eventName")
    ddb = record.get("dynamodb", {})
    new_image = ddb.get("NewImage", {})
    old_image = ddb.get("OldImage", {})
    image = new_image or old_image

    reservation_id = _attr(image, "reservation_id")
    if not reservation_id or reservation_id.startswith(SCHEDULE_PREFIX):
        return None

    if name == "INSERT":
        detail_type = "ReservationCreated"
        detail = _summary(new_image)
    elif name == "MODIFY":
        old_status, new_status = _attr(old_image, "status"), _attr(new_image, "status")
        if old_status == new_status:
            return None
        detail_type = "ReservationStatusChanged"
        detail = {**_summary(new_image), "previous_status": old_status}
    elif name == "REMOVE":
        detail_type = "ReservationDeleted"
        detail = _summary(old_image)
    else:
        return None

    return {
        "Source": EVENT_SOURCE,
        "DetailType": detail_type,
        "Detail": json.dumps({"version": "1.0", "type": detail_type, **detail}),
        "EventBusName": config.EVENT_BUS_NAME,
    }


@tracer.capture_lambda_handler
def lambda_handler(event: dict[str, Any], context: LambdaContext) -> None:
    entries = [e for e in (build_event(r) for r in event.get("Records", [])) if e is not None]

    for offset in range(0, len(entries), MAX_ENTRIES_PER_CALL):
        batch = entries[offset : offset + MAX_ENTRIES_PER_CALL]
        logger.info("Emitting reservation events", extra={"count": len(batch)})
        resp = _events.put_events(Entries=batch)
        failed = resp.get("FailedEntryCount", 0) if isinstance(resp, dict) else 0
        if failed:
            # Raising makes Lambda retry the stream batch.
            logger.error("EventBridge rejected entries", extra={"failed": failed})
            raise RuntimeError(f"{failed} reservation event(s) were not published")
